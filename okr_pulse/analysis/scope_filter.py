"""
Hierarchy filtering and access scoping.

``filter_hierarchy`` is a structural transform: it returns pruned copies of
the org objectives so that every roll-up computed afterwards reflects only
the surviving indicators.  Percentages shown under an active filter are
therefore the filtered aggregate, not the global one.

Leaf-level filters (status, customer, feature) drop non-matching indicators,
then every Key Result, Functional Objective, Department and Org Objective
left without children.  The department allowlist drops departments outside
the list, then any org objective left with no department.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

from ..core.config import FULL_ACCESS_ROLES
from ..models.data_models import (
    Indicator, KeyResult, FunctionalObjective, Department, OrgObjective, RAGStatus,
)
from ..rag.thresholds import RAGThresholds, resolve_thresholds
from ..scoring import indicator_progress

logger = logging.getLogger(__name__)


@dataclass
class HierarchyFilter:
    """
    Filter selected in a view.  Fields left as None do not filter.

    Attributes:
        status: Keep indicators currently in this RAG band.
        customer_id: Keep indicators linked to this customer.
        feature_id: Keep indicators linked to this feature.
        department_ids: Department allowlist (role-based access).
    """
    status: Optional[RAGStatus] = None
    customer_id: Optional[str] = None
    feature_id: Optional[str] = None
    department_ids: Optional[Sequence[str]] = None

    def __post_init__(self):
        if self.status is not None:
            self.status = RAGStatus.from_value(self.status)

    @property
    def has_leaf_filter(self) -> bool:
        return any(v is not None for v in (self.status, self.customer_id, self.feature_id))

    @property
    def is_empty(self) -> bool:
        return not self.has_leaf_filter and self.department_ids is None


def indicator_matches(indicator: Indicator, hierarchy_filter: HierarchyFilter,
                      thresholds: RAGThresholds) -> bool:
    """True when the indicator passes every leaf-level condition."""
    if hierarchy_filter.customer_id is not None and hierarchy_filter.customer_id not in indicator.customer_ids:
        return False
    if hierarchy_filter.feature_id is not None and hierarchy_filter.feature_id not in indicator.feature_ids:
        return False
    if hierarchy_filter.status is not None:
        return thresholds.classify(indicator_progress(indicator)) == hierarchy_filter.status
    return True


def _pinned(children):
    """Children paired with their slot in the unfiltered parent."""
    return [(child, child.position or n) for n, child in enumerate(children, start=1)]


def _prune_key_result(kr: KeyResult, hierarchy_filter, thresholds) -> Optional[KeyResult]:
    # Survivors keep their original slot so KPI<n> and WEIGHTED(...) stay aligned
    indicators = [replace(i, position=n) for i, n in _pinned(kr.indicators)
                  if indicator_matches(i, hierarchy_filter, thresholds)]
    return replace(kr, indicators=indicators) if indicators else None


def _prune_functional_objective(fo: FunctionalObjective, hierarchy_filter, thresholds):
    key_results = []
    for kr, n in _pinned(fo.key_results):
        pruned = _prune_key_result(kr, hierarchy_filter, thresholds)
        if pruned is not None:
            key_results.append(replace(pruned, position=n))
    return replace(fo, key_results=key_results) if key_results else None


def _prune_department(dept: Department, hierarchy_filter, thresholds):
    objectives = [fo for fo in (_prune_functional_objective(f, hierarchy_filter, thresholds)
                                for f in dept.functional_objectives) if fo is not None]
    return replace(dept, functional_objectives=objectives) if objectives else None


def filter_hierarchy(org_objectives: Iterable[OrgObjective],
                     hierarchy_filter: Optional[HierarchyFilter] = None,
                     thresholds=None) -> List[OrgObjective]:
    """
    Return pruned copies of the org objectives.

    Args:
        org_objectives: Hierarchy snapshot (not modified).
        hierarchy_filter: Filter to apply; None or an empty filter keeps
            everything.
        thresholds: Bands used for the status filter.

    Returns:
        List of OrgObjective copies containing only surviving branches.
    """
    objectives = list(org_objectives)
    if hierarchy_filter is None or hierarchy_filter.is_empty:
        return objectives

    bands = resolve_thresholds(thresholds)
    allowed = (set(hierarchy_filter.department_ids)
               if hierarchy_filter.department_ids is not None else None)

    result = []
    for objective in objectives:
        departments = objective.departments
        if allowed is not None:
            departments = [d for d in departments if d.id in allowed]
        if hierarchy_filter.has_leaf_filter:
            departments = [d for d in (_prune_department(dept, hierarchy_filter, bands)
                                       for dept in departments) if d is not None]
        if departments:
            result.append(replace(objective, departments=departments))

    logger.debug(f"[Filter] {len(result)} of {len(objectives)} org objectives kept "
                 f"for {hierarchy_filter}")
    return result


def department_allowlist_for(role: Optional[str],
                             accessible_department_ids: Optional[Sequence[str]] = None
                             ) -> Optional[List[str]]:
    """
    Department allowlist for a user role.

    Admins and department heads see everything (None).  Any other role
    (CSM, viewer, ...) sees only its accessible departments; no list means
    no departments.
    """
    if role is not None and role.lower() in FULL_ACCESS_ROLES:
        return None
    return list(accessible_department_ids or [])
