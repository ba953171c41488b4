"""
Portfolio Roll-up Orchestrator - whole-tree execution flow for OKR Pulse.

This module wires the formula classifier, the aggregator and the RAG
classifier into a single bottom-up pass over the org objective trees and
keeps the result as a tree of ``RollupNode`` values that views can render,
break down or flatten.

Data flow
---------
::

    [records / OrgObjective snapshot]
         |
         v
    load_hierarchy()          dicts -> dataclasses (pass-through otherwise)
         |
         v
    filter_hierarchy()        optional: status / customer / feature /
         |                    department allowlist, pruned copies
         v
    run()                     Indicator -> Key Result -> Functional Objective
         |                    -> Department -> Org Objective, every node
         |                    classified with the injected thresholds
         v
    breakdown() / business_outcomes() / to_dataframe()

Key Result nodes carry two statuses: ``status`` from the blended
percentage and ``mix_status`` from the share of indicators in each band.
They are computed independently and may differ.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

import pandas as pd

from ..formulas.classifier import FormulaKind, FormulaType
from ..formulas.expression import EvaluationError, referenced_names
from ..models.data_models import (
    Indicator, KeyResult, FunctionalObjective, Department, OrgObjective,
    RAGStatus, load_hierarchy,
)
from ..rag.thresholds import (
    RAGThresholds, resolve_thresholds, kr_status_from_indicator_mix, rag_label,
)
from ..scoring import (
    AggregationOutcome,
    aggregate_with_trace,
    business_outcome_progress,
    indicator_progress,
    key_result_outcome,
    functional_objective_outcome,
)
from ..analysis.scope_filter import HierarchyFilter, filter_hierarchy

logger = logging.getLogger(__name__)

_AVERAGE = FormulaKind(FormulaType.AVG)

ENTITY_LABELS = {
    'org_objective': 'Org Objective',
    'department': 'Department',
    'functional_objective': 'Functional Objective',
    'key_result': 'Key Result',
    'indicator': 'Indicator',
}


@dataclass
class RollupNode:
    """
    Computed progress and status for one entity of the hierarchy.

    Attributes:
        entity_type: 'org_objective', 'department', 'functional_objective',
            'key_result' or 'indicator'.
        id: Entity id.
        name: Entity name.
        progress: Roll-up percentage, None when no data.
        status: Percentage-band status.
        formula_kind: Strategy used to aggregate the children (None for
            indicators).
        fell_back: True when the formula could not be applied and AVG was
            used.
        reason: Fallback reason or other calculation note.
        children: Child nodes in display order.
        mix_status: Key Results only: status from the indicator mix rule.
        weight: Weight declared on the entity, if any.
        business_outcome: Org objectives only.
    """
    entity_type: str
    id: str
    name: str
    progress: Optional[float]
    status: RAGStatus
    formula_kind: Optional[FormulaKind] = None
    fell_back: bool = False
    reason: Optional[str] = None
    children: List['RollupNode'] = field(default_factory=list)
    mix_status: Optional[RAGStatus] = None
    weight: Optional[float] = None
    business_outcome: Optional[str] = None

    @property
    def label(self) -> str:
        return rag_label(self.status)

    def iter_nodes(self, depth: int = 0, parent_id: Optional[str] = None) -> Iterator[tuple]:
        """Depth-first ``(node, depth, parent_id)`` over this subtree."""
        yield self, depth, parent_id
        for child in self.children:
            yield from child.iter_nodes(depth + 1, self.id)


@dataclass
class BreakdownItem:
    name: str
    score: Optional[float]
    status: RAGStatus
    weight: Optional[float] = None


@dataclass
class CalculationBreakdown:
    """
    How a node's progress was derived, for "show calculation" displays.

    Attributes:
        title: e.g. "Key Result: Reduce churn".
        method: Formula as applied ('AVG', 'WEIGHTED(2, 1)', the expression...);
            'AVG (fallback)' when the requested formula could not be used.
        items: One entry per child.
        final_score: The node's progress.
        final_status: The node's status.
        final_label: Display label of the status.
        references: Names an expression formula refers to (also kept when
            it fell back).
        fell_back / reason: Copied from the node.
        mix_status: Key Results only.
    """
    title: str
    method: str
    items: List[BreakdownItem]
    final_score: Optional[float]
    final_status: RAGStatus
    final_label: str
    references: List[str] = field(default_factory=list)
    fell_back: bool = False
    reason: Optional[str] = None
    mix_status: Optional[RAGStatus] = None


class PortfolioRollup:
    """
    Computes roll-up trees for a hierarchy snapshot.

    The thresholds are fixed per instance; every status it produces uses
    them, so two instances with different admin settings can run side by
    side.

    Usage
    -----
    ::

        rollup = PortfolioRollup({'green_min': 80, 'amber_min': 60})
        nodes = rollup.run(load_hierarchy(records))
        frame = rollup.to_dataframe(nodes)
    """

    def __init__(self, thresholds=None):
        self.thresholds: RAGThresholds = resolve_thresholds(thresholds)
        self.objectives: List[OrgObjective] = []   # Snapshot of the last run
        self.nodes: List[RollupNode] = []          # Result of the last run

    # ------------------------------------------------------------------
    # Per-level roll-ups
    # ------------------------------------------------------------------

    def _node(self, entity_type, entity, outcome: AggregationOutcome, children, **extra) -> RollupNode:
        node = RollupNode(
            entity_type=entity_type,
            id=entity.id,
            name=entity.name,
            progress=outcome.value,
            status=self.thresholds.classify(outcome.value),
            formula_kind=outcome.kind,
            fell_back=outcome.fell_back,
            reason=outcome.reason,
            children=children,
            **extra,
        )
        logger.debug(f"[Rollup] {entity_type} {entity.id}: progress={node.progress} "
                     f"status={node.status.value} formula={outcome.kind}"
                     f"{' (fallback: ' + str(outcome.reason) + ')' if outcome.fell_back else ''}")
        return node

    def _rollup_indicator(self, indicator: Indicator) -> RollupNode:
        progress = indicator_progress(indicator)
        return RollupNode(
            entity_type='indicator',
            id=indicator.id,
            name=indicator.name,
            progress=progress,
            status=self.thresholds.classify(progress),
            weight=indicator.weight,
        )

    def _rollup_key_result(self, key_result: KeyResult) -> RollupNode:
        children = [self._rollup_indicator(i) for i in key_result.indicators]
        outcome = key_result_outcome(key_result, [c.progress for c in children])
        return self._node(
            'key_result', key_result, outcome, children,
            mix_status=kr_status_from_indicator_mix(c.status for c in children),
            weight=key_result.weight,
        )

    def _rollup_functional_objective(self, objective: FunctionalObjective) -> RollupNode:
        children = [self._rollup_key_result(kr) for kr in objective.key_results]
        outcome = functional_objective_outcome(objective, [c.progress for c in children])
        return self._node('functional_objective', objective, outcome, children)

    def _rollup_department(self, department: Department) -> RollupNode:
        children = [self._rollup_functional_objective(fo) for fo in department.functional_objectives]
        outcome = aggregate_with_trace([c.progress for c in children], _AVERAGE)
        return self._node('department', department, outcome, children)

    def _rollup_org_objective(self, objective: OrgObjective) -> RollupNode:
        children = [self._rollup_department(d) for d in objective.departments]
        outcome = aggregate_with_trace([c.progress for c in children], _AVERAGE)
        return self._node('org_objective', objective, outcome, children,
                          business_outcome=objective.business_outcome)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, org_objectives: Iterable) -> List[RollupNode]:
        """
        Roll up every org objective.

        Args:
            org_objectives: ``OrgObjective`` instances or persistence dicts.

        Returns:
            One ``RollupNode`` tree per org objective, in input order.
        """
        self.objectives = load_hierarchy(list(org_objectives))
        logger.info(f"[Rollup] Rolling up {len(self.objectives)} org objectives "
                    f"(green>={self.thresholds.green_min:g}, amber>={self.thresholds.amber_min:g})")

        self.nodes = [self._rollup_org_objective(obj) for obj in self.objectives]

        fallbacks = sum(1 for tree in self.nodes for node, _, _ in tree.iter_nodes() if node.fell_back)
        if fallbacks:
            logger.info(f"[Rollup] {fallbacks} entities fell back to AVG")
        return self.nodes

    def rollup_filtered(self, org_objectives: Iterable,
                        hierarchy_filter: Optional[HierarchyFilter]) -> List[RollupNode]:
        """Filter the hierarchy, then roll up the pruned copy."""
        objectives = load_hierarchy(list(org_objectives))
        pruned = filter_hierarchy(objectives, hierarchy_filter, self.thresholds)
        return self.run(pruned)

    # ------------------------------------------------------------------
    # Views over the result
    # ------------------------------------------------------------------

    def breakdown(self, node: RollupNode) -> CalculationBreakdown:
        """Explain how ``node.progress`` was obtained from its children."""
        kind = node.formula_kind
        if kind is None:
            method = 'Current / Target x 100'
        elif node.fell_back:
            method = 'AVG (fallback)'
        else:
            method = str(kind) if kind.type != FormulaType.DEFAULT else FormulaType.AVG.value

        references = []
        if kind is not None and kind.type == FormulaType.EXPRESSION:
            try:
                references = referenced_names(kind.raw)
            except EvaluationError:
                references = []

        return CalculationBreakdown(
            title=f"{ENTITY_LABELS.get(node.entity_type, node.entity_type)}: {node.name}",
            method=method,
            items=[BreakdownItem(c.name or c.id, c.progress, c.status, c.weight) for c in node.children],
            final_score=node.progress,
            final_status=node.status,
            final_label=node.label,
            references=references,
            fell_back=node.fell_back,
            reason=node.reason,
            mix_status=node.mix_status,
        )

    def business_outcomes(self) -> pd.DataFrame:
        """
        Progress per business outcome for the last run.

        Returns:
            DataFrame with business_outcome, progress, status and label
            columns, one row per outcome in first-seen order.
        """
        progress_by_id = {node.id: node.progress for node in self.nodes}
        outcomes = business_outcome_progress(self.objectives, progress_by_id)
        rows = []
        for outcome, progress in outcomes.items():
            status = self.thresholds.classify(progress)
            rows.append({
                'business_outcome': outcome,
                'progress': progress,
                'status': status.value,
                'label': rag_label(status),
            })
        return pd.DataFrame(rows, columns=['business_outcome', 'progress', 'status', 'label'])

    def to_dataframe(self, nodes: Optional[List[RollupNode]] = None) -> pd.DataFrame:
        """Flatten node trees to one row per entity (depth-first order)."""
        nodes = self.nodes if nodes is None else nodes
        rows: List[Dict[str, Any]] = []
        for tree in nodes:
            for node, depth, parent_id in tree.iter_nodes():
                rows.append({
                    'entity_type': node.entity_type,
                    'id': node.id,
                    'name': node.name,
                    'parent_id': parent_id,
                    'depth': depth,
                    'progress': node.progress,
                    'status': node.status.value,
                    'formula': str(node.formula_kind) if node.formula_kind is not None else None,
                    'fell_back': node.fell_back,
                    'mix_status': node.mix_status.value if node.mix_status is not None else None,
                })
        return pd.DataFrame(rows, columns=[
            'entity_type', 'id', 'name', 'parent_id', 'depth', 'progress',
            'status', 'formula', 'fell_back', 'mix_status',
        ])
