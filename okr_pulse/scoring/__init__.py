"""
Progress Aggregation Engine.

=== PURPOSE ===
This module computes roll-up percentages for every level of the OKR
hierarchy.  It takes child progress values plus the parent's formula and
returns the parent's progress, never raising on a bad formula.

=== ROLL-UP ORDER ===
Fixed and bottom-up; each level only sees its direct children:

    Indicator            (current / target) * 100, or the indicator's own
                         formula over Actual / Target values
    Key Result           KR formula over its indicators' progress
    Functional Objective FO formula over its KRs' progress
    Department           plain average of its FOs
    Org Objective        plain average of its departments
    Business Outcome     plain average of the org objectives sharing it

=== AGGREGATION RULES ===
  - Children without data (None) are excluded, never counted as 0.
  - No set children at all gives None, which classifies as NOT_SET.
  - AVG / DEFAULT: mean.  MIN / MAX / SUM: as named.
  - WEIGHTED: weights written in the formula, else the per-child weights;
    missing, misaligned, negative or zero-total weights fall back to AVG.
  - EXPRESSION: each child is bound under its code, name, id and
    positional alias (KPI1..n under a KR, KR1..n under an FO) and the
    formula evaluated.  Any evaluation failure falls back to AVG and is
    logged at WARNING.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..core.config import (
    ACTUAL_REFERENCE_NAMES,
    TARGET_REFERENCE_NAMES,
    CHILD_ALIAS_PREFIX,
)
from ..core.utils import to_float
from ..formulas.classifier import FormulaKind, FormulaType, parse_formula_type
from ..formulas.expression import try_evaluate
from ..models.data_models import (
    Indicator, KeyResult, FunctionalObjective, Department, OrgObjective,
)

logger = logging.getLogger(__name__)

_AVERAGE = FormulaKind(FormulaType.AVG)


@dataclass(frozen=True)
class AggregationOutcome:
    """
    Result of one aggregation step, kept for calculation breakdowns.

    Attributes:
        value: Roll-up percentage, or None when no child had data.
        kind: The formula classification that was requested.
        fell_back: True when the requested strategy could not be applied
            and the plain average was used instead.
        reason: Why the fallback happened (or other notes), else None.
    """
    value: Optional[float]
    kind: FormulaKind
    fell_back: bool = False
    reason: Optional[str] = None


# ============================================================================
# CORE AGGREGATION
# ============================================================================

def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values))


def _weighted_mean(values, requested_weights):
    """Return (value, reason); value is None when the weights are unusable."""
    if requested_weights is None:
        return None, "no weights supplied"

    raw = list(requested_weights)
    if len(raw) != len(values):
        return None, f"{len(raw)} weights for {len(values)} values"

    pairs = []
    for value, weight in zip(values, raw):
        w = to_float(weight)
        if w is None or not math.isfinite(w):
            return None, f"non-numeric weight {weight!r}"
        if w < 0:
            return None, f"negative weight {w:g}"
        if value is not None:
            pairs.append((value, w))

    total = sum(w for _, w in pairs)
    if total <= 0:
        return None, "weights of the set values sum to zero"

    return float(np.average([v for v, _ in pairs], weights=[w for _, w in pairs])), None


def _expression_bindings(values, references) -> Dict[str, Optional[float]]:
    bindings = {}
    for position, value in enumerate(values, start=1):
        if references is not None:
            names = references[position - 1]
            if isinstance(names, str):
                names = [names]
        else:
            names = [f"{prefix}{position}" for prefix in CHILD_ALIAS_PREFIX.values()]
        for name in names or []:
            if name:
                bindings[name] = value
    return bindings


def aggregate_with_trace(values: Iterable, formula=None, weights: Optional[Sequence] = None,
                         references: Optional[Sequence] = None) -> AggregationOutcome:
    """
    Aggregate child progress values and report how it was done.

    Args:
        values: Child progress percentages; None marks a child without data.
        formula: Raw formula text or a ``FormulaKind``.
        weights: Per-child weights aligned with ``values`` (WEIGHTED only,
            used when the formula does not list its own).
        references: Per-child reference names aligned with ``values``
            (EXPRESSION only).  Each entry is a name or a list of names.
            When omitted, children are bound positionally as KPI1.., KR1..,
            FO1.. and DEPT1...

    Returns:
        AggregationOutcome.  Never raises for a bad formula.
    """
    kind = parse_formula_type(formula)
    values = [to_float(v) for v in values]
    present = [v for v in values if v is not None]

    if not present:
        return AggregationOutcome(None, kind)

    formula_type = kind.type

    if formula_type in (FormulaType.AVG, FormulaType.DEFAULT):
        return AggregationOutcome(_mean(present), kind)
    if formula_type == FormulaType.MIN:
        return AggregationOutcome(float(min(present)), kind)
    if formula_type == FormulaType.MAX:
        return AggregationOutcome(float(max(present)), kind)
    if formula_type == FormulaType.SUM:
        return AggregationOutcome(float(sum(present)), kind)

    if formula_type == FormulaType.WEIGHTED:
        value, reason = _weighted_mean(values, kind.weights if kind.weights else weights)
        if value is not None:
            return AggregationOutcome(value, kind)
        logger.debug(f"[Aggregation] WEIGHTED formula falling back to AVG: {reason}")
        return AggregationOutcome(_mean(present), kind, fell_back=True, reason=reason)

    # EXPRESSION
    if references is not None and len(references) != len(values):
        reason = f"{len(references)} reference lists for {len(values)} values"
    else:
        result = try_evaluate(kind.raw, _expression_bindings(values, references))
        if result.ok and result.value is not None:
            return AggregationOutcome(result.value, kind)
        reason = result.error or "formula produced no value"

    logger.warning(f"[Aggregation] Formula {kind.raw!r} could not be evaluated ({reason}); "
                   f"using AVG")
    return AggregationOutcome(_mean(present), kind, fell_back=True, reason=reason)


def aggregate_progress(values: Iterable, formula=None, weights: Optional[Sequence] = None,
                       references: Optional[Sequence] = None) -> Optional[float]:
    """
    Aggregate child progress values with a formula.

    Returns None (not 0) when no child carries data.  See
    ``aggregate_with_trace`` for the arguments.
    """
    return aggregate_with_trace(values, formula, weights, references).value


# ============================================================================
# REFERENCE NAMES & WEIGHTS FOR CHILD ENTITIES
# ============================================================================

def child_references(children: Sequence, level: str) -> List[List[str]]:
    """
    Names under which each child is bound in an expression formula.

    Args:
        children: Child entities in display order.
            A child pruned out of a filtered copy keeps the alias of its
            original slot (``position``), so KPI2 never silently moves to
            another child.
        level: Parent level key from ``CHILD_ALIAS_PREFIX``
            ('key_result', 'functional_objective', ...).
    """
    prefix = CHILD_ALIAS_PREFIX[level]
    references = []
    for position, child in enumerate(children, start=1):
        slot = getattr(child, 'position', None) or position
        names = [getattr(child, 'code', None), child.name, child.id, f"{prefix}{slot}"]
        references.append([n for n in names if n])
    return references


def formula_kind_for(formula, children: Sequence) -> FormulaKind:
    """
    Classify a parent's formula against its (possibly filtered) children.

    Weights written in a WEIGHTED formula are positional.  When the children
    carry their original slots, the weights are picked by slot so they stay
    aligned after filtering; otherwise the kind is returned as parsed.
    """
    kind = parse_formula_type(formula)
    if kind.type != FormulaType.WEIGHTED or not kind.weights:
        return kind

    slots = [getattr(child, 'position', None) for child in children]
    if all(s is None for s in slots):
        return kind
    slots = [s or n for n, s in enumerate(slots, start=1)]
    if any(s > len(kind.weights) for s in slots):
        return kind
    return replace(kind, weights=tuple(kind.weights[s - 1] for s in slots))


def child_weights(children: Sequence) -> Optional[List[Optional[float]]]:
    """Per-child weights, or None when no child declares one."""
    weights = [getattr(child, 'weight', None) for child in children]
    if all(w is None for w in weights):
        return None
    return weights


# ============================================================================
# LEVEL ROLL-UPS
# ============================================================================

def indicator_progress(indicator: Indicator) -> Optional[float]:
    """
    Progress of a single indicator in percent.

    Unset indicators (missing value, missing or non-positive target) give
    None.  An indicator carrying its own arithmetic formula is evaluated
    with its current value bound as ``Actual KPI`` / ``Actual`` /
    ``Current`` and its target as ``Target KPI`` / ``Target``; if that
    fails the plain ratio is used.
    """
    if not indicator.is_set:
        return None

    ratio = (indicator.current_value / indicator.target_value) * 100
    kind = parse_formula_type(indicator.formula)
    if kind.type != FormulaType.EXPRESSION:
        return ratio

    bindings = {name: indicator.current_value for name in ACTUAL_REFERENCE_NAMES}
    bindings.update({name: indicator.target_value for name in TARGET_REFERENCE_NAMES})
    result = try_evaluate(kind.raw, bindings)
    if result.ok and result.value is not None:
        return result.value

    logger.warning(f"[Aggregation] Indicator {indicator.id} formula {kind.raw!r} failed "
                   f"({result.error}); using current/target ratio")
    return ratio


def key_result_outcome(key_result: KeyResult,
                       indicator_values: Optional[List[Optional[float]]] = None) -> AggregationOutcome:
    """
    Aggregate a Key Result's indicators with the KR's formula.

    When none of the indicators has data, the KR's own current / target
    values are used instead (if set).
    """
    if indicator_values is None:
        indicator_values = [indicator_progress(i) for i in key_result.indicators]

    outcome = aggregate_with_trace(
        indicator_values,
        formula_kind_for(key_result.formula, key_result.indicators),
        weights=child_weights(key_result.indicators),
        references=child_references(key_result.indicators, 'key_result'),
    )

    if outcome.value is None:
        current, target = key_result.current_value, key_result.target_value
        if current is not None and target is not None and target > 0:
            return replace(outcome, value=(current / target) * 100,
                           reason="no indicator data; using the key result's own values")
    return outcome


def key_result_progress(key_result: KeyResult) -> Optional[float]:
    return key_result_outcome(key_result).value


def functional_objective_outcome(objective: FunctionalObjective,
                                 key_result_values: Optional[List[Optional[float]]] = None) -> AggregationOutcome:
    """Aggregate a Functional Objective's Key Results with the FO's formula."""
    if key_result_values is None:
        key_result_values = [key_result_progress(kr) for kr in objective.key_results]

    return aggregate_with_trace(
        key_result_values,
        formula_kind_for(objective.formula, objective.key_results),
        weights=child_weights(objective.key_results),
        references=child_references(objective.key_results, 'functional_objective'),
    )


def functional_objective_progress(objective: FunctionalObjective) -> Optional[float]:
    return functional_objective_outcome(objective).value


def department_progress(department: Department) -> Optional[float]:
    """Plain average of the department's Functional Objectives."""
    values = [functional_objective_progress(fo) for fo in department.functional_objectives]
    return aggregate_with_trace(values, _AVERAGE).value


def org_objective_progress(objective: OrgObjective) -> Optional[float]:
    """Plain average of the org objective's departments."""
    values = [department_progress(d) for d in objective.departments]
    return aggregate_with_trace(values, _AVERAGE).value


def business_outcome_progress(objectives: Iterable[OrgObjective],
                              progress_by_id: Optional[Dict[str, Optional[float]]] = None
                              ) -> 'OrderedDict[str, Optional[float]]':
    """
    Progress per business outcome: the plain average of the org objectives
    that share it.  Objectives without a business outcome are skipped.

    Args:
        objectives: Org objectives.
        progress_by_id: Precomputed org objective progress keyed by id.
    """
    grouped: 'OrderedDict[str, List[Optional[float]]]' = OrderedDict()
    for objective in objectives:
        if not objective.business_outcome:
            continue
        if progress_by_id is not None:
            value = progress_by_id.get(objective.id)
        else:
            value = org_objective_progress(objective)
        grouped.setdefault(objective.business_outcome, []).append(value)

    return OrderedDict(
        (outcome, aggregate_with_trace(values, _AVERAGE).value)
        for outcome, values in grouped.items()
    )


__all__ = [
    'AggregationOutcome',
    'aggregate_progress',
    'aggregate_with_trace',
    'child_references',
    'child_weights',
    'formula_kind_for',
    'indicator_progress',
    'key_result_outcome',
    'key_result_progress',
    'functional_objective_outcome',
    'functional_objective_progress',
    'department_progress',
    'org_objective_progress',
    'business_outcome_progress',
]
