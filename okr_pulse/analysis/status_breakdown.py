"""
Status Breakdown & Compliance Analysis.

Tallies indicator-level RAG statuses for dashboards and tracks whether CSMs
have entered their periodic scores.

Architecture Overview:
    The hierarchy is first flattened into a pandas DataFrame with one row
    per indicator (``flatten_indicators``).  Every count is then a filter
    plus a value count over that frame, so the same code serves the global
    view and any scope (departments, customer, feature, period).

    Completion is defined on indicators:
        completed = green + amber + red   (indicators with data)
        pending   = not-set
        completion_pct = completed / (completed + pending) * 100

Compliance:
    For a reporting period, each customer is expected to have one score per
    indicator<->feature link whose feature the customer is assigned.  The
    filled count is the number of distinct indicators scored in the period:

        complete  filled > 0 and filled >= expected
        partial   filled > 0 and filled <  expected
        pending   filled == 0
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional, Sequence, Any

import pandas as pd

from ..core.config import (
    COL_ORG_OBJECTIVE_ID, COL_BUSINESS_OUTCOME, COL_DEPARTMENT_ID,
    COL_FUNCTIONAL_OBJECTIVE_ID, COL_KEY_RESULT_ID, COL_INDICATOR_ID,
    COL_INDICATOR_NAME, COL_CURRENT_VALUE, COL_TARGET_VALUE, COL_PROGRESS,
    COL_STATUS, COL_CUSTOMER_IDS, COL_FEATURE_IDS, COL_PERIOD,
    INDICATOR_FRAME_COLUMNS,
)
from ..models.data_models import OrgObjective, RAGStatus, ScoreRecord
from ..rag.thresholds import resolve_thresholds
from ..scoring import indicator_progress

logger = logging.getLogger(__name__)

_STATUS_COLUMNS = ['green', 'amber', 'red', 'not_set']


# ============================================================================
# FLATTENING
# ============================================================================

def flatten_indicators(org_objectives: Iterable[OrgObjective], thresholds=None) -> pd.DataFrame:
    """
    One row per indicator with its hierarchy ids, progress and status.

    Args:
        org_objectives: Hierarchy snapshot.
        thresholds: ``RAGThresholds``, threshold dict or None for defaults.

    Returns:
        DataFrame with ``INDICATOR_FRAME_COLUMNS``.  Status values are the
        ``RAGStatus`` string values ('green', ..., 'not-set').
    """
    bands = resolve_thresholds(thresholds)
    rows = []
    for objective in org_objectives:
        for dept, fo, kr, ind in objective.iter_indicators():
            progress = indicator_progress(ind)
            rows.append({
                COL_ORG_OBJECTIVE_ID: objective.id,
                COL_BUSINESS_OUTCOME: objective.business_outcome,
                COL_DEPARTMENT_ID: dept.id,
                COL_FUNCTIONAL_OBJECTIVE_ID: fo.id,
                COL_KEY_RESULT_ID: kr.id,
                COL_INDICATOR_ID: ind.id,
                COL_INDICATOR_NAME: ind.name,
                COL_CURRENT_VALUE: ind.current_value,
                COL_TARGET_VALUE: ind.target_value,
                COL_PROGRESS: progress,
                COL_STATUS: bands.classify(progress).value,
                COL_CUSTOMER_IDS: list(ind.customer_ids),
                COL_FEATURE_IDS: list(ind.feature_ids),
                COL_PERIOD: ind.period,
            })

    logger.debug(f"[Breakdown] Flattened {len(rows)} indicators")
    return pd.DataFrame(rows, columns=INDICATOR_FRAME_COLUMNS)


# ============================================================================
# SCOPED COUNTS
# ============================================================================

@dataclass
class BreakdownScope:
    """
    Restriction applied before counting.  Every field left as None is
    unrestricted.

    Attributes:
        department_ids: Keep indicators under these departments.
        customer_id: Keep indicators linked to this customer.
        feature_id: Keep indicators linked to this feature.
        period: Keep indicators whose value belongs to this "YYYY-MM" period.
    """
    department_ids: Optional[Sequence[str]] = None
    customer_id: Optional[str] = None
    feature_id: Optional[str] = None
    period: Optional[str] = None


@dataclass
class StatusBreakdown:
    """Indicator counts per status band."""
    green: int = 0
    amber: int = 0
    red: int = 0
    not_set: int = 0

    @property
    def completed(self) -> int:
        return self.green + self.amber + self.red

    @property
    def pending(self) -> int:
        return self.not_set

    @property
    def total(self) -> int:
        return self.completed + self.pending

    @property
    def completion_pct(self) -> float:
        if self.total == 0:
            return 0.0
        return self.completed / self.total * 100

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result.update(completed=self.completed, pending=self.pending,
                      completion_pct=self.completion_pct)
        return result


def apply_scope(frame: pd.DataFrame, scope: Optional[BreakdownScope] = None) -> pd.DataFrame:
    """Filter a flattened indicator frame down to a scope."""
    if scope is None or frame.empty:
        return frame

    mask = pd.Series(True, index=frame.index)
    if scope.department_ids is not None:
        mask &= frame[COL_DEPARTMENT_ID].isin(list(scope.department_ids))
    if scope.customer_id is not None:
        mask &= frame[COL_CUSTOMER_IDS].apply(lambda ids: scope.customer_id in ids)
    if scope.feature_id is not None:
        mask &= frame[COL_FEATURE_IDS].apply(lambda ids: scope.feature_id in ids)
    if scope.period is not None:
        mask &= frame[COL_PERIOD] == scope.period
    return frame[mask]


def _as_frame(source, thresholds=None) -> pd.DataFrame:
    if isinstance(source, pd.DataFrame):
        return source
    return flatten_indicators(source, thresholds)


def count_statuses(source, scope: Optional[BreakdownScope] = None, thresholds=None) -> StatusBreakdown:
    """
    Count indicators per status band.

    Args:
        source: A frame from ``flatten_indicators`` or org objectives.
        scope: Optional ``BreakdownScope``.
        thresholds: Used only when ``source`` is not already flattened.
    """
    frame = apply_scope(_as_frame(source, thresholds), scope)
    counts = frame[COL_STATUS].value_counts() if not frame.empty else pd.Series(dtype=int)
    return StatusBreakdown(
        green=int(counts.get(RAGStatus.GREEN.value, 0)),
        amber=int(counts.get(RAGStatus.AMBER.value, 0)),
        red=int(counts.get(RAGStatus.RED.value, 0)),
        not_set=int(counts.get(RAGStatus.NOT_SET.value, 0)),
    )


def breakdown_by(frame: pd.DataFrame, column: str = COL_DEPARTMENT_ID) -> pd.DataFrame:
    """
    Status counts grouped by a frame column (department, org objective, ...).

    Returns:
        DataFrame indexed by ``column`` with green / amber / red / not_set,
        completed, pending and completion_pct columns.
    """
    if column not in frame.columns:
        raise ValueError(f"Column '{column}' not found in dataframe")

    columns = _STATUS_COLUMNS + ['completed', 'pending', 'completion_pct']
    if frame.empty:
        return pd.DataFrame(columns=columns)

    table = pd.crosstab(frame[column], frame[COL_STATUS])
    table = table.rename(columns={RAGStatus.NOT_SET.value: 'not_set'})
    table = table.reindex(columns=_STATUS_COLUMNS, fill_value=0)
    table['completed'] = table['green'] + table['amber'] + table['red']
    table['pending'] = table['not_set']
    table['completion_pct'] = table['completed'] / (table['completed'] + table['pending']) * 100
    table.columns.name = None
    return table[columns]


# ============================================================================
# COMPLIANCE
# ============================================================================

def previous_period(period: str) -> str:
    """The month before a "YYYY-MM" period."""
    return (pd.Period(period, freq='M') - 1).strftime('%Y-%m')


def _features_by_customer(customer_features) -> Dict[str, set]:
    if isinstance(customer_features, dict):
        return {str(c): {str(f) for f in features} for c, features in customer_features.items()}
    mapping: Dict[str, set] = {}
    for link in customer_features or []:
        mapping.setdefault(str(link['customer_id']), set()).add(str(link['feature_id']))
    return mapping


def _score_frame(scores) -> pd.DataFrame:
    records = [s if isinstance(s, ScoreRecord) else ScoreRecord.from_dict(s) for s in scores or []]
    return pd.DataFrame(
        [asdict(r) for r in records],
        columns=['indicator_id', 'customer_id', 'feature_id', 'value', 'period'],
    )


def _average_band_by_customer(frame: pd.DataFrame) -> Dict[str, float]:
    """Mean band value per customer, as a rounded percentage."""
    valued = frame.dropna(subset=['value'])
    if valued.empty:
        return {}
    means = valued.groupby('customer_id')['value'].mean() * 100
    return {customer: float(round(mean)) for customer, mean in means.items()}


def customer_compliance(customers: Iterable[Dict[str, Any]], customer_features,
                        indicator_feature_links: Iterable[Dict[str, Any]],
                        scores: Iterable, period: str) -> pd.DataFrame:
    """
    Score-entry compliance per customer for one period.

    Args:
        customers: Dicts with ``id`` and optionally ``name`` / ``csm_name``.
        customer_features: ``{customer_id: [feature_id, ...]}`` or link dicts
            with ``customer_id`` / ``feature_id``.
        indicator_feature_links: Dicts with ``indicator_id`` / ``feature_id``.
        scores: ``ScoreRecord`` objects or equivalent dicts (any period).
        period: Reporting period "YYYY-MM".

    Returns:
        DataFrame with customer_id, customer_name, csm_name, expected,
        filled, status, current_avg and previous_avg columns.
    """
    features = _features_by_customer(customer_features)
    link_features = [str(link['feature_id']) for link in indicator_feature_links or []]

    all_scores = _score_frame(scores)
    current = all_scores[all_scores['period'] == period]
    previous = all_scores[all_scores['period'] == previous_period(period)]

    filled_by_customer = current.groupby('customer_id')['indicator_id'].nunique().to_dict()
    current_avgs = _average_band_by_customer(current)
    previous_avgs = _average_band_by_customer(previous)

    rows = []
    for customer in customers:
        customer_id = str(customer['id'])
        assigned = features.get(customer_id, set())
        expected = sum(1 for feature_id in link_features if feature_id in assigned)
        filled = int(filled_by_customer.get(customer_id, 0))

        if filled > 0 and filled >= expected:
            status = 'complete'
        elif filled > 0:
            status = 'partial'
        else:
            status = 'pending'

        rows.append({
            'customer_id': customer_id,
            'customer_name': customer.get('name', ''),
            'csm_name': customer.get('csm_name') or 'Unassigned',
            'expected': expected,
            'filled': filled,
            'status': status,
            'current_avg': current_avgs.get(customer_id),
            'previous_avg': previous_avgs.get(customer_id),
        })

    logger.info(f"[Compliance] {period}: {len(rows)} customers, "
                f"{sum(1 for r in rows if r['status'] == 'pending')} pending")
    return pd.DataFrame(rows, columns=[
        'customer_id', 'customer_name', 'csm_name', 'expected', 'filled',
        'status', 'current_avg', 'previous_avg',
    ])


def compliance_summary(rows: pd.DataFrame) -> Dict[str, Any]:
    """
    Portfolio-level compliance figures.

    Returns:
        Dict with total_customers, completed_customers, pending_customers,
        completion_pct (rounded to a whole number), submitted_csms and
        pending_csms (sorted CSM names; unassigned customers are ignored).
    """
    total = len(rows)
    if total == 0:
        return {
            'total_customers': 0, 'completed_customers': 0, 'pending_customers': 0,
            'completion_pct': 0, 'submitted_csms': [], 'pending_csms': [],
        }

    is_pending = rows['status'] == 'pending'
    completed = int((~is_pending).sum())

    assigned = rows[rows['csm_name'] != 'Unassigned']
    csms = set(assigned['csm_name'])
    submitted = set(assigned.loc[assigned['status'] != 'pending', 'csm_name'])

    return {
        'total_customers': total,
        'completed_customers': completed,
        'pending_customers': int(is_pending.sum()),
        'completion_pct': int(round(completed / total * 100)),
        'submitted_csms': sorted(submitted),
        'pending_csms': sorted(csms - submitted),
    }
