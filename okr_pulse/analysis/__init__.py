"""
Analysis module for OKR Pulse.

Contains status breakdowns, compliance tracking and hierarchy filtering.
"""

from .status_breakdown import (
    BreakdownScope,
    StatusBreakdown,
    flatten_indicators,
    apply_scope,
    count_statuses,
    breakdown_by,
    previous_period,
    customer_compliance,
    compliance_summary,
)
from .scope_filter import (
    HierarchyFilter,
    indicator_matches,
    filter_hierarchy,
    department_allowlist_for,
)

__all__ = [
    # Status breakdown
    'BreakdownScope',
    'StatusBreakdown',
    'flatten_indicators',
    'apply_scope',
    'count_statuses',
    'breakdown_by',
    'previous_period',
    # Compliance
    'customer_compliance',
    'compliance_summary',
    # Filtering
    'HierarchyFilter',
    'indicator_matches',
    'filter_hierarchy',
    'department_allowlist_for',
]
