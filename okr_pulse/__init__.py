"""
OKR Pulse - progress roll-up and RAG classification for OKR hierarchies.

This package computes health for an Org Objective -> Department ->
Functional Objective -> Key Result -> Indicator hierarchy:
- Formula classification (AVG, WEIGHTED, MIN, MAX, SUM, custom expressions)
- A small arithmetic expression evaluator for admin-entered formulas
- Bottom-up progress aggregation with graceful fallback to AVG
- RAG status classification with injectable thresholds
- Status breakdowns, CSM compliance tracking and hierarchy filtering
"""

__version__ = "1.0.0"
__author__ = "OKR Pulse Team"

# Core imports
from .core.config import *
from .core.utils import clean_text, normalize_reference_name, setup_logging

# Models
from .models import (
    RAGStatus,
    Indicator,
    KeyResult,
    FunctionalObjective,
    Department,
    OrgObjective,
    ScoreRecord,
    load_hierarchy,
)

# Formulas
from .formulas import (
    EvaluationError,
    EvaluationResult,
    FormulaType,
    FormulaKind,
    compile_expression,
    evaluate,
    try_evaluate,
    parse_formula_type,
)

# Aggregation
from .scoring import (
    AggregationOutcome,
    aggregate_progress,
    aggregate_with_trace,
    indicator_progress,
    key_result_progress,
    functional_objective_progress,
    department_progress,
    org_objective_progress,
    business_outcome_progress,
)

# RAG classification
from .rag import (
    RAGThresholds,
    resolve_thresholds,
    progress_to_rag,
    score_to_rag,
    kr_status_from_indicator_mix,
    rag_to_score,
    rag_label,
    band_to_rag,
    status_average_to_rag,
)

# Analysis
from .analysis import (
    BreakdownScope,
    StatusBreakdown,
    flatten_indicators,
    count_statuses,
    breakdown_by,
    customer_compliance,
    compliance_summary,
    HierarchyFilter,
    filter_hierarchy,
    department_allowlist_for,
)

# Pipeline
from .pipeline import PortfolioRollup, RollupNode, CalculationBreakdown

__all__ = [
    # Core
    'clean_text',
    'normalize_reference_name',
    'setup_logging',

    # Models
    'RAGStatus',
    'Indicator',
    'KeyResult',
    'FunctionalObjective',
    'Department',
    'OrgObjective',
    'ScoreRecord',
    'load_hierarchy',

    # Formulas
    'EvaluationError',
    'EvaluationResult',
    'FormulaType',
    'FormulaKind',
    'compile_expression',
    'evaluate',
    'try_evaluate',
    'parse_formula_type',

    # Aggregation
    'AggregationOutcome',
    'aggregate_progress',
    'aggregate_with_trace',
    'indicator_progress',
    'key_result_progress',
    'functional_objective_progress',
    'department_progress',
    'org_objective_progress',
    'business_outcome_progress',

    # RAG
    'RAGThresholds',
    'resolve_thresholds',
    'progress_to_rag',
    'score_to_rag',
    'kr_status_from_indicator_mix',
    'rag_to_score',
    'rag_label',
    'band_to_rag',
    'status_average_to_rag',

    # Analysis
    'BreakdownScope',
    'StatusBreakdown',
    'flatten_indicators',
    'count_statuses',
    'breakdown_by',
    'customer_compliance',
    'compliance_summary',
    'HierarchyFilter',
    'filter_hierarchy',
    'department_allowlist_for',

    # Pipeline
    'PortfolioRollup',
    'RollupNode',
    'CalculationBreakdown',
]
