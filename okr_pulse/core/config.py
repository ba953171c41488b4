"""
Central Configuration Module for OKR Pulse.

=== PURPOSE ===
This module is the single source of truth for every tunable constant used by
the roll-up engine: RAG threshold bands, the Key Result indicator-mix rule,
formula keywords, reference-name aliases, role scoping and the column names of
the flattened indicator frame.  Every other module imports from here rather
than defining its own magic numbers.

=== DATA FLOW ===
  1. RAG_GREEN_MIN / RAG_AMBER_MIN seed the default ``RAGThresholds`` used by
     ``okr_pulse.rag`` whenever a caller does not inject its own table.
  2. FORMULA_KEYWORDS drive ``okr_pulse.formulas.classifier`` which maps the
     free-text formula stored on a Key Result / Functional Objective to an
     aggregation strategy.
  3. ACTUAL_REFERENCE_NAMES / TARGET_REFERENCE_NAMES are the names an
     indicator-level formula may use for the indicator's own current and
     target values (e.g. ``MIN((Actual KPI % / Target KPI %) * 100, 100)``).
  4. COL_* constants name the columns of the DataFrame produced by
     ``okr_pulse.analysis.flatten_indicators``.

Deployment defaults for the RAG bands can be overridden through the
``OKR_RAG_GREEN_MIN`` and ``OKR_RAG_AMBER_MIN`` environment variables.
"""

import os
import logging

logger = logging.getLogger(__name__)


def _env_float(name, default):
    """Read a float from the environment, keeping ``default`` when unusable."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Config] Ignoring non-numeric {name}={raw!r}; using {default}")
        return default


# ==========================================
# RAG THRESHOLD BANDS
# ==========================================
# Standard bands used consistently across the whole portfolio:
#   76-100+ = Green (On Track), 51-75 = Amber (At Risk), <51 = Red (Critical)
# Admins may replace these per deployment; the classifier accepts an injected
# table and falls back to these values when none is supplied.
RAG_GREEN_MIN = _env_float("OKR_RAG_GREEN_MIN", 76.0)
RAG_AMBER_MIN = _env_float("OKR_RAG_AMBER_MIN", 51.0)

if not 0 <= RAG_AMBER_MIN <= RAG_GREEN_MIN:
    logger.warning(
        f"[Config] Inconsistent RAG bands green>={RAG_GREEN_MIN}, amber>={RAG_AMBER_MIN}; "
        f"using 76 / 51"
    )
    RAG_GREEN_MIN, RAG_AMBER_MIN = 76.0, 51.0

# ==========================================
# KEY RESULT INDICATOR-MIX RULE
# ==========================================
# Second, independent way of deriving a KR status: from the share of its
# indicators in each band rather than from the blended percentage.
#   Critical : >= 50% of KPIs are Red
#   At Risk  : >= 30% Red, OR >= 50% Amber
#   On Track : otherwise
KR_MIX_RED_SHARE_RED = 0.50
KR_MIX_RED_SHARE_AMBER = 0.30
KR_MIX_AMBER_SHARE_AMBER = 0.50

# ==========================================
# STATUS SCORES & LABELS
# ==========================================
# Representative score for a status when only the status is known.
RAG_SCORES = {'green': 85, 'amber': 55, 'red': 25, 'not-set': 0}

# Per-status points used when a customer's health is derived from the
# statuses of its linked indicators.
STATUS_AVERAGE_SCORES = {'green': 100, 'amber': 60, 'red': 30}

RAG_LABELS = {
    'green': 'On Track',
    'amber': 'At Risk',
    'red': 'Critical',
    'not-set': 'Not Set',
}

# CSM score bands are stored as numeric weights: Green=1, Amber=0.5, Red=0
SCORE_BAND_GREEN = 1.0
SCORE_BAND_AMBER = 0.5

# ==========================================
# FORMULA KEYWORDS
# ==========================================
# Keyword formulas recognised case-insensitively by exact or prefix match.
# Anything else that is not blank is treated as an arithmetic expression.
FORMULA_KEYWORDS = {
    'AVG': ('AVG', 'AVERAGE', 'MEAN'),
    'WEIGHTED': ('WEIGHTED',),
    'MIN': ('MINIMUM', 'MIN'),
    'MAX': ('MAXIMUM', 'MAX'),
    'SUM': ('TOTAL', 'SUM'),
}

# Function names the expression evaluator understands (all variadic).
EXPRESSION_FUNCTIONS = ('MIN', 'MAX', 'AVG', 'AVERAGE', 'SUM')

# ==========================================
# REFERENCE NAMES
# ==========================================
# Names an indicator-level formula may use for the indicator's own values.
ACTUAL_REFERENCE_NAMES = ('Actual KPI', 'Actual', 'Current', 'Current Value')
TARGET_REFERENCE_NAMES = ('Target KPI', 'Target', 'Target Value')

# Positional aliases bound to children during expression aggregation:
# indicators under a KR are KPI1..n, KRs under an FO are KR1..n.
CHILD_ALIAS_PREFIX = {
    'key_result': 'KPI',
    'functional_objective': 'KR',
    'department': 'FO',
    'org_objective': 'DEPT',
}

# ==========================================
# ACCESS SCOPING
# ==========================================
# Roles that see the full portfolio; every other role is restricted to its
# list of accessible departments.
FULL_ACCESS_ROLES = ('admin', 'department_head')

# ==========================================
# FLATTENED INDICATOR FRAME COLUMNS
# ==========================================
COL_ORG_OBJECTIVE_ID = 'org_objective_id'
COL_BUSINESS_OUTCOME = 'business_outcome'
COL_DEPARTMENT_ID = 'department_id'
COL_FUNCTIONAL_OBJECTIVE_ID = 'functional_objective_id'
COL_KEY_RESULT_ID = 'key_result_id'
COL_INDICATOR_ID = 'indicator_id'
COL_INDICATOR_NAME = 'indicator_name'
COL_CURRENT_VALUE = 'current_value'
COL_TARGET_VALUE = 'target_value'
COL_PROGRESS = 'progress'
COL_STATUS = 'status'
COL_CUSTOMER_IDS = 'customer_ids'
COL_FEATURE_IDS = 'feature_ids'
COL_PERIOD = 'period'

INDICATOR_FRAME_COLUMNS = [
    COL_ORG_OBJECTIVE_ID, COL_BUSINESS_OUTCOME, COL_DEPARTMENT_ID,
    COL_FUNCTIONAL_OBJECTIVE_ID, COL_KEY_RESULT_ID, COL_INDICATOR_ID,
    COL_INDICATOR_NAME, COL_CURRENT_VALUE, COL_TARGET_VALUE, COL_PROGRESS,
    COL_STATUS, COL_CUSTOMER_IDS, COL_FEATURE_IDS, COL_PERIOD,
]
