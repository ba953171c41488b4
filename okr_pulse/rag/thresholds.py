"""
RAG (Red / Amber / Green) Classification.

Maps roll-up percentages to traffic-light status bands.

Architecture Overview:
    Threshold bands are an explicit ``RAGThresholds`` value threaded into
    every classification call rather than ambient global state.  Callers
    that pass nothing get the deployment defaults from ``core.config``
    (76 / 51 unless overridden through the environment).

    Two independent classification modes exist for a Key Result and both
    are kept as-is:

    1. **Percentage bands** (``progress_to_rag``): the KR's blended
       roll-up percentage compared against the thresholds.
    2. **Indicator mix** (``kr_status_from_indicator_mix``): the share of
       the KR's indicators sitting in each band.

    The two can disagree for the same KR; views choose which one they show.

Default bands:
    >= 76        Green  (On Track)
    51 .. < 76   Amber  (At Risk)
    < 51         Red    (Critical)
    no data      Not Set
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Any

from ..core.config import (
    RAG_GREEN_MIN,
    RAG_AMBER_MIN,
    KR_MIX_RED_SHARE_RED,
    KR_MIX_RED_SHARE_AMBER,
    KR_MIX_AMBER_SHARE_AMBER,
    RAG_SCORES,
    RAG_LABELS,
    STATUS_AVERAGE_SCORES,
    SCORE_BAND_GREEN,
    SCORE_BAND_AMBER,
)
from ..core.utils import to_float
from ..models.data_models import RAGStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RAGThresholds:
    """
    Injectable threshold table.

    Attributes:
        green_min (float): Lowest percentage classified Green.
        amber_min (float): Lowest percentage classified Amber.  Anything
            below is Red.

    Raises:
        ValueError: If the bands are not finite or not
            ``0 <= amber_min <= green_min``.
    """
    green_min: float = RAG_GREEN_MIN
    amber_min: float = RAG_AMBER_MIN

    def __post_init__(self):
        green = to_float(self.green_min)
        amber = to_float(self.amber_min)
        if green is None or amber is None or not (math.isfinite(green) and math.isfinite(amber)):
            raise ValueError(f"RAG thresholds must be numbers, got green_min={self.green_min!r}, "
                             f"amber_min={self.amber_min!r}")
        if not 0 <= amber <= green:
            raise ValueError(f"RAG thresholds must satisfy 0 <= amber_min <= green_min, "
                             f"got green_min={green}, amber_min={amber}")
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, 'green_min', green)
        object.__setattr__(self, 'amber_min', amber)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'RAGThresholds':
        """
        Build from ``{green_min, amber_min}`` or from the admin table shape
        ``{green_threshold, amber_threshold}``.  Missing keys keep defaults.
        """
        green = config.get('green_min', config.get('green_threshold', RAG_GREEN_MIN))
        amber = config.get('amber_min', config.get('amber_threshold', RAG_AMBER_MIN))
        return cls(green_min=green, amber_min=amber)

    def to_dict(self) -> Dict[str, float]:
        return {'green_min': self.green_min, 'amber_min': self.amber_min}

    def classify(self, percentage) -> RAGStatus:
        """Band a percentage; None / NaN is NOT_SET."""
        value = to_float(percentage)
        if value is None:
            return RAGStatus.NOT_SET
        if value >= self.green_min:
            return RAGStatus.GREEN
        if value >= self.amber_min:
            return RAGStatus.AMBER
        return RAGStatus.RED


def resolve_thresholds(config=None) -> RAGThresholds:
    """
    Turn whatever the caller supplied into a valid ``RAGThresholds``.

    Accepts None (defaults), a ``RAGThresholds`` or a dict.  A malformed
    dict is logged and replaced by the defaults so a bad admin setting
    cannot break classification.
    """
    if config is None:
        return RAGThresholds()
    if isinstance(config, RAGThresholds):
        return config
    if isinstance(config, dict):
        try:
            return RAGThresholds.from_dict(config)
        except ValueError as e:
            logger.warning(f"[RAG] Malformed threshold config {config!r}: {e}; using defaults")
            return RAGThresholds()
    logger.warning(f"[RAG] Unsupported threshold config type {type(config).__name__}; using defaults")
    return RAGThresholds()


# ============================================================================
# PERCENTAGE CLASSIFICATION
# ============================================================================

def progress_to_rag(percentage: Optional[float], thresholds=None) -> RAGStatus:
    """
    Classify a roll-up percentage.

    Args:
        percentage: Progress in percent, or None when nothing was set.
        thresholds: ``RAGThresholds``, a threshold dict, or None for defaults.

    Returns:
        RAGStatus.  A 0% value with data is RED, not NOT_SET.
    """
    return resolve_thresholds(thresholds).classify(percentage)


def score_to_rag(score: Optional[float]) -> RAGStatus:
    """``progress_to_rag`` with the default thresholds."""
    return progress_to_rag(score)


# ============================================================================
# INDICATOR-MIX CLASSIFICATION (KEY RESULTS)
# ============================================================================

def kr_status_from_indicator_mix(statuses: Iterable) -> RAGStatus:
    """
    Derive a Key Result status from its indicators' individual statuses.

    Rules, evaluated over indicators that have a status:
        Red    if >= 50% of them are red
        Amber  if >= 30% are red, or >= 50% are amber
        Green  otherwise

    Returns NOT_SET when no indicator has a status.
    """
    counted = [RAGStatus.from_value(s) for s in statuses]
    counted = [s for s in counted if s != RAGStatus.NOT_SET]
    if not counted:
        return RAGStatus.NOT_SET

    total = len(counted)
    red_share = sum(1 for s in counted if s == RAGStatus.RED) / total
    amber_share = sum(1 for s in counted if s == RAGStatus.AMBER) / total

    if red_share >= KR_MIX_RED_SHARE_RED:
        return RAGStatus.RED
    if red_share >= KR_MIX_RED_SHARE_AMBER or amber_share >= KR_MIX_AMBER_SHARE_AMBER:
        return RAGStatus.AMBER
    return RAGStatus.GREEN


# ============================================================================
# STATUS <-> SCORE HELPERS
# ============================================================================

def rag_to_score(status) -> int:
    """Representative score for a status (85 / 55 / 25, 0 when not set)."""
    return RAG_SCORES[RAGStatus.from_value(status).value]


def rag_label(status) -> str:
    """Display label: On Track, At Risk, Critical or Not Set."""
    return RAG_LABELS[RAGStatus.from_value(status).value]


def band_to_rag(value) -> RAGStatus:
    """Classify a stored CSM score band (1 = Green, 0.5 = Amber, 0 = Red)."""
    band = to_float(value)
    if band is None:
        return RAGStatus.NOT_SET
    if band >= SCORE_BAND_GREEN:
        return RAGStatus.GREEN
    if band >= SCORE_BAND_AMBER:
        return RAGStatus.AMBER
    return RAGStatus.RED


def status_average_to_rag(statuses: Iterable, thresholds=None) -> RAGStatus:
    """
    Health of an entity that only knows its children's statuses.

    Each set status earns points (Green 100, Amber 60, Red 30); the mean is
    classified with the percentage bands.  Used for customer and feature
    health derived from linked indicators.
    """
    points = [
        STATUS_AVERAGE_SCORES[status.value]
        for status in (RAGStatus.from_value(s) for s in statuses)
        if status != RAGStatus.NOT_SET
    ]
    if not points:
        return RAGStatus.NOT_SET
    return progress_to_rag(sum(points) / len(points), thresholds)
