"""
RAG module for OKR Pulse.

Contains threshold configuration and the two status classification modes
(percentage bands and Key Result indicator mix).
"""

from ..models.data_models import RAGStatus
from .thresholds import (
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

__all__ = [
    'RAGStatus',
    'RAGThresholds',
    'resolve_thresholds',
    'progress_to_rag',
    'score_to_rag',
    'kr_status_from_indicator_mix',
    'rag_to_score',
    'rag_label',
    'band_to_rag',
    'status_average_to_rag',
]
