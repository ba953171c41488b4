"""
Models module for OKR Pulse.

Contains the OKR hierarchy data models and record builders.
"""

from .data_models import (
    RAGStatus,
    Indicator,
    KeyResult,
    FunctionalObjective,
    Department,
    OrgObjective,
    ScoreRecord,
    load_hierarchy,
)

__all__ = [
    'RAGStatus',
    'Indicator',
    'KeyResult',
    'FunctionalObjective',
    'Department',
    'OrgObjective',
    'ScoreRecord',
    'load_hierarchy',
]
