"""
Core module for OKR Pulse.

Contains configuration constants and base utilities.
"""

from okr_pulse.core.config import *
from okr_pulse.core.utils import (
    to_float,
    normalize_reference_name,
    clean_text,
    setup_logging,
)

__all__ = [
    'to_float',
    'normalize_reference_name',
    'clean_text',
    'setup_logging',
]
