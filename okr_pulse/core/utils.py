"""
Utility functions for value coercion, reference-name matching and logging.
"""

import re
import math
import time
import logging
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)


def to_float(value):
    """Coerce a raw numeric field to float, returning None for missing values."""
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def normalize_reference_name(name) -> str:
    """
    Normalize a formula reference name for matching.

    Matching is case- and whitespace-insensitive and ignores a percent sign,
    so ``"Actual KPI %"``, ``"actual kpi"`` and ``"ACTUALKPI"`` are the same
    reference.
    """
    if name is None:
        return ""
    text = str(name).replace('%', '')
    return re.sub(r'\s+', '', text).lower()


def clean_text(text):
    """Clean and normalize free text (formula strings, names)."""
    if text is None:
        return ""
    try:
        if pd.isna(text):
            return ""
    except (TypeError, ValueError):
        pass
    return re.sub(r'\s+', ' ', str(text)).strip()


def setup_logging(verbose: bool = False, log_dir=None):
    """
    Configure the root logger with a console handler and an optional file handler.

    The file handler always captures DEBUG-level messages (per-entity roll-up
    traces), while the console handler shows only warnings (formula fallbacks,
    malformed threshold config) or info in verbose mode.

    Args:
        verbose: When True, lower the console handler to INFO level.
        log_dir: Directory for a timestamped log file.  No file is written
                 when this is None.

    Returns:
        Path to the log file, or None when no file handler was attached.
    """
    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Calling twice must not duplicate log lines
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = time.strftime('%Y%m%d_%H%M%S')
        log_file = log_dir / f"okr_pulse_{timestamp}.log"

        file_formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logger.debug(f"Logging configured (verbose={verbose}, file={log_file})")
    return log_file
