"""
Formula Classifier.

Maps the free-text ``formula`` stored on a Key Result or Functional Objective
to one of a closed set of aggregation strategies:

    AVG        arithmetic mean of the set child values
    WEIGHTED   weighted mean; weights may be written in the formula
    MIN / MAX  smallest / largest set child value
    SUM        total of the set child values
    EXPRESSION a custom arithmetic formula, evaluated by ``expression.py``
    DEFAULT    no formula at all; aggregated exactly like AVG

Keywords are matched case-insensitively, exactly or as a prefix
(``"Average of KPIs"`` is AVG, ``"WEIGHTED_AVG"`` is WEIGHTED).  A keyword
written as a function call (``MIN((a / b) * 100, 100)``) is an expression,
not a keyword, with one exception: ``WEIGHTED(2, 1, 1)`` lists weights.
Likewise a keyword followed by arithmetic (``"Total Revenue * 0.5"``,
``"Mean Time To Resolve / 2"``) starts a reference name, so the whole text
is an expression.
"""

import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..core.config import FORMULA_KEYWORDS
from ..core.utils import clean_text

logger = logging.getLogger(__name__)


class FormulaType(Enum):
    """Aggregation strategy selected by a formula string."""
    AVG = "AVG"
    WEIGHTED = "WEIGHTED"
    MIN = "MIN"
    MAX = "MAX"
    SUM = "SUM"
    EXPRESSION = "EXPRESSION"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class FormulaKind:
    """
    Tagged result of classifying a formula.

    Attributes:
        type: The aggregation strategy.
        weights: Weights written in a WEIGHTED formula, or None.
        raw: The original text for EXPRESSION formulas.
    """
    type: FormulaType
    weights: Optional[Tuple[float, ...]] = None
    raw: Optional[str] = None

    @property
    def is_average(self) -> bool:
        return self.type in (FormulaType.AVG, FormulaType.DEFAULT)

    def __str__(self) -> str:
        if self.type == FormulaType.WEIGHTED and self.weights:
            return f"WEIGHTED({', '.join(f'{w:g}' for w in self.weights)})"
        if self.type == FormulaType.EXPRESSION:
            return self.raw or ""
        return self.type.value


# Longest keywords first so MINIMUM is tried before MIN
_KEYWORDS = sorted(
    ((keyword, FormulaType(kind))
     for kind, keywords in FORMULA_KEYWORDS.items()
     for keyword in keywords),
    key=lambda item: len(item[0]),
    reverse=True,
)

_WEIGHTED_SUFFIX_RE = re.compile(r'^[\s_]*(?:AVERAGE|AVG|MEAN)?', re.IGNORECASE)
_ARITHMETIC_RE = re.compile(r'[+\-*/×÷]')


def _matches_keyword(upper: str, keyword: str) -> bool:
    """Exact or prefix match ending on a word boundary."""
    if not upper.startswith(keyword):
        return False
    rest = upper[len(keyword):]
    return not rest or not rest[0].isalnum()


def _parse_weights(rest: str) -> Optional[Tuple[float, ...]]:
    """
    Parse the weight list following a WEIGHTED keyword.

    Accepts ``(2, 1, 1)`` and ``: 0.5, 0.3, 0.2`` (``=`` also works as the
    separator).  Anything else, including a list with a non-numeric entry,
    yields None.
    """
    rest = _WEIGHTED_SUFFIX_RE.sub('', rest, count=1).strip()
    if not rest:
        return None

    if rest.startswith('(') and rest.endswith(')'):
        body = rest[1:-1]
    elif rest[0] in ':=':
        body = rest[1:]
    else:
        return None

    parts = [p for p in re.split(r'[,;\s]+', body.strip()) if p]
    if not parts:
        return None
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        logger.debug(f"[Formula] Ignoring malformed weight list {rest!r}")
        return None


def parse_formula_type(formula) -> FormulaKind:
    """
    Classify a stored formula string.

    Args:
        formula: Formula text, None, or an already classified ``FormulaKind``.

    Returns:
        FormulaKind.  None / blank text gives DEFAULT; unrecognised text
        gives EXPRESSION carrying the raw formula.
    """
    if isinstance(formula, FormulaKind):
        return formula

    text = clean_text(formula)
    if not text:
        return FormulaKind(FormulaType.DEFAULT)

    upper = text.upper()

    for keyword, formula_type in _KEYWORDS:
        if not _matches_keyword(upper, keyword):
            continue
        rest = text[len(keyword):]
        if formula_type == FormulaType.WEIGHTED:
            weights = _parse_weights(rest)
            if weights is not None or not _ARITHMETIC_RE.search(rest):
                return FormulaKind(FormulaType.WEIGHTED, weights=weights)
            break
        if rest.lstrip().startswith('(') or _ARITHMETIC_RE.search(rest):
            # MIN(...) or "Total Revenue * 0.5": the keyword opens an arithmetic formula
            break
        return FormulaKind(formula_type)

    return FormulaKind(FormulaType.EXPRESSION, raw=text)
