"""
Arithmetic Expression Evaluator for custom roll-up formulas.

Admins may store a free-text arithmetic formula on a Key Result, a Functional
Objective or an Indicator instead of a keyword such as ``AVG``.  This module
parses those formulas once into an immutable expression tree and evaluates
the tree against a mapping of reference names to numbers.

Grammar (standard precedence, left associative)::

    expression := term   (('+' | '-') term)*
    term       := unary  (('*' | '/' | '×' | '÷') unary)*
    unary      := ('-' | '+') unary | primary
    primary    := NUMBER ['%']
                | NAME '(' expression (',' expression)* ')'
                | NAME ['%']
                | '(' expression ')'

- NUMBER is an integer or decimal literal.  A trailing ``%`` is a marker
  only: roll-up values already live in percent space, so ``50%`` is 50.
- NAME is a reference to a bound value.  It may contain inner spaces
  (``Actual KPI``) and is matched case- and whitespace-insensitively.
- Function names (MIN, MAX, AVG, AVERAGE, SUM) are variadic.

Example::

    >>> evaluate("MIN((Actual KPI % / Target KPI %) × 100, 100)",
    ...          {"Actual KPI": 45, "Target KPI": 60})
    75.0

Failure modes (malformed syntax, unknown reference, division by zero or a
non-finite result) raise ``EvaluationError``.  ``try_evaluate`` wraps the
same evaluation in an ``EvaluationResult`` so callers can branch on
``result.ok`` instead of catching.
"""

import re
import math
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple, Union

from ..core.config import EXPRESSION_FUNCTIONS
from ..core.utils import normalize_reference_name

logger = logging.getLogger(__name__)


class EvaluationError(ValueError):
    """Raised when a formula cannot be parsed or evaluated.

    Attributes:
        position: Character offset in the source where the problem was found,
            or None when it is not tied to a location.
    """

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


# ============================================================================
# TOKENIZER
# ============================================================================

_NUMBER_RE = re.compile(r'\d+(?:\.\d*)?|\.\d+')
_NAME_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_. ]*')

_OPERATOR_ALIASES = {'×': '*', '÷': '/'}


@dataclass(frozen=True)
class Token:
    kind: str          # NUMBER, NAME, OP, LPAREN, RPAREN, COMMA, END
    text: str
    position: int


def tokenize(source: str) -> List[Token]:
    """Split a formula into tokens, dropping ``%`` markers after values."""
    tokens: List[Token] = []
    i = 0
    length = len(source)

    while i < length:
        ch = source[i]

        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or (ch == '.' and i + 1 < length and source[i + 1].isdigit()):
            match = _NUMBER_RE.match(source, i)
            if match is None:
                # str.isdigit() also accepts superscripts and other non-decimal digits
                raise EvaluationError(f"Unexpected character {ch!r}", i)
            tokens.append(Token('NUMBER', match.group(), i))
            i = match.end()
            continue

        if ch.isalpha() or ch == '_':
            match = _NAME_RE.match(source, i)
            if match is None:
                raise EvaluationError(f"Unexpected character {ch!r}", i)
            # Inner spaces belong to the name, trailing ones do not
            name = match.group().rstrip()
            tokens.append(Token('NAME', name, i))
            i += len(name)
            continue

        if ch == '%':
            if not tokens or tokens[-1].kind not in ('NUMBER', 'NAME', 'RPAREN'):
                raise EvaluationError("Unexpected '%'", i)
            i += 1
            continue

        if ch in '+-*/' or ch in _OPERATOR_ALIASES:
            tokens.append(Token('OP', _OPERATOR_ALIASES.get(ch, ch), i))
        elif ch == '(':
            tokens.append(Token('LPAREN', ch, i))
        elif ch == ')':
            tokens.append(Token('RPAREN', ch, i))
        elif ch == ',':
            tokens.append(Token('COMMA', ch, i))
        else:
            raise EvaluationError(f"Unexpected character {ch!r}", i)
        i += 1

    tokens.append(Token('END', '', length))
    return tokens


# ============================================================================
# EXPRESSION TREE
# ============================================================================

@dataclass(frozen=True)
class Literal:
    value: float

    def evaluate(self, bindings: Dict[str, float]) -> float:
        return self.value


@dataclass(frozen=True)
class Reference:
    name: str
    position: int = 0

    @property
    def key(self) -> str:
        return normalize_reference_name(self.name)

    def evaluate(self, bindings: Dict[str, float]) -> float:
        if self.key not in bindings:
            raise EvaluationError(f"Unknown reference '{self.name}'", self.position)
        value = bindings[self.key]
        if value is None:
            raise EvaluationError(f"Reference '{self.name}' has no value", self.position)
        return float(value)


@dataclass(frozen=True)
class UnaryOp:
    operator: str
    operand: 'Node'

    def evaluate(self, bindings: Dict[str, float]) -> float:
        value = self.operand.evaluate(bindings)
        return -value if self.operator == '-' else value


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: 'Node'
    right: 'Node'
    position: int = 0

    def evaluate(self, bindings: Dict[str, float]) -> float:
        left = self.left.evaluate(bindings)
        right = self.right.evaluate(bindings)
        if self.operator == '+':
            return left + right
        if self.operator == '-':
            return left - right
        if self.operator == '*':
            return left * right
        if right == 0:
            raise EvaluationError("Division by zero", self.position)
        return left / right


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: Tuple['Node', ...]
    position: int = 0

    def evaluate(self, bindings: Dict[str, float]) -> float:
        values = [arg.evaluate(bindings) for arg in self.arguments]
        if self.name == 'MIN':
            return min(values)
        if self.name == 'MAX':
            return max(values)
        if self.name == 'SUM':
            return sum(values)
        # AVG / AVERAGE
        return sum(values) / len(values)


Node = Union[Literal, Reference, UnaryOp, BinaryOp, FunctionCall]


def iter_references(node: Node):
    """Yield every ``Reference`` in the tree, left to right."""
    if isinstance(node, Reference):
        yield node
    elif isinstance(node, UnaryOp):
        yield from iter_references(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_references(node.left)
        yield from iter_references(node.right)
    elif isinstance(node, FunctionCall):
        for arg in node.arguments:
            yield from iter_references(arg)


# ============================================================================
# PARSER
# ============================================================================

class _Parser:
    """Recursive-descent parser over the token list."""

    def __init__(self, source: str):
        self.tokens = tokenize(source)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def expect(self, kind: str, description: str) -> Token:
        if self.current.kind != kind:
            found = self.current.text or 'end of formula'
            raise EvaluationError(f"Expected {description}, found '{found}'",
                                  self.current.position)
        return self.advance()

    def parse(self) -> Node:
        node = self.expression()
        if self.current.kind != 'END':
            raise EvaluationError(f"Unexpected '{self.current.text}'", self.current.position)
        return node

    def expression(self) -> Node:
        node = self.term()
        while self.current.kind == 'OP' and self.current.text in '+-':
            op = self.advance()
            node = BinaryOp(op.text, node, self.term(), op.position)
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == 'OP' and self.current.text in '*/':
            op = self.advance()
            node = BinaryOp(op.text, node, self.unary(), op.position)
        return node

    def unary(self) -> Node:
        if self.current.kind == 'OP' and self.current.text in '+-':
            op = self.advance()
            return UnaryOp(op.text, self.unary())
        return self.primary()

    def primary(self) -> Node:
        token = self.current

        if token.kind == 'NUMBER':
            self.advance()
            return Literal(float(token.text))

        if token.kind == 'LPAREN':
            self.advance()
            node = self.expression()
            self.expect('RPAREN', "')'")
            return node

        if token.kind == 'NAME':
            self.advance()
            if self.current.kind == 'LPAREN':
                return self.function_call(token)
            return Reference(token.text, token.position)

        found = token.text or 'end of formula'
        raise EvaluationError(f"Expected a value, found '{found}'", token.position)

    def function_call(self, name_token: Token) -> Node:
        name = name_token.text.upper()
        if name not in EXPRESSION_FUNCTIONS:
            raise EvaluationError(f"Unknown function '{name_token.text}'", name_token.position)
        self.expect('LPAREN', "'('")
        arguments = [self.expression()]
        while self.current.kind == 'COMMA':
            self.advance()
            arguments.append(self.expression())
        self.expect('RPAREN', "')'")
        return FunctionCall(name, tuple(arguments), name_token.position)


@lru_cache(maxsize=512)
def compile_expression(source: str) -> Node:
    """
    Parse a formula into an expression tree.

    Trees are immutable, so results are cached by source string and shared
    across every roll-up pass.

    Raises:
        EvaluationError: If the formula is blank or malformed.
    """
    if source is None or not source.strip():
        raise EvaluationError("Empty formula")
    return _Parser(source).parse()


def referenced_names(expression: str) -> List[str]:
    """Distinct reference names used by a formula, in order of appearance."""
    if not expression or not expression.strip():
        return []
    seen = []
    for ref in iter_references(compile_expression(expression.strip())):
        if ref.name not in seen:
            seen.append(ref.name)
    return seen


# ============================================================================
# EVALUATION
# ============================================================================

@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of ``try_evaluate``.

    Attributes:
        value: Evaluated number, or None for a blank formula or on error.
        error: Human-readable failure reason, or None on success.
    """
    value: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_bindings(bindings: Optional[Dict[str, float]]) -> Dict[str, float]:
    """Key a binding mapping by normalized reference name."""
    return {normalize_reference_name(name): value for name, value in (bindings or {}).items()}


def evaluate(expression: Optional[str], bindings: Optional[Dict[str, float]] = None) -> Optional[float]:
    """
    Evaluate a formula against named values.

    Args:
        expression: Formula text.  None or whitespace-only means "no formula".
        bindings: Mapping of reference name -> number.

    Returns:
        The result as a float, or None when there is no formula.

    Raises:
        EvaluationError: Malformed formula, unknown reference, division by
            zero or a non-finite result.
    """
    if expression is None or not expression.strip():
        return None

    tree = compile_expression(expression.strip())
    value = tree.evaluate(normalize_bindings(bindings))

    if not math.isfinite(value):
        raise EvaluationError(f"Formula produced a non-finite result: {value}")
    return float(value)


def try_evaluate(expression: Optional[str], bindings: Optional[Dict[str, float]] = None) -> EvaluationResult:
    """Evaluate without raising; failures come back as ``EvaluationResult.error``."""
    try:
        return EvaluationResult(value=evaluate(expression, bindings))
    except EvaluationError as e:
        logger.debug(f"[Formula] Evaluation failed for {expression!r}: {e}")
        return EvaluationResult(error=str(e))
