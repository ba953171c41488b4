"""
Formulas module for OKR Pulse.

Contains the formula classifier and the arithmetic expression evaluator
used for custom roll-up formulas.
"""

from .expression import (
    EvaluationError,
    EvaluationResult,
    Literal,
    Reference,
    UnaryOp,
    BinaryOp,
    FunctionCall,
    tokenize,
    compile_expression,
    referenced_names,
    evaluate,
    try_evaluate,
)
from .classifier import (
    FormulaType,
    FormulaKind,
    parse_formula_type,
)

__all__ = [
    # Expression evaluator
    'EvaluationError',
    'EvaluationResult',
    'Literal',
    'Reference',
    'UnaryOp',
    'BinaryOp',
    'FunctionCall',
    'tokenize',
    'compile_expression',
    'referenced_names',
    'evaluate',
    'try_evaluate',
    # Classifier
    'FormulaType',
    'FormulaKind',
    'parse_formula_type',
]
