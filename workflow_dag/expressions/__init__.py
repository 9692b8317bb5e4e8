"""Gate condition expressions."""

from workflow_dag.expressions.evaluator import (
    RUNTIME_ERROR,
    SYNTAX_ERROR,
    TYPE_ERROR,
    CompiledExpression,
    ExpressionError,
    ExpressionEvaluator,
    SimpleExpressionEvaluator,
    tokenize,
)

__all__ = [
    "RUNTIME_ERROR",
    "SYNTAX_ERROR",
    "TYPE_ERROR",
    "CompiledExpression",
    "ExpressionError",
    "ExpressionEvaluator",
    "SimpleExpressionEvaluator",
    "tokenize",
]
