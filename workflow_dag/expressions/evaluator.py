"""
Sandboxed boolean expression evaluation for gate conditions.

Parses a small expression language without eval/exec:
- literals: 'str', "str", 42, 1.5, true, false, null, [a, b]
- identifiers with dotted paths: github.ref, gate_only_main
- comparisons: == != < <= > >= in, not in
- logic: && || ! (and or not as keywords), parentheses

Security:
- No eval/exec
- Identifiers resolve only through dict keys of the supplied context
"""

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from workflow_dag.errors import WorkflowDAGError

SYNTAX_ERROR = "syntax_error"
RUNTIME_ERROR = "runtime_error"
TYPE_ERROR = "type_error"


class ExpressionError(WorkflowDAGError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(
        self,
        reason: str,
        message: str,
        expression: str,
        position: Optional[int] = None,
    ):
        self.reason = reason
        self.message = message
        self.expression = expression
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{reason}: {message}{where} in expression {expression!r}")


class CompiledExpression(Protocol):
    """A parsed expression that can be evaluated many times."""

    def evaluate(self, context: dict[str, Any]) -> Any: ...


class ExpressionEvaluator(Protocol):
    """Capability used by runners to decide gate conditions."""

    def evaluate_boolean(self, expression: str, context: dict[str, Any]) -> bool: ...

    def evaluate(self, expression: str, context: dict[str, Any]) -> Any: ...

    def compile(self, expression: str) -> CompiledExpression: ...


@dataclass(frozen=True)
class Token:
    """A lexical token with its offset in the source expression."""

    kind: str  # number | string | op | name | end
    value: str
    position: int


TOKEN_PATTERN = re.compile(
    r"""
    (?P<number>\d+(?:\.\d+)?)
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<op>==|!=|<=|>=|&&|\|\||[<>!()\[\],])
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    """,
    re.VERBOSE,
)

KEYWORDS = {"and", "or", "not", "in", "true", "false", "null"}

COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "in": lambda a, b: a in b,
    "not in": lambda a, b: a not in b,
}


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens, ending with an ``end`` token."""
    tokens: list[Token] = []
    pos = 0

    while pos < len(expression):
        if expression[pos].isspace():
            pos += 1
            continue

        match = TOKEN_PATTERN.match(expression, pos)
        if not match:
            raise ExpressionError(
                SYNTAX_ERROR,
                f"Unexpected character {expression[pos]!r}",
                expression,
                pos,
            )

        kind = match.lastgroup or ""
        tokens.append(Token(kind, match.group(0), pos))
        pos = match.end()

    tokens.append(Token("end", "", len(expression)))
    return tokens


class _Parser:
    """Recursive-descent parser producing a tuple-based syntax tree."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *values: str) -> Optional[Token]:
        token = self.current
        if token.kind in ("op", "name") and token.value in values:
            return self._advance()
        return None

    def _expect(self, value: str) -> Token:
        token = self._accept(value)
        if token is None:
            raise self._error(f"Expected {value!r}")
        return token

    def _error(self, message: str) -> ExpressionError:
        token = self.current
        found = "end of expression" if token.kind == "end" else repr(token.value)
        return ExpressionError(SYNTAX_ERROR, f"{message}, found {found}", self.expression, token.position)

    def parse(self) -> tuple:
        if self.current.kind == "end":
            raise self._error("Empty expression")
        tree = self._parse_or()
        if self.current.kind != "end":
            raise self._error("Unexpected token")
        return tree

    def _parse_or(self) -> tuple:
        left = self._parse_and()
        while self._accept("||", "or"):
            left = ("or", left, self._parse_and())
        return left

    def _parse_and(self) -> tuple:
        left = self._parse_not()
        while self._accept("&&", "and"):
            left = ("and", left, self._parse_not())
        return left

    def _parse_not(self) -> tuple:
        if self._accept("!", "not"):
            return ("not", self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self) -> tuple:
        left = self._parse_primary()

        token = self.current
        if token.kind == "op" and token.value in COMPARISONS:
            self._advance()
            return ("cmp", token.value, left, self._parse_primary(), token.position)
        if token.kind == "name" and token.value == "in":
            self._advance()
            return ("cmp", "in", left, self._parse_primary(), token.position)
        if token.kind == "name" and token.value == "not" and self._peek_is("in"):
            self._advance()
            self._advance()
            return ("cmp", "not in", left, self._parse_primary(), token.position)

        return left

    def _peek_is(self, value: str) -> bool:
        following = self.tokens[self.index + 1]
        return following.kind == "name" and following.value == value

    def _parse_primary(self) -> tuple:
        token = self.current

        if token.kind == "number":
            self._advance()
            value = float(token.value) if "." in token.value else int(token.value)
            return ("lit", value)

        if token.kind == "string":
            self._advance()
            return ("lit", _unquote(token.value))

        if token.kind == "name":
            if token.value == "true":
                self._advance()
                return ("lit", True)
            if token.value == "false":
                self._advance()
                return ("lit", False)
            if token.value == "null":
                self._advance()
                return ("lit", None)
            if token.value.split(".")[0] in KEYWORDS:
                raise self._error("Unexpected keyword")
            self._advance()
            return ("var", token.value.split("."), token.position)

        if self._accept("("):
            inner = self._parse_or()
            self._expect(")")
            return inner

        if self._accept("["):
            items: list[tuple] = []
            if not self._accept("]"):
                items.append(self._parse_or())
                while self._accept(","):
                    items.append(self._parse_or())
                self._expect("]")
            return ("list", items)

        raise self._error("Expected a value")


def _unquote(literal: str) -> str:
    """Strip quotes and resolve backslash escapes of a string literal."""
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: m.group(1), body)


class _CompiledExpression:
    """Parsed syntax tree bound to its source text."""

    def __init__(self, expression: str, tree: tuple):
        self.expression = expression
        self._tree = tree

    def evaluate(self, context: dict[str, Any]) -> Any:
        return self._eval(self._tree, context)

    def _eval(self, node: tuple, context: dict[str, Any]) -> Any:
        kind = node[0]

        if kind == "lit":
            return node[1]
        if kind == "list":
            return [self._eval(item, context) for item in node[1]]
        if kind == "var":
            return self._lookup(node[1], node[2], context)
        if kind == "not":
            return not self._eval(node[1], context)
        if kind == "and":
            return bool(self._eval(node[1], context)) and bool(self._eval(node[2], context))
        if kind == "or":
            return bool(self._eval(node[1], context)) or bool(self._eval(node[2], context))
        if kind == "cmp":
            _, op, left, right, position = node
            left_value = self._eval(left, context)
            right_value = self._eval(right, context)
            try:
                return COMPARISONS[op](left_value, right_value)
            except TypeError as e:
                raise ExpressionError(TYPE_ERROR, str(e), self.expression, position) from e

        raise ExpressionError(RUNTIME_ERROR, f"Unknown syntax node {kind!r}", self.expression)

    def _lookup(self, path: list[str], position: int, context: dict[str, Any]) -> Any:
        """
        Resolve a dotted identifier.

        An unknown root name is an error; a missing nested key yields null.
        Only dict navigation is allowed, never attribute access.
        """
        root = path[0]
        if root not in context:
            raise ExpressionError(RUNTIME_ERROR, f"Unknown identifier '{root}'", self.expression, position)

        current = context[root]
        for key in path[1:]:
            if current is None:
                return None
            if not isinstance(current, dict):
                raise ExpressionError(
                    TYPE_ERROR,
                    f"Cannot read '{key}' from a {type(current).__name__}",
                    self.expression,
                    position,
                )
            current = current.get(key)

        return current


class SimpleExpressionEvaluator:
    """
    Default expression evaluator.

    Compiled expressions are cached by source text.
    """

    def __init__(self) -> None:
        self._cache: dict[str, _CompiledExpression] = {}

    def compile(self, expression: str) -> _CompiledExpression:
        """Parse an expression once for repeated evaluation."""
        compiled = self._cache.get(expression)
        if compiled is None:
            compiled = _CompiledExpression(expression, _Parser(expression).parse())
            self._cache[expression] = compiled
        return compiled

    def evaluate(self, expression: str, context: dict[str, Any]) -> Any:
        """Evaluate an expression to any value."""
        return self.compile(expression).evaluate(context)

    def evaluate_boolean(self, expression: str, context: dict[str, Any]) -> bool:
        """
        Evaluate an expression that must produce a boolean.

        Raises:
            ExpressionError: reason ``type_error`` if the result is not a bool
        """
        result = self.evaluate(expression, context)
        if not isinstance(result, bool):
            raise ExpressionError(
                TYPE_ERROR,
                f"Expected a boolean result, got {type(result).__name__}",
                expression,
            )
        return result
