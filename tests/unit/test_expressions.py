"""
Unit tests for the gate expression evaluator.
"""

import pytest

from workflow_dag.expressions import (
    RUNTIME_ERROR,
    SYNTAX_ERROR,
    TYPE_ERROR,
    ExpressionError,
    SimpleExpressionEvaluator,
    tokenize,
)


@pytest.fixture
def evaluator() -> SimpleExpressionEvaluator:
    return SimpleExpressionEvaluator()


@pytest.fixture
def context() -> dict:
    return {
        "github": {"ref": "refs/heads/main", "event_name": "push", "run_attempt": 2},
        "gate_only_main": True,
        "branch": "main",
        "count": 5,
        "labels": ["release", "ci"],
    }


class TestTokenizer:
    """Tests for tokenization."""

    def test_tokens_and_positions(self):
        tokens = tokenize("github.ref == 'main'")

        assert [(t.kind, t.value, t.position) for t in tokens] == [
            ("name", "github.ref", 0),
            ("op", "==", 11),
            ("string", "'main'", 14),
            ("end", "", 20),
        ]

    def test_unexpected_character(self):
        with pytest.raises(ExpressionError) as exc_info:
            tokenize("a == $b")

        assert exc_info.value.reason == SYNTAX_ERROR
        assert exc_info.value.position == 5


class TestEvaluateBoolean:
    """Tests for boolean evaluation against a context."""

    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("github.ref == 'refs/heads/main'", True),
            ('github.ref != "refs/heads/main"', False),
            ("github.event_name == 'push' && branch == 'main'", True),
            ("github.event_name == 'pull_request' || branch == 'main'", True),
            ("!gate_only_main", False),
            ("not (count > 10)", True),
            ("count >= 5 and count < 6", True),
            ("github.run_attempt <= 1", False),
            ("'release' in labels", True),
            ("'docs' not in labels", True),
            ("branch in ['main', 'develop']", True),
            ("true && !false", True),
            ("github.missing == null", True),
            ("count == 5.0", True),
        ],
    )
    def test_expressions(self, evaluator, context, expression, expected):
        assert evaluator.evaluate_boolean(expression, context) is expected

    def test_and_binds_tighter_than_or(self, evaluator):
        assert evaluator.evaluate_boolean("true || false && false", {}) is True
        assert evaluator.evaluate_boolean("(true || false) && false", {}) is False

    def test_short_circuit_skips_unknown_identifier(self, evaluator):
        """Test the right side is not evaluated when the left decides."""
        assert evaluator.evaluate_boolean("false && undefined_name", {}) is False
        assert evaluator.evaluate_boolean("true || undefined_name", {}) is True

    def test_escaped_quote(self, evaluator):
        assert evaluator.evaluate_boolean(r"msg == 'it\'s'", {"msg": "it's"}) is True

    def test_non_boolean_result_is_type_error(self, evaluator, context):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate_boolean("github.ref", context)

        assert exc_info.value.reason == TYPE_ERROR


class TestEvaluate:
    """Tests for general evaluation."""

    def test_returns_values(self, evaluator, context):
        assert evaluator.evaluate("github.ref", context) == "refs/heads/main"
        assert evaluator.evaluate("count", context) == 5
        assert evaluator.evaluate("[1, 'a', null]", {}) == [1, "a", None]

    def test_compile_once_evaluate_many(self, evaluator):
        compiled = evaluator.compile("branch == 'main'")

        assert compiled.evaluate({"branch": "main"}) is True
        assert compiled.evaluate({"branch": "dev"}) is False
        assert evaluator.compile("branch == 'main'") is compiled


class TestErrors:
    """Tests for error reporting."""

    def test_unknown_identifier_is_runtime_error(self, evaluator):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate_boolean("github.ref == 'main'", {})

        assert exc_info.value.reason == RUNTIME_ERROR
        assert exc_info.value.position == 0
        assert exc_info.value.expression == "github.ref == 'main'"

    def test_ordering_mismatched_types_is_type_error(self, evaluator, context):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate_boolean("branch > 3", context)

        assert exc_info.value.reason == TYPE_ERROR

    def test_dotted_access_on_scalar_is_type_error(self, evaluator, context):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate("branch.name", context)

        assert exc_info.value.reason == TYPE_ERROR

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "a ==",
            "(a == 1",
            "a == 1)",
            "a b",
            "&& a",
            "[1, 2",
        ],
    )
    def test_syntax_errors(self, evaluator, expression):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.compile(expression)

        assert exc_info.value.reason == SYNTAX_ERROR

    def test_no_attribute_access(self, evaluator):
        """Test identifiers only navigate dicts, never object attributes."""

        class Secret:
            token = "hunter2"

        with pytest.raises(ExpressionError):
            evaluator.evaluate("obj.token", {"obj": Secret()})
