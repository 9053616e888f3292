"""Tests for ${{ }} expression evaluation."""

import math

import pytest

from ghrun.actions.context import Context, GithubContext
from ghrun.actions.models import StepResult, StepStatus
from ghrun.exceptions import ExpressionError
from ghrun.variables.expressions import evaluate, extract_expressions, to_text


@pytest.fixture
def context():
    return Context(
        github=GithubContext(sha="abc123", repository="octo/repo", ref_name="main"),
        env={"MY_VAR": "value", "Mixed": "case"},
        steps={
            "build": StepResult(outputs={"version": "1.2.3"}, conclusion=StepStatus.SUCCESS,
                                outcome=StepStatus.SUCCESS),
        },
    )


class TestExtraction:

    def test_fragments_in_order(self):
        fragments = extract_expressions("a ${{ github.sha }} b ${{env.X}}")
        assert fragments == [("${{ github.sha }}", "github.sha"), ("${{env.X}}", "env.X")]

    def test_no_fragments(self):
        assert extract_expressions("plain") == []

    def test_braces_inside_string_literal(self):
        fragments = extract_expressions("${{ format('{0}}}', 'x') }}")
        assert fragments == [("${{ format('{0}}}', 'x') }}", "format('{0}}}', 'x')")]


class TestPropertyAccess:

    def test_dotted_access(self, context):
        assert evaluate("github.sha", context) == "abc123"
        assert evaluate("steps.build.outputs.version", context) == "1.2.3"

    def test_index_access(self, context):
        assert evaluate("env['MY_VAR']", context) == "value"

    def test_case_insensitive(self, context):
        assert evaluate("GitHub.SHA", context) == "abc123"
        assert evaluate("env.mixed", context) == "case"

    def test_missing_property_is_null(self, context):
        assert evaluate("env.MISSING", context) is None
        assert evaluate("steps.nope.outputs.version", context) is None

    def test_enum_compares_to_string(self, context):
        assert evaluate("steps.build.conclusion == 'success'", context) is True

    def test_unknown_variable(self, context):
        with pytest.raises(ExpressionError, match="unknown variable: foo"):
            evaluate("foo.bar", context)

    def test_special_numbers(self, context):
        assert evaluate("infinity", context) == math.inf
        assert math.isnan(evaluate("nan", context))


class TestOperators:

    def test_literals(self, context):
        assert evaluate("'it''s'", context) == "it's"
        assert evaluate("42", context) == 42
        assert evaluate("0xff", context) == 255
        assert evaluate("true", context) is True
        assert evaluate("null", context) is None

    def test_logical(self, context):
        assert evaluate("1 < 2 && 'a' == 'A'", context) is True
        assert evaluate("!false", context) is True
        assert evaluate("null || 'fallback'", context) == "fallback"
        assert evaluate("'' && 'x'", context) == ""

    def test_comparison(self, context):
        assert evaluate("3 >= 3", context) is True
        assert evaluate("'1' == 1", context) is True
        assert evaluate("(1 < 2) != true", context) is False

    def test_syntax_errors(self, context):
        with pytest.raises(ExpressionError):
            evaluate("1 ==", context)
        with pytest.raises(ExpressionError):
            evaluate("(1", context)
        with pytest.raises(ExpressionError):
            evaluate("a $ b", context)


class TestFunctions:

    def test_string_functions(self, context):
        assert evaluate("contains('Hello', 'ELL')", context) is True
        assert evaluate("startsWith(github.ref_name, 'ma')", context) is True
        assert evaluate("endsWith(github.repository, 'REPO')", context) is True
        assert evaluate("format('{0}-{1} {{x}}', 'a', 'b')", context) == "a-b {x}"

    def test_json_functions(self, context):
        assert evaluate("join(fromJSON('[1, 2, 3]'), '+')", context) == "1+2+3"
        assert evaluate("toJSON(fromJSON('{\"a\": 1}'))", context) == '{\n  "a": 1\n}'
        assert evaluate("contains(fromJSON('[\"x\", \"y\"]'), 'Y')", context) is True

    def test_status_functions(self, context):
        assert evaluate("success()", context) is True
        assert evaluate("failure()", context) is False
        assert evaluate("always()", context) is True
        assert evaluate("cancelled()", context) is False

        context.steps["test"] = StepResult(conclusion=StepStatus.FAILURE, outcome=StepStatus.FAILURE)
        assert evaluate("success()", context) is False
        assert evaluate("failure()", context) is True

    def test_unknown_function(self, context):
        with pytest.raises(ExpressionError, match="unknown function"):
            evaluate("nope()", context)


class TestToText:

    def test_conversions(self):
        assert to_text(None) == ""
        assert to_text(True) == "true"
        assert to_text(3.0) == "3"
        assert to_text(1.5) == "1.5"
        assert to_text(StepStatus.SKIPPED) == "skipped"
        assert to_text({"a": [1]}) == '{\n  "a": [\n    1\n  ]\n}'
