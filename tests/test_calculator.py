import pytest

from warden.calculator import EvaluationFailure, evaluate, format_result


class TestEvaluate:
    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("1 + 2", 3),
            ("2 * (3 + 4)", 14),
            ("10 / 4", 2.5),
            ("7 // 2", 3),
            ("7 % 3", 1),
            ("2 ** 10", 1024),
            ("-3 + +5", 2),
            ("1.5 * 2", 3.0),
        ],
    )
    def test_arithmetic(self, expression, expected):
        assert evaluate(expression) == expected

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "1 +",
            "__import__('os').system('echo hi')",
            "abs(-1)",
            "x + 1",
            "'a' * 3",
            "[1, 2]",
            "1 < 2",
            "True + 1",
            "1 / 0",
            "(-8) ** 0.5",
            "2 ** 100000",
            "(10 ** 1000) ** 1000",
        ],
    )
    def test_rejected_expressions(self, expression):
        with pytest.raises(EvaluationFailure):
            evaluate(expression)

    def test_overly_long_expression_rejected(self):
        with pytest.raises(EvaluationFailure):
            evaluate("1+" * 200 + "1")


class TestFormatResult:
    def test_integral_float_drops_fraction(self):
        assert format_result(3.0) == "3"

    def test_fraction_kept(self):
        assert format_result(2.5) == "2.5"

    def test_int_unchanged(self):
        assert format_result(42) == "42"


class TestResultSize:
    def test_power_result_past_display_limit_rejected(self):
        with pytest.raises(EvaluationFailure):
            evaluate("(10**5)**1000")

    def test_repeated_products_past_display_limit_rejected(self):
        with pytest.raises(EvaluationFailure):
            evaluate("10**999*10**999*10**999*10**999*10**999")

    def test_large_result_within_limit_renders(self):
        assert format_result(evaluate("10**999")) == "1" + "0" * 999

    def test_formatting_oversized_int_raises_evaluation_failure(self):
        with pytest.raises(EvaluationFailure):
            format_result(10**5000)
