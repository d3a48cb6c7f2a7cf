"""VeriProof Formula Model Tests — FORM-001 through FORM-010."""

import pytest

from veriproof.errors import FormulaSyntaxError
from veriproof.formulas import (
    FormulaRole, LogicalFormula, Variable,
    make_formula, true_formula, substitute_variable, combine_formulas,
    conjoin, disjoin, implies, negate,
    count_logical_operators, extract_variables, free_variables,
    expression_precedence, PREC_ADD, PREC_ATOM, PREC_QUANT,
)

try:
    from hypothesis import given, settings, assume
    from hypothesis import strategies as st
    HAS_HYPOTHESIS = True
except ImportError:
    HAS_HYPOTHESIS = False
    given = settings = assume = st = None


def f(text, role=FormulaRole.ASSERTION):
    return make_formula(text, role)


class TestMakeFormula:
    """FORM-001: Formula construction and variable scanning."""

    def test_variables_scanned_in_order(self):
        formula = f("x + y > z ∧ x ≥ 0")
        assert formula.variable_names == ["x", "y", "z"]

    def test_role_defaults_to_assertion(self):
        assert f("x > 0").role == FormulaRole.ASSERTION

    def test_explicit_variables_deduplicated(self):
        formula = make_formula("a > b", variables=[Variable("a"), Variable("a", "int")])
        assert formula.variables == (Variable("a"),)

    def test_whitespace_stripped(self):
        assert f("  x > 0  ").expression == "x > 0"

    def test_untokenizable_text_rejected(self):
        with pytest.raises(FormulaSyntaxError):
            f("x @ y")

    def test_true_formula(self):
        t = true_formula(FormulaRole.INVARIANT)
        assert t.expression == "true" and t.variables == () and t.role == FormulaRole.INVARIANT

    def test_with_role_keeps_expression(self):
        pre = f("x > 0").with_role(FormulaRole.PRECONDITION)
        assert pre.expression == "x > 0" and pre.role == FormulaRole.PRECONDITION

    def test_to_dict(self):
        d = f("x > 0", FormulaRole.POSTCONDITION).to_dict()
        assert d == {"expression": "x > 0",
                     "variables": [{"name": "x", "type": "any"}],
                     "role": "postcondition"}


class TestSubstitution:
    """FORM-002: Q[x/e] on the token stream."""

    def test_plain_replacement(self):
        result = substitute_variable(f("y > 1"), "y", "x + 1")
        assert result.expression == "x + 1 > 1"

    def test_parenthesised_when_binding_is_weaker(self):
        result = substitute_variable(f("y * 2 > 4"), "y", "x + 1")
        assert result.expression == "(x + 1) * 2 > 4"

    def test_right_operand_of_minus_parenthesised(self):
        result = substitute_variable(f("x - y"), "y", "a + b")
        assert result.expression == "x - (a + b)"

    def test_left_operand_of_minus_not_parenthesised(self):
        result = substitute_variable(f("y - x"), "y", "a + b")
        assert result.expression == "a + b - x"

    def test_unary_minus_operand(self):
        result = substitute_variable(f("-y > 0"), "y", "a + b")
        assert result.expression == "-(a + b) > 0"

    def test_atomic_replacement_never_parenthesised(self):
        result = substitute_variable(f("y * y = 4"), "y", "x")
        assert result.expression == "x * x = 4"

    def test_longer_identifiers_untouched(self):
        result = substitute_variable(f("xs > x ∧ max = x"), "x", "3")
        assert result.expression == "xs > 3 ∧ max = 3"

    def test_bound_occurrences_untouched(self):
        result = substitute_variable(f("∀y. y > 0"), "y", "5")
        assert result.expression == "∀y. y > 0"

    def test_function_symbols_untouched(self):
        result = substitute_variable(f("f(y) > 0"), "f", "g")
        assert result.expression == "f(y) > 0"

    def test_capture_avoided_by_renaming(self):
        result = substitute_variable(f("∀x. x > y"), "y", "x + 1")
        assert result.expression == "∀x_1. x_1 > x + 1"

    def test_variable_set_updated(self):
        result = substitute_variable(f("y > 1 ∧ z > 0"), "y", "x + 1")
        assert result.variable_names == ["z", "x"]

    def test_role_preserved(self):
        post = f("y > 1", FormulaRole.POSTCONDITION)
        assert substitute_variable(post, "y", "x").role == FormulaRole.POSTCONDITION

    def test_formula_replacement(self):
        result = substitute_variable(f("y > 1"), "y", f("a * b"))
        assert result.expression == "a * b > 1"
        assert result.variable_names == ["a", "b"]


class TestCombination:
    """FORM-003: combine, conjoin, disjoin, implies, negate."""

    def test_combine_empty_is_true(self):
        assert combine_formulas([]).expression == "true"

    def test_combine_single_is_identity(self):
        single = f("x > 0")
        assert combine_formulas([single]) is single

    def test_combine_many(self):
        combined = combine_formulas([f("x > 0"), f("y > 0"), f("x < y")])
        assert combined.expression == "(x > 0 ∧ y > 0 ∧ x < y)"
        assert combined.variable_names == ["x", "y"]

    def test_combine_with_operator_and_role(self):
        combined = combine_formulas([f("a"), f("b")], "∨", FormulaRole.POSTCONDITION)
        assert combined.expression == "(a ∨ b)"
        assert combined.role == FormulaRole.POSTCONDITION

    def test_conjoin_drops_true(self):
        assert conjoin([true_formula(), f("x > 0")]).expression == "x > 0"
        assert conjoin([true_formula(), true_formula()]).expression == "true"

    def test_conjoin_parenthesises_weaker_operands(self):
        result = conjoin([f("a ∨ b"), f("c")])
        assert result.expression == "(a ∨ b) ∧ c"

    def test_disjoin_empty_is_false(self):
        assert disjoin([]).expression == "false"

    def test_implies_drops_true_antecedent(self):
        assert implies(true_formula(), f("x > 0")).expression == "x > 0"

    def test_implies_right_operand(self):
        assert implies(f("x > 0"), f("x + 1 > 1")).expression == "x > 0 → x + 1 > 1"

    def test_implies_nested_antecedent(self):
        assert implies(f("p → q"), f("r")).expression == "(p → q) → r"

    def test_negate(self):
        assert negate(f("x > 0")).expression == "¬(x > 0)"
        assert negate(f("p")).expression == "¬p"


class TestScanning:
    """FORM-004: Free variables, identifier scans, operator counts."""

    def test_free_variables_skip_bound_and_functions(self):
        assert free_variables("∀x. x > y ∧ f(z) = 0") == ["y", "z"]

    def test_quantifier_scope_ends_at_group(self):
        assert free_variables("(∀x. x > 0) ∧ x < 5") == ["x"]

    def test_extract_variables_skips_keywords_calls_attributes(self):
        names = [v.name for v in extract_variables("let x = foo(y) + obj.z")]
        assert names == ["x", "y", "obj"]

    def test_count_logical_operators(self):
        assert count_logical_operators("a ∧ b -> c") == 2
        assert count_logical_operators("∀x. ¬p(x) || q") == 3
        assert count_logical_operators("x + 1 > 0") == 0

    def test_expression_precedence(self):
        assert expression_precedence("x + 1") == PREC_ADD
        assert expression_precedence("(x + 1)") == PREC_ATOM
        assert expression_precedence("∃n. n > 0") == PREC_QUANT


FORMULAS = ["y > 1", "y * 2 > 4", "x - y = 0", "∀z. z > y", "p ∧ y ≥ x", "f(y, x) < y + 1"]
REPLACEMENTS = ["x + 1", "3", "a * b", "-k", "n - 1"]


@pytest.mark.skipif(not HAS_HYPOTHESIS, reason="hypothesis not installed")
class TestSubstitutionProperties:
    """FORM-005: Algebraic properties of substitution."""

    if HAS_HYPOTHESIS:
        @given(st.sampled_from(FORMULAS), st.sampled_from(REPLACEMENTS))
        @settings(max_examples=60)
        def test_absent_variable_is_identity(self, text, repl):
            assume("q" not in text)
            assert substitute_variable(f(text), "q", repl).expression == text

        @given(st.sampled_from(FORMULAS))
        @settings(max_examples=30)
        def test_self_substitution_is_identity(self, text):
            assert substitute_variable(f(text), "y", "y").expression == text

        @given(st.sampled_from(FORMULAS), st.sampled_from(REPLACEMENTS))
        @settings(max_examples=60)
        def test_substituted_variable_is_no_longer_free(self, text, repl):
            assume("y" not in free_variables(repl))
            result = substitute_variable(f(text), "y", repl)
            assert "y" not in free_variables(result.expression)
            assert "y" not in result.variable_names

        @given(st.sampled_from(FORMULAS), st.sampled_from(REPLACEMENTS))
        @settings(max_examples=60)
        def test_result_still_parses(self, text, repl):
            from veriproof.parser import parse_formula
            parse_formula(substitute_variable(f(text), "y", repl).expression)
