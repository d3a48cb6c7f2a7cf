"""VeriProof WP/SP Calculus Tests — WP-001 through WP-008."""

import pytest

from veriproof.formulas import FormulaRole, make_formula
from veriproof.parser import parse_statement
from veriproof.smt import HAS_Z3, check_valid
from veriproof.statements import (
    CodeStatement, StatementType, assignment, expression, sequence,
)
from veriproof.wp import Substitution, WPCalculator


def post(text):
    return make_formula(text, FormulaRole.POSTCONDITION)


def pre(text):
    return make_formula(text, FormulaRole.PRECONDITION)


class TestAssignment:
    """WP-001: wp(x := e, Q) = Q[x/e]."""

    def test_substitution(self):
        result = WPCalculator().weakest_precondition(assignment("y", "x + 1"), post("y > 1"))
        assert result.formula.expression == "x + 1 > 1"
        assert result.formula.role == FormulaRole.PRECONDITION
        assert result.substitutions == [Substitution("y", "x + 1")]

    def test_return_binds_result(self):
        stmt = parse_statement("return a * 2")
        result = WPCalculator().weakest_precondition(stmt, post("result > 0"))
        assert result.formula.expression == "a * 2 > 0"

    def test_unrelated_variable(self):
        result = WPCalculator().weakest_precondition(assignment("z", "0"), post("y > 1"))
        assert result.formula.expression == "y > 1"

    def test_opaque_value_falls_back(self):
        stmt = assignment("y", "items[0]")
        result = WPCalculator().weakest_precondition(stmt, post("y > 1"))
        assert result.formula.expression == "(items[0]) > 1"
        clean = WPCalculator().weakest_precondition(assignment("y", "x"), post("y > 1"))
        assert result.confidence < clean.confidence

    def test_confidence_bounds(self):
        result = WPCalculator().weakest_precondition(assignment("y", "x + 1"), post("y > 1"))
        assert 0.1 <= result.confidence <= 0.9


class TestSequence:
    """WP-002: Sequential composition folds right to left."""

    def test_two_assignments(self):
        stmt = parse_statement("x := 5; y := x + 1")
        result = WPCalculator().weakest_precondition(stmt, post("y > 5"))
        assert result.formula.expression == "5 + 1 > 5"
        assert [s.variable for s in result.substitutions] == ["x", "y"]

    def test_compositional(self):
        s1, s2 = assignment("x", "x + 1"), assignment("y", "x * 2")
        q = post("y > 4")
        calc = WPCalculator()
        whole = calc.weakest_precondition(sequence(s1, s2), q)
        inner = calc.weakest_precondition(s2, q)
        staged = calc.weakest_precondition(s1, inner.formula)
        assert whole.formula.expression == staged.formula.expression == "(x + 1) * 2 > 4"

    def test_confidence_is_minimum_of_children(self):
        stmt = sequence(assignment("x", "1"), expression("audit(x)"))
        result = WPCalculator().weakest_precondition(stmt, post("x > 0"))
        unknown = WPCalculator().weakest_precondition(expression("audit(x)"), post("x > 0"))
        assert result.confidence <= unknown.confidence


class TestConditional:
    """WP-003: (b → wp(S1, Q)) ∧ (¬b → wp(S2, Q))."""

    def test_both_branches(self):
        stmt = parse_statement("if (x > 0) { y := x } else { y := 0 - x }")
        result = WPCalculator().weakest_precondition(stmt, post("y ≥ 0"))
        assert result.formula.expression == "(x > 0 → x ≥ 0) ∧ (¬(x > 0) → 0 - x ≥ 0)"

    def test_missing_else_keeps_postcondition(self):
        stmt = parse_statement("if (x < 0) { x := 0 }")
        result = WPCalculator().weakest_precondition(stmt, post("x ≥ 0"))
        assert result.formula.expression == "(x < 0 → 0 ≥ 0) ∧ (¬(x < 0) → x ≥ 0)"

    def test_missing_then_branch_is_skip(self):
        stmt = CodeStatement(type=StatementType.CONDITIONAL, content="if (x > 0) {}",
                             condition=make_formula("x > 0"))
        wp = WPCalculator().weakest_precondition(stmt, post("x ≥ 0"))
        assert wp.formula.expression == "(x > 0 → x ≥ 0) ∧ (¬(x > 0) → x ≥ 0)"
        sp = WPCalculator().strongest_postcondition(pre("y = 1"), stmt)
        assert "y = 1 ∧ x > 0" in sp.formula.expression
        assert "y = 1 ∧ ¬(x > 0)" in sp.formula.expression

    @pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
    def test_abs_is_valid(self):
        stmt = parse_statement("if (x > 0) { y := x } else { y := 0 - x }")
        result = WPCalculator().weakest_precondition(stmt, post("y ≥ 0"))
        assert check_valid(result.formula.expression).proved


class TestLoop:
    """WP-004: wp(while b do S, Q) = I with side condition (I ∧ ¬b) → Q."""

    def test_supplied_invariant(self):
        stmt = parse_statement("while i < n invariant i ≤ n { i := i + 1 }")
        result = WPCalculator().weakest_precondition(stmt, post("i = n"))
        assert result.formula.expression == "i ≤ n"
        assert [s.expression for s in result.side_conditions] == ["i ≤ n ∧ ¬(i < n) → i = n"]
        assert len(result.loops) == 1
        assert result.loops[0][1].inferred is False

    def test_inference_disabled_gives_true(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        result = WPCalculator(infer_invariants=False).weakest_precondition(stmt, post("i = n"))
        assert result.formula.expression == "true"
        assert result.loops[0][1].inferred is True

    def test_inferred_invariant_costs_confidence(self):
        supplied = parse_statement("while i < n invariant i ≤ n { i := i + 1 }")
        bare = parse_statement("while i < n { i := i + 1 }")
        calc = WPCalculator(infer_invariants=False)
        a = calc.weakest_precondition(supplied, post("i = n"))
        b = calc.weakest_precondition(bare, post("i = n"))
        assert b.confidence < a.confidence

    def test_guesses_memoised(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        calc = WPCalculator()
        first = calc.loop_invariant(stmt, post("i = n"))
        assert calc.loop_invariant(stmt, post("i = n")) is first

    def test_memo_distinguishes_preconditions(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        calc = WPCalculator()
        late = calc.loop_invariant(stmt, post("i ≥ n"), pre("i = 5 ∧ n = 3"))
        early = calc.loop_invariant(stmt, post("i ≥ n"), pre("i = 0 ∧ n ≥ 0"))
        assert early is not late
        assert "i = 0" in early.candidates and "i = 5" not in early.candidates

    def test_memo_cleared_per_calculation(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        calc = WPCalculator()
        first = calc.loop_invariant(stmt, post("i = n"))
        calc.weakest_precondition(assignment("x", "1"), post("x > 0"))
        assert calc.loop_invariant(stmt, post("i = n")) is not first


class TestHoudini:
    """WP-005: Houdini invariant inference."""

    @pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
    def test_counting_loop(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        guess = WPCalculator().infer_invariant(stmt, post("i = n"), pre("i = 0 ∧ n ≥ 0"))
        assert guess.inferred
        invariant = guess.formula.expression
        assert check_valid(invariant, ["i = 0", "n ≥ 0"]).proved
        assert check_valid("i = n", [invariant, "¬(i < n)"]).proved
        assert "i = 0" in guess.candidates

    def test_candidates(self):
        stmt = parse_statement("while i < n { i := i + 1 }")
        found = WPCalculator()._candidates(stmt, post("i = n"), pre("i = 0"))
        assert found[:3] == ["i = 0", "i = n", "i ≤ n"]
        assert "i ≥ 0" in found and "n ≥ 0" in found
        assert found[-1] == "(i < n) ∨ (i = n)"


class TestVariant:
    """WP-006: Ranking functions read off the loop guard."""

    @pytest.mark.parametrize("guard,variant", [
        ("i < n", "n - i"),
        ("i ≤ n", "n - i + 1"),
        ("x > 0", "x - 0"),
        ("k ≥ lo + 1", "k - (lo + 1) + 1"),
        ("x ≠ y", "x - y"),
    ])
    def test_from_guard(self, guard, variant):
        stmt = parse_statement(f"while {guard} {{ skip }}")
        assert WPCalculator().loop_variant(stmt) == variant

    def test_supplied_variant_wins(self):
        stmt = parse_statement("while i < n decreases n { i := i + 1 }")
        assert WPCalculator().loop_variant(stmt) == "n"

    def test_boolean_guard_has_no_variant(self):
        stmt = parse_statement("while running { step() }")
        assert WPCalculator().loop_variant(stmt) is None


class TestStrongestPostcondition:
    """WP-007: sp(x := e, P) = ∃x0. P[x/x0] ∧ x = e[x/x0]."""

    def test_self_referencing_assignment(self):
        result = WPCalculator().strongest_postcondition(pre("x > 0"), assignment("x", "x + 1"))
        assert result.formula.expression == "(∃x_old1. x_old1 > 0 ∧ x = x_old1 + 1)"
        assert result.formula.role == FormulaRole.POSTCONDITION
        assert result.effects[0].old_name == "x_old1"

    def test_fresh_names_independent_of_call_order(self):
        calc = WPCalculator()
        first = calc.strongest_postcondition(pre("x > 0"), assignment("x", "x + 1"))
        second = calc.strongest_postcondition(pre("x > 0"), assignment("x", "x + 1"))
        assert first.formula.expression == second.formula.expression
        assert second.effects[0].old_name == "x_old1"

    def test_fresh_assignment_needs_no_quantifier(self):
        result = WPCalculator().strongest_postcondition(pre("x > 0"), assignment("y", "3"))
        assert result.formula.expression == "x > 0 ∧ y = 3"

    def test_comparison_value_parenthesised(self):
        result = WPCalculator().strongest_postcondition(pre("true"), assignment("b", "x > 0"))
        assert result.formula.expression == "b = (x > 0)"

    def test_conditional_is_disjunction(self):
        stmt = parse_statement("if (x > 0) { y := 1 } else { y := 2 }")
        result = WPCalculator().strongest_postcondition(pre("true"), stmt)
        assert result.formula.expression == "x > 0 ∧ y = 1 ∨ ¬(x > 0) ∧ y = 2"

    def test_loop_exit(self):
        stmt = parse_statement("while i < n invariant i ≤ n { i := i + 1 }")
        result = WPCalculator().strongest_postcondition(pre("i = 0"), stmt)
        assert result.formula.expression == "i ≤ n ∧ ¬(i < n)"
        assert [f.expression for f in result.invariants] == ["i ≤ n"]

    @pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
    def test_sequence_sp_implies_expected(self):
        stmt = parse_statement("x := 5; y := x + 1")
        result = WPCalculator().strongest_postcondition(pre("true"), stmt)
        assert check_valid("y = 6", [result.formula.expression]).proved


class TestUnknownStatements:
    """WP-008: Uninterpretable statements pass conditions through."""

    def test_expression_is_skip_with_penalty(self):
        calc = WPCalculator()
        result = calc.weakest_precondition(expression("audit(x)"), post("x > 0"))
        assert result.formula.expression == "x > 0"
        known = calc.weakest_precondition(assignment("z", "1"), post("x > 0"))
        assert result.confidence < known.confidence
