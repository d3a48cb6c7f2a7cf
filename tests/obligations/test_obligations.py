"""VeriProof Proof Obligation Tests — PO-001 through PO-007."""

import json

import pytest

from veriproof.formulas import FormulaRole, make_formula
from veriproof.obligations import (
    HoareTriple, ObligationGenerator, ObligationTrace, ObligationType, discharge,
)
from veriproof.parser import parse_statement
from veriproof.smt import HAS_Z3, SolverResult
from veriproof.statements import CodeStatement, StatementType
from veriproof.wp import WPCalculator


def triple(pre, stmt, post):
    return HoareTriple(
        precondition=make_formula(pre, FormulaRole.PRECONDITION),
        statement=parse_statement(stmt),
        postcondition=make_formula(post, FormulaRole.POSTCONDITION),
    )


def no_inference():
    return ObligationGenerator(WPCalculator(infer_invariants=False))


class TestMainObligation:
    """PO-001: P → wp(S, Q)."""

    def test_single_assignment(self):
        obligations = ObligationGenerator().generate(triple("x > 0", "y := x + 1", "y > 1"))
        assert len(obligations) == 1
        main = obligations[0]
        assert main.id == "po-main-1"
        assert main.type == ObligationType.PRECONDITION_IMPLIES_WP
        assert main.priority == 10
        assert main.formula.expression == "x > 0 → x + 1 > 1"

    def test_true_precondition_dropped(self):
        obligations = ObligationGenerator().generate(triple("true", "y := 2", "y > 1"))
        assert obligations[0].formula.expression == "2 > 1"

    def test_context_recorded(self):
        t = triple("x > 0", "y := x + 1", "y > 1")
        main = ObligationGenerator().generate(t)[0]
        assert main.context.statement is t.statement
        assert main.context.assumptions == [t.precondition]

    def test_str_of_triple(self):
        assert str(triple("x > 0", "y := x + 1", "y > 1")) == "{x > 0} y := x + 1 {y > 1}"

    def test_counter_resets_per_triple(self):
        generator = ObligationGenerator()
        generator.generate(triple("x > 0", "y := x", "y > 0"))
        again = generator.generate(triple("x > 0", "y := x", "y > 0"))
        assert again[0].id == "po-main-1"


class TestBranchObligations:
    """PO-002: then/else obligations."""

    def test_then_and_else(self):
        t = triple("true", "if (x > 0) { y := x } else { y := 0 - x }", "y ≥ 0")
        obligations = ObligationGenerator().generate(t)
        by_kind = {o.id.split("-")[1]: o for o in obligations}
        assert by_kind["then"].formula.expression == "x > 0 → x ≥ 0"
        assert by_kind["else"].formula.expression == "¬(x > 0) → 0 - x ≥ 0"
        assert by_kind["then"].priority == by_kind["else"].priority == 9
        assert by_kind["then"].dependencies == ["po-main-1"]

    def test_missing_then_branch(self):
        stmt = CodeStatement(type=StatementType.CONDITIONAL, content="if (x > 0) {}",
                             condition=make_formula("x > 0"))
        t = HoareTriple(make_formula("true"), stmt, make_formula("x ≥ 0"))
        by_kind = {o.id.split("-")[1]: o for o in no_inference().generate(t)}
        assert by_kind["then"].formula.expression == "x > 0 → x ≥ 0"
        assert by_kind["else"].formula.expression == "¬(x > 0) → x ≥ 0"

    def test_sorted_by_priority(self):
        t = triple("true", "if (x > 0) { y := x } else { y := 0 - x }", "y ≥ 0")
        priorities = [o.priority for o in ObligationGenerator().generate(t)]
        assert priorities == sorted(priorities, reverse=True)


class TestLoopObligations:
    """PO-003: preservation, exit and termination."""

    def test_supplied_invariant_and_inferred_variant(self):
        t = triple("i = 0 ∧ n ≥ 0", "while i < n invariant i ≤ n { i := i + 1 }", "i = n")
        obligations = no_inference().generate(t)
        kinds = [o.id.rsplit("-", 1)[0] for o in obligations]
        assert kinds[0] == "po-main"
        assert {"po-preservation", "po-exit", "po-bounded", "po-decrease"} <= set(kinds)

        by_kind = {o.id.rsplit("-", 1)[0]: o for o in obligations}
        assert by_kind["po-main"].formula.expression == "i = 0 ∧ n ≥ 0 → i ≤ n"
        assert by_kind["po-preservation"].formula.expression == "i ≤ n ∧ i < n → i + 1 ≤ n"
        assert by_kind["po-exit"].formula.expression == "i ≤ n ∧ ¬(i < n) → i = n"
        assert by_kind["po-bounded"].formula.expression == "i ≤ n ∧ i < n → n - i > 0"
        assert by_kind["po-decrease"].formula.expression == \
            "i ≤ n ∧ i < n ∧ v0 = n - i → n - (i + 1) < v0"
        assert by_kind["po-bounded"].type == ObligationType.TERMINATION
        assert by_kind["po-bounded"].confidence <= 0.6

    def test_supplied_variant_not_capped(self):
        t = triple("i = 0", "while i < n invariant i ≤ n decreases n - i { i := i + 1 }", "i = n")
        bounded = [o for o in no_inference().generate(t) if o.id.startswith("po-bounded")][0]
        assert bounded.confidence > 0.6

    def test_placeholder_termination(self):
        t = triple("true", "while running { x := x + 1 }", "x > 0")
        obligations = no_inference().generate(t)
        term = [o for o in obligations if o.id.startswith("po-termination")][0]
        assert term.formula.expression == "∃n. (true) → decreases(n)"
        assert term.confidence == pytest.approx(0.3)
        assert term.priority == 8

    def test_fresh_snapshot_name(self):
        t = triple("true", "while v0 < n invariant v0 ≤ n { v0 := v0 + 1 }", "v0 = n")
        decrease = [o for o in no_inference().generate(t) if o.id.startswith("po-decrease")][0]
        assert "v0_1 = n - v0" in decrease.formula.expression


class TestSafetyObligations:
    """PO-004: Divisors must be non-zero."""

    def test_divisor_in_first_statement(self):
        obligations = ObligationGenerator().generate(triple("y ≠ 0", "z := x / y", "true"))
        safety = [o for o in obligations if o.type == ObligationType.SAFETY]
        assert len(safety) == 1
        assert safety[0].formula.expression == "y ≠ 0 → y ≠ 0"
        assert safety[0].priority == 7

    def test_divisor_after_prefix(self):
        t = triple("x ≥ 0", "y := x + 1; z := 10 / y", "true")
        safety = [o for o in ObligationGenerator().generate(t) if o.type == ObligationType.SAFETY]
        assert safety[0].formula.expression == "x ≥ 0 → x + 1 ≠ 0"

    def test_constant_divisor_is_safe(self):
        obligations = ObligationGenerator().generate(triple("true", "z := x / 2", "true"))
        assert not [o for o in obligations if o.type == ObligationType.SAFETY]

    def test_can_be_disabled(self):
        generator = ObligationGenerator(safety_checks=False)
        obligations = generator.generate(triple("true", "z := x % y", "true"))
        assert [o.type for o in obligations] == [ObligationType.PRECONDITION_IMPLIES_WP]


class TestForwardObligation:
    """PO-005: Optional sp(P, S) → Q."""

    def test_forward_check(self):
        generator = ObligationGenerator(forward_check=True)
        obligations = generator.generate(triple("x > 0", "y := x + 1", "y > 1"))
        forward = obligations[-1]
        assert forward.type == ObligationType.SP_IMPLIES_POSTCONDITION
        assert forward.priority == 6
        assert forward.formula.expression == "x > 0 ∧ y = x + 1 → y > 1"


@pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
class TestDischarge:
    """PO-006: Discharging with Z3."""

    def test_valid_obligation_proved(self):
        main = ObligationGenerator().generate(triple("x > 0", "y := x + 1", "y > 1"))[0]
        discharge(main)
        assert main.proved and main.result == SolverResult.UNSAT
        assert "(assert" in main.smtlib2

    def test_invalid_obligation_has_witness(self):
        main = ObligationGenerator().generate(triple("x > 0", "y := x - 1", "y > 0"))[0]
        discharge(main)
        assert main.result == SolverResult.SAT
        assert main.witness["x"] == "1"

    def test_counting_loop_fully_proved(self):
        t = triple("i = 0 ∧ n ≥ 0", "while i < n { i := i + 1 }", "i = n")
        trace = ObligationTrace(triple=str(t))
        for o in ObligationGenerator().generate(t):
            trace.add(discharge(o))
        assert trace.all_proved, trace.to_ascii_table()

    def test_unsafe_division_refuted(self):
        obligations = ObligationGenerator().generate(triple("true", "z := x / y", "true"))
        safety = [o for o in obligations if o.type == ObligationType.SAFETY][0]
        discharge(safety)
        assert safety.result == SolverResult.SAT and safety.witness["y"] == "0"


class TestTrace:
    """PO-007: Trace bookkeeping and serialisation."""

    def _trace(self):
        t = triple("true", "if (x > 0) { y := x } else { y := 0 - x }", "y ≥ 0")
        trace = ObligationTrace(triple=str(t))
        trace.extend(ObligationGenerator().generate(t))
        return trace

    def test_counts_before_discharge(self):
        trace = self._trace()
        assert trace.total == 3
        assert trace.proved_count == 0 and trace.failed_count == 0
        assert trace.unknown_count == 3
        assert not trace.all_proved

    def test_empty_trace_is_not_all_proved(self):
        assert not ObligationTrace().all_proved

    def test_json(self):
        data = json.loads(self._trace().to_json())
        assert data["summary"]["total"] == 3
        assert data["obligations"][0]["id"] == "po-main-1"

    def test_ascii_table(self):
        table = self._trace().to_ascii_table()
        assert "po-then-" in table and "0/3 obligations proved" in table
        assert ObligationTrace().to_ascii_table() == "  (no proof obligations)\n"

    def test_single_obligation_ascii(self):
        text = self._trace().obligations[0].to_ascii()
        assert "[po-main-1]" in text and "PRECONDITION_IMPLIES_WP" in text

    @pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
    def test_smtlib2_bundle(self):
        trace = self._trace()
        for o in trace.obligations:
            discharge(o)
        bundle = trace.to_smtlib2_bundle()
        assert bundle.count("(reset)") == 3
        assert trace.all_proved
