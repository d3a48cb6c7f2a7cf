"""VeriProof Prover Translation Tests — TR-001 through TR-006."""

import asyncio
import shutil

import pytest

from veriproof.errors import ProverCrash, TranslationFailure
from veriproof.formulas import LogicalFormula, make_formula
from veriproof.hoare import HoareProofGenerator
from veriproof.obligations import HoareTriple
from veriproof.parser import Binary, Var, parse_statement
from veriproof.proof import InferenceRule
from veriproof.proof_system import ProofSystem
from veriproof.provers.base import identifier, plan_translation, run_checker
from veriproof.provers.coq import CoqProver, render_coq
from veriproof.provers.lean import LeanProver, render_lean
from veriproof.provers.z3_prover import Z3Prover
from veriproof.smt import HAS_Z3

MP = InferenceRule("ModusPonens", ("P", "P → Q"), "Q")


def one_step_proof(premise="x > 0", conclusion="x ≥ 0"):
    system = ProofSystem()
    proof = system.create_proof([make_formula(premise)], make_formula(conclusion))
    system.add_proof_step(proof.id, MP, ["assumption-0"], make_formula(conclusion))
    return proof


def hoare_proof():
    triple = HoareTriple(make_formula("x > 0"), parse_statement("y := x + 1"),
                         make_formula("y > 1"))
    return HoareProofGenerator().verify_hoare_triple(triple).proof


class TestIdentifier:
    """TR-001: Prover-safe names."""

    def test_dashes(self):
        assert identifier("step-1") == "step_1"

    def test_leading_digit(self):
        assert identifier("1abc") == "p_1abc"


class TestPlan:
    """TR-002: Prover-neutral translation plan."""

    def test_step_becomes_implication(self):
        plan = plan_translation(one_step_proof())
        assert len(plan.lemmas) == 1
        lemma = plan.lemmas[0]
        assert lemma.name == "step_1"
        assert isinstance(lemma.statement, Binary) and lemma.statement.op == "→"
        assert plan.sorts == {"x": "Int"}
        assert plan.name.startswith("proof_")

    def test_structural_combination_skipped(self):
        proof = hoare_proof()
        plan = plan_translation(proof)
        assert len(plan.lemmas) == len(proof.steps) - 1

    def test_no_steps_uses_premises(self):
        system = ProofSystem()
        proof = system.create_proof([make_formula("p")], make_formula("p ∨ q"))
        plan = plan_translation(proof)
        assert plan.lemmas == []
        assert plan.theorem == Binary("→", Var("p"), Binary("∨", Var("p"), Var("q")))
        assert plan.sorts == {"p": "Bool", "q": "Bool"}

    def test_bound_names_not_declared(self):
        plan = plan_translation(one_step_proof("∀k. k ≥ 0", "n ≥ 0"))
        assert "k" not in plan.sorts and plan.bound == ("k",)

    def test_functions_recorded(self):
        plan = plan_translation(one_step_proof("len(s) > 0", "len(s) ≥ 0"))
        assert plan.functions[("len", 1)] == (("Int",), "Int")

    def test_unresolved_premise(self):
        system = ProofSystem()
        proof = system.create_proof([make_formula("x > 0")], make_formula("x ≥ 0"))
        system.add_proof_step(proof.id, MP, ["assumption-5"], make_formula("x ≥ 0"))
        with pytest.raises(TranslationFailure):
            plan_translation(proof)

    def test_untranslatable_formula(self):
        system = ProofSystem()
        proof = system.create_proof([LogicalFormula("items[0] > 0")], make_formula("x ≥ 0"))
        with pytest.raises(TranslationFailure):
            plan_translation(proof)

    def test_sort_clash(self):
        with pytest.raises(TranslationFailure):
            plan_translation(one_step_proof("p ∧ p > 0", "p > 0"))


class TestCoqRendering:
    """TR-003: Coq source."""

    def test_declarations_and_lemmas(self):
        source = render_coq(plan_translation(one_step_proof()))
        assert "Variables x : Z." in source
        assert "Lemma step_1 : ((x > 0) -> (x >= 0))." in source
        assert "Theorem proof_" in source
        assert "auto using step_1" in source
        assert source.rstrip().splitlines()[-1].startswith("End proof_")

    def test_booleans_are_props(self):
        source = render_coq(plan_translation(one_step_proof("p ∧ x > 0", "x > 0")))
        assert "Variables p : Prop." in source
        assert "/\\" in source

    def test_quantifier_and_negative_literal(self):
        source = render_coq(plan_translation(one_step_proof("∀k. k > -1", "n ≥ 0")))
        assert "(forall (k : Z), (k > (-1)))" in source

    def test_translate_is_async(self):
        source = asyncio.run(CoqProver().translate(one_step_proof()))
        assert source.startswith("(* VeriProof:")


class TestLeanRendering:
    """TR-004: Lean 4 source."""

    def test_declarations_and_theorems(self):
        source = render_lean(plan_translation(one_step_proof()))
        assert "variable (x : Int)" in source
        assert "theorem step_1 : ((x > 0) → (x ≥ 0)) :=" in source
        assert "step_1 .." in source

    def test_several_lemmas_anonymous_constructor(self):
        system = ProofSystem()
        proof = system.create_proof([make_formula("x > 0")], make_formula("x ≥ 0"))
        system.add_proof_step(proof.id, MP, ["assumption-0"], make_formula("x ≠ 0"))
        system.add_proof_step(proof.id, MP, ["assumption-0"], make_formula("x ≥ 0"))
        source = render_lean(plan_translation(proof))
        assert "⟨step_1 .., step_2 ..⟩" in source

    def test_translate_is_async(self):
        source = asyncio.run(LeanProver().translate(one_step_proof()))
        assert source.startswith("-- VeriProof:")


class TestRunChecker:
    """TR-005: External process handling."""

    def test_missing_executable(self):
        with pytest.raises(ProverCrash):
            asyncio.run(run_checker("/nonexistent/prover", [], "source", ".v"))

    @pytest.mark.skipif(shutil.which("cat") is None, reason="cat not available")
    def test_source_passed_as_file(self):
        result = asyncio.run(run_checker("cat", [], "Lemma a : True.", ".v"))
        assert result.returncode == 0
        assert result.stdout == "Lemma a : True."

    @pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")
    def test_timeout_kills_process(self):
        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(run_checker("sh", ["-c", "sleep 5"], "", ".txt", timeout=0.1))


@pytest.mark.skipif(not HAS_Z3, reason="z3-solver not installed")
class TestZ3Translation:
    """TR-006: SMT-LIB2 script for the Z3 backend."""

    def test_script_per_step(self):
        script = asyncio.run(Z3Prover().translate(hoare_proof()))
        assert "; step-1: Hoare-PRECONDITION_IMPLIES_WP" in script
        assert "; step-2: Hoare-Conclusion from step-1" in script
        assert script.count("(push)") == 1
