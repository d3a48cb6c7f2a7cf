"""Standard inference rules and lemmas registered by every ProofSystem."""

from __future__ import annotations

from typing import List

from veriproof.formulas import make_formula
from veriproof.obligations import ObligationType
from veriproof.proof import InferenceRule, Lemma


CONCLUSION_RULE = "Hoare-Conclusion"


def obligation_rule_name(kind: ObligationType) -> str:
    return f"Hoare-{kind.value}"


def standard_rules() -> List[InferenceRule]:
    rules = [
        # Propositional and first-order
        InferenceRule("ModusPonens", ("P", "P → Q"), "Q"),
        InferenceRule("ModusTollens", ("¬Q", "P → Q"), "¬P"),
        InferenceRule("UniversalInstantiation", ("∀x. P(x)",), "P(t)"),
        InferenceRule("ExistentialGeneralization", ("P(t)",), "∃x. P(x)"),
        # Hoare logic
        InferenceRule("Assignment", (), "{Q[x/E]} x := E {Q}", structural=True),
        InferenceRule("Sequence", ("{P} S1 {R}", "{R} S2 {Q}"), "{P} S1; S2 {Q}",
                      structural=True),
        InferenceRule("Conditional", ("{P ∧ B} S1 {Q}", "{P ∧ ¬B} S2 {Q}"),
                      "{P} if B then S1 else S2 {Q}", structural=True),
        InferenceRule("Loop", ("{I ∧ B} S {I}",), "{I} while B do S {I ∧ ¬B}",
                      structural=True),
        InferenceRule("Consequence", ("P → P'", "{P'} S {Q'}", "Q' → Q"), "{P} S {Q}",
                      structural=True),
    ]
    for kind in ObligationType:
        rules.append(InferenceRule(obligation_rule_name(kind), ("P",),
                                   "obligation discharged", structural=True))
    rules.append(InferenceRule(CONCLUSION_RULE, ("obligations",), "{P} S {Q}",
                               structural=True))
    return rules


def standard_lemmas() -> List[Lemma]:
    return [
        Lemma("lemma-identity", "Identity", make_formula("∀x. x = x"),
              is_axiom=True, domain=("logic",)),
        Lemma("lemma-contradiction", "Contradiction", make_formula("∀p. ¬(p ∧ ¬p)"),
              is_axiom=True, domain=("logic",)),
        Lemma("lemma-excluded-middle", "Excluded Middle", make_formula("∀p. p ∨ ¬p"),
              is_axiom=True, domain=("logic",)),
    ]
