"""VeriProof Hoare Proof Generator — triples to validated proofs.

For a triple {P} S {Q} the generator

  1. computes the proof obligations (``ObligationGenerator``),
  2. creates a proof with P as its assumptions and Q as its conclusion,
  3. appends one ``Hoare-<ObligationType>`` step per obligation, citing the
     assumptions,
  4. appends a final ``Hoare-Conclusion`` step citing every obligation step
     and concluding Q,
  5. validates the proof locally.

Obligations can additionally be discharged with Z3; a refuted obligation
makes the triple invalid even when the proof is structurally sound.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from veriproof.errors import FormulaSyntaxError
from veriproof.formulas import (
    LogicalFormula, FormulaRole, make_formula, combine_formulas, extract_variables,
)
from veriproof.obligations import (
    HoareTriple, ObligationGenerator, ObligationTrace, ProofObligation, discharge,
)
from veriproof.proof import InferenceRule, Proof, ValidationResult, assumption_ref
from veriproof.proof_system import ProofSystem
from veriproof.rules import CONCLUSION_RULE, obligation_rule_name
from veriproof.smt import DEFAULT_TIMEOUT_MS
from veriproof.statements import CodeStatement, CodeTransformation
from veriproof import statements as st
from veriproof.wp import WPCalculator, WeakestPrecondition, StrongestPostcondition

logger = logging.getLogger(__name__)

FormulaLike = Union[str, LogicalFormula]


def as_formula(value: FormulaLike, role: FormulaRole = FormulaRole.ASSERTION) -> LogicalFormula:
    """Accept formula objects or text; text outside the formula language is kept opaque."""
    if isinstance(value, LogicalFormula):
        return value.with_role(role)
    try:
        return make_formula(value, role)
    except FormulaSyntaxError:
        return LogicalFormula(value.strip(), extract_variables(value), role)


@dataclass
class TripleVerification:
    is_valid: bool
    confidence: float
    obligations: List[ProofObligation]
    proof: Optional[Proof]
    validation: ValidationResult
    trace: ObligationTrace = field(default_factory=ObligationTrace)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": round(self.confidence, 4),
            "obligations": self.trace.to_dict(),
            "validation": self.validation.to_dict(),
            "proof": self.proof.to_dict() if self.proof else None,
        }


class HoareProofGenerator:
    """Builds Hoare-logic proofs in a ``ProofSystem``."""

    def __init__(self, proof_system: Optional[ProofSystem] = None,
                 calculator: Optional[WPCalculator] = None,
                 forward_check: bool = False):
        self.proof_system = proof_system or ProofSystem()
        self.calculator = calculator or WPCalculator()
        self.obligation_generator = ObligationGenerator(self.calculator,
                                                        forward_check=forward_check)

    # -- statements and calculus -----------------------------------------

    def parse_code_transformation(self, transformation: CodeTransformation) -> CodeStatement:
        return st.parse_code_transformation(transformation)

    def calculate_weakest_precondition(self, statement: CodeStatement,
                                       postcondition: FormulaLike) -> WeakestPrecondition:
        return self.calculator.weakest_precondition(
            statement, as_formula(postcondition, FormulaRole.POSTCONDITION))

    def calculate_strongest_postcondition(self, precondition: FormulaLike,
                                          statement: CodeStatement) -> StrongestPostcondition:
        return self.calculator.strongest_postcondition(
            as_formula(precondition, FormulaRole.PRECONDITION), statement)

    # -- proofs ----------------------------------------------------------

    def generate_proof(self, preconditions: Sequence[FormulaLike],
                       transformation: CodeTransformation,
                       postconditions: Sequence[FormulaLike]) -> Proof:
        """Proof that ``transformation`` takes the preconditions to the postconditions."""
        pres = [as_formula(p, FormulaRole.PRECONDITION) for p in preconditions]
        posts = [as_formula(q, FormulaRole.POSTCONDITION) for q in postconditions]
        triple = HoareTriple(
            precondition=combine_formulas(pres, "∧", FormulaRole.PRECONDITION),
            statement=self.parse_code_transformation(transformation),
            postcondition=combine_formulas(posts, "∧", FormulaRole.POSTCONDITION),
        )
        obligations = self.obligation_generator.generate(triple)
        proof = self.proof_system.create_proof(pres, triple.postcondition)
        self._construct_steps(proof, triple, obligations)
        return proof

    def _construct_steps(self, proof: Proof, triple: HoareTriple,
                         obligations: List[ProofObligation]) -> None:
        system = self.proof_system
        assumptions = [assumption_ref(i) for i in range(len(proof.assumptions))]
        for obligation in obligations:
            name = obligation_rule_name(obligation.type)
            rule = system.inference_rule(name) or InferenceRule(
                name, (obligation.context.precondition.expression,),
                obligation.formula.expression, structural=True)
            system.add_proof_step(proof.id, rule, assumptions, obligation.formula,
                                  f"Proof obligation: {obligation.type.value}")

        conclusion_rule = system.inference_rule(CONCLUSION_RULE) or InferenceRule(
            CONCLUSION_RULE, tuple(o.formula.expression for o in obligations),
            triple.postcondition.expression, structural=True)
        system.add_proof_step(proof.id, conclusion_rule, [s.id for s in proof.steps],
                              triple.postcondition,
                              "Conclude postcondition from proof obligations")

    def verify_hoare_triple(self, triple: HoareTriple, discharge_obligations: bool = False,
                            timeout_ms: int = DEFAULT_TIMEOUT_MS) -> TripleVerification:
        """Build, validate and optionally discharge the proof of ``triple``.

        The proof is returned only when it is valid.
        """
        obligations = self.obligation_generator.generate(triple)
        trace = ObligationTrace(triple=str(triple))
        trace.extend(obligations)

        proof = self.proof_system.create_proof([triple.precondition], triple.postcondition)
        self._construct_steps(proof, triple, obligations)
        validation = self.proof_system.validate_proof(proof.id)

        is_valid = validation.is_valid
        if discharge_obligations:
            for obligation in obligations:
                discharge(obligation, timeout_ms)
            if trace.failed_count:
                logger.info("%d obligation(s) refuted for %s", trace.failed_count, triple)
                is_valid = False

        return TripleVerification(
            is_valid=is_valid,
            confidence=validation.confidence,
            obligations=obligations,
            proof=proof if is_valid else None,
            validation=validation,
            trace=trace,
        )
