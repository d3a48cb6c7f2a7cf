"""Z3 backend: checks every step of a proof by SMT entailment.

A step is accepted when

  * its rule is structural and it cites earlier steps: every cited step
    was accepted (the Hoare rules combine them),
  * otherwise: the formulas it cites entail its conclusion.

A proof without steps is accepted when its premises entail its conclusion.
Results are cached by the hash of the translated script.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Dict, List, Tuple

from veriproof.errors import TranslationFailure
from veriproof.proof import Proof, ProofStep, ProofValidity
from veriproof.provers.base import CommandResult, ProverCapabilities
from veriproof.smt import HAS_Z3, SolverResult, check_valid, to_smtlib2, DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

ACCEPTED_CONFIDENCE = 0.95


def _step_query(proof: Proof, step: ProofStep) -> Tuple[str, List[str]]:
    cited = []
    for ref in step.premises:
        formula = proof.resolve(ref)
        if formula is None:
            raise TranslationFailure(f"Unresolved premise {ref} in {step.id}",
                                     step=step.id, premise=ref)
        cited.append(formula.expression)
    return step.conclusion.expression, cited


def _combines_steps(step: ProofStep) -> bool:
    return step.rule.structural and any(ref.startswith("step-") for ref in step.premises)


class Z3Prover:
    """Local SMT prover; needs the ``z3-solver`` package."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, prover_id: str = "z3"):
        self.prover_id = prover_id
        self.timeout_ms = timeout_ms
        self.prover_calls = 0
        self.cache_hits = 0
        self._cache: Dict[str, ProofValidity] = {}

    def capabilities(self) -> ProverCapabilities:
        return ProverCapabilities(
            supported_logics=("propositional", "linear-integer-arithmetic",
                              "uninterpreted-functions", "quantifiers"),
            max_complexity=500,
            timeout_seconds=self.timeout_ms / 1000.0,
            supports_interactive=True,
        )

    async def translate(self, proof: Proof) -> str:
        if not HAS_Z3:
            raise TranslationFailure("z3-solver is not installed")
        return await asyncio.to_thread(self._translate, proof)

    def _translate(self, proof: Proof) -> str:
        parts = [f"; VeriProof proof {proof.id}"]
        if not proof.steps:
            goal = proof.conclusion.expression
            parts += ["(push)", to_smtlib2(goal, [p.expression for p in proof.premises]),
                      "(pop)"]
        for step in proof.steps:
            if _combines_steps(step):
                parts.append(f"; {step.id}: {step.rule.name} from {', '.join(step.premises)}")
                continue
            goal, cited = _step_query(proof, step)
            parts += [f"; {step.id}: {step.rule.name}", "(push)",
                      to_smtlib2(goal, cited), "(pop)"]
        return "\n".join(parts) + "\n"

    async def verify(self, proof: Proof) -> ProofValidity:
        script = await self.translate(proof)
        key = hashlib.sha256(script.encode("utf-8")).hexdigest()
        cached = self._cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            return cached
        result = await asyncio.to_thread(self._check, proof)
        self._cache[key] = result
        return result

    def _check(self, proof: Proof) -> ProofValidity:
        errors: List[str] = []
        if not proof.steps:
            self.prover_calls += 1
            outcome = check_valid(proof.conclusion.expression,
                                  [p.expression for p in proof.premises], self.timeout_ms)
            if not outcome.proved:
                errors.append(_describe("conclusion", outcome))

        accepted: Dict[str, bool] = {}
        for step in proof.steps:
            if _combines_steps(step):
                missing = [ref for ref in step.premises
                           if ref.startswith("step-") and not accepted.get(ref, False)]
                accepted[step.id] = not missing
                if missing:
                    errors.append(f"{step.id}: cited steps not established: {', '.join(missing)}")
                continue
            goal, cited = _step_query(proof, step)
            self.prover_calls += 1
            outcome = check_valid(goal, cited, self.timeout_ms)
            accepted[step.id] = outcome.proved
            if not outcome.proved:
                errors.append(_describe(step.id, outcome))

        if errors:
            logger.info("z3 rejected proof %s: %s", proof.id, errors[0])
            return ProofValidity(False, 0.1, [self.prover_id], errors)
        return ProofValidity(True, ACCEPTED_CONFIDENCE, [self.prover_id], [])

    async def run_command(self, command: str) -> CommandResult:
        """Treat ``command`` as a formula and check that it is valid."""
        self.prover_calls += 1
        outcome = await asyncio.to_thread(check_valid, command, (), self.timeout_ms)
        if outcome.proved:
            return CommandResult(True, "valid")
        return CommandResult(False, outcome.result.value, [_describe("command", outcome)])


def _describe(label: str, outcome) -> str:
    if outcome.result == SolverResult.SAT:
        witness = ", ".join(f"{k}={v}" for k, v in sorted(outcome.witness.items()))
        return f"{label}: counterexample {witness}"
    if outcome.error:
        return f"{label}: {outcome.result.value} ({outcome.error})"
    return f"{label}: {outcome.result.value}"
