"""Lean 4 backend: proofs to Lean source, checked with ``lean``."""

from __future__ import annotations

import logging
from typing import List, Optional

from veriproof.proof import Proof, ProofValidity
from veriproof.provers.base import (
    CommandResult, ProverCapabilities, TermPrinter, TranslationPlan,
    group_by_sort, plan_translation, run_checker,
)

logger = logging.getLogger(__name__)

LEAN_OPS = {
    "∧": "∧", "∨": "∨", "→": "→", "↔": "↔", "¬": "¬",
    "=": "=", "≠": "≠", "<": "<", "≤": "≤", ">": ">", "≥": "≥",
    "+": "+", "-": "-", "*": "*", "/": "/", "%": "%",
}
LEAN_SORTS = {"Bool": "Prop", "Int": "Int"}

LEMMA_TACTIC = "by intros; first | omega | simp_all | decide"


def _lean_quantifier(kind, names, sort_of, body) -> str:
    binders = " ".join(f"({n} : {sort_of(n)})" for n in names)
    return f"({kind} {binders}, {body})"


def render_lean(plan: TranslationPlan) -> str:
    printer = TermPrinter(LEAN_OPS, "True", "False", _lean_quantifier, LEAN_SORTS, plan.sorts)
    lines = [f"-- VeriProof: {plan.name}", "", f"section {plan.name}", ""]
    for sort, names in group_by_sort(plan.sorts).items():
        lines.append(f"variable ({' '.join(names)} : {LEAN_SORTS[sort]})")
    for (name, _arity), (args, ret) in plan.functions.items():
        signature = " → ".join([LEAN_SORTS[a] for a in args] + [LEAN_SORTS[ret]])
        lines.append(f"variable ({name} : {signature})")
    for i, assumption in enumerate(plan.assumptions):
        lines.append(f"-- assumption-{i}: {assumption}")
    lines.append("")

    for lemma in plan.lemmas:
        lines += [
            f"-- {lemma.comment}",
            f"theorem {lemma.name} : {printer.print(lemma.statement)} :=",
            f"  {LEMMA_TACTIC}",
            "",
        ]

    lines.append(f"theorem {plan.name} : {printer.print(plan.theorem)} :=")
    if len(plan.lemmas) == 1:
        lines.append(f"  {plan.lemmas[0].name} ..")
    elif plan.lemmas:
        used = ", ".join(f"{l.name} .." for l in plan.lemmas)
        lines.append(f"  ⟨{used}⟩")
    else:
        lines.append(f"  {LEMMA_TACTIC}")
    lines += ["", f"end {plan.name}", ""]
    return "\n".join(lines)


class LeanProver:
    """Checks proofs with the Lean 4 compiler.

    A missing ``lean`` binary or a non-zero exit status is a failed
    verification, as is any ``sorry`` left in the generated source.
    """

    def __init__(self, executable: str = "lean", args: Optional[List[str]] = None,
                 timeout_seconds: float = 30.0, prover_id: str = "lean"):
        self.prover_id = prover_id
        self.executable = executable
        self.args = list(args) if args is not None else []
        self.timeout_seconds = timeout_seconds

    def capabilities(self) -> ProverCapabilities:
        return ProverCapabilities(
            supported_logics=("propositional", "predicate", "dependent-types"),
            max_complexity=800,
            timeout_seconds=self.timeout_seconds,
            supports_interactive=True,
        )

    async def translate(self, proof: Proof) -> str:
        return render_lean(plan_translation(proof))

    async def verify(self, proof: Proof) -> ProofValidity:
        source = await self.translate(proof)
        result = await run_checker(self.executable, self.args, source, ".lean")
        output = result.stdout + result.stderr
        if result.returncode == 0 and "sorry" not in output:
            return ProofValidity(True, 0.95, [self.prover_id], [])
        errors = [line for line in output.splitlines() if line.strip()] or \
            [f"lean exited with status {result.returncode}"]
        logger.info("lean rejected proof %s: %s", proof.id, errors[0])
        return ProofValidity(False, 0.1, [self.prover_id], errors)

    async def run_command(self, command: str) -> CommandResult:
        """Check one Lean declaration or ``#check``/``example`` in a fresh file."""
        result = await run_checker(self.executable, self.args, command + "\n", ".lean")
        output = result.stdout + result.stderr
        success = result.returncode == 0 and "error" not in output
        return CommandResult(success, output, [] if success else [output.strip()])
