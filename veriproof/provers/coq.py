"""Coq backend: proofs to Coq vernacular, checked with ``coqc``."""

from __future__ import annotations

import logging
from typing import List, Optional

from veriproof.proof import Proof, ProofValidity
from veriproof.provers.base import (
    CommandResult, ProverCapabilities, TermPrinter, TranslationPlan,
    group_by_sort, plan_translation, run_checker,
)

logger = logging.getLogger(__name__)

COQ_OPS = {
    "∧": "/\\", "∨": "\\/", "→": "->", "↔": "<->", "¬": "~",
    "=": "=", "≠": "<>", "<": "<", "≤": "<=", ">": ">", "≥": ">=",
    "+": "+", "-": "-", "*": "*", "/": "/", "%": "mod",
}
COQ_SORTS = {"Bool": "Prop", "Int": "Z"}

LEMMA_TACTIC = "intros; first [lia | tauto | firstorder]"


def _coq_quantifier(kind, names, sort_of, body) -> str:
    word = "forall" if kind == "∀" else "exists"
    binders = " ".join(f"({n} : {sort_of(n)})" for n in names)
    return f"({word} {binders}, {body})"


def render_coq(plan: TranslationPlan) -> str:
    printer = TermPrinter(COQ_OPS, "True", "False", _coq_quantifier, COQ_SORTS, plan.sorts)
    lines = [
        f"(* VeriProof: {plan.name} *)",
        "Require Import Coq.Logic.Classical.",
        "Require Import ZArith.",
        "Require Import Lia.",
        "Open Scope Z_scope.",
        "",
        f"Section {plan.name}.",
    ]
    for sort, names in group_by_sort(plan.sorts).items():
        lines.append(f"Variables {' '.join(names)} : {COQ_SORTS[sort]}.")
    for (name, _arity), (args, ret) in plan.functions.items():
        signature = " -> ".join([COQ_SORTS[a] for a in args] + [COQ_SORTS[ret]])
        lines.append(f"Variable {name} : {signature}.")
    for i, assumption in enumerate(plan.assumptions):
        lines.append(f"(* assumption-{i}: {assumption} *)")
    lines.append("")

    for lemma in plan.lemmas:
        lines += [
            f"(* {lemma.comment} *)",
            f"Lemma {lemma.name} : {printer.print(lemma.statement)}.",
            f"Proof. {LEMMA_TACTIC}. Qed.",
            "",
        ]

    lines.append(f"Theorem {plan.name} : {printer.print(plan.theorem)}.")
    if plan.lemmas:
        used = ", ".join(l.name for l in plan.lemmas)
        lines.append(f"Proof. repeat split; auto using {used}. Qed.")
    else:
        lines.append(f"Proof. {LEMMA_TACTIC}. Qed.")
    lines += ["", f"End {plan.name}.", ""]
    return "\n".join(lines)


class CoqProver:
    """Checks proofs with the Coq compiler.

    A missing ``coqc`` or a non-zero exit status is a failed verification.
    """

    def __init__(self, executable: str = "coqc", args: Optional[List[str]] = None,
                 timeout_seconds: float = 30.0, prover_id: str = "coq"):
        self.prover_id = prover_id
        self.executable = executable
        self.args = list(args) if args is not None else ["-q"]
        self.timeout_seconds = timeout_seconds

    def capabilities(self) -> ProverCapabilities:
        return ProverCapabilities(
            supported_logics=("propositional", "predicate", "higher-order"),
            max_complexity=1000,
            timeout_seconds=self.timeout_seconds,
            supports_interactive=True,
        )

    async def translate(self, proof: Proof) -> str:
        return render_coq(plan_translation(proof))

    async def verify(self, proof: Proof) -> ProofValidity:
        source = await self.translate(proof)
        result = await run_checker(self.executable, self.args, source, ".v")
        if result.returncode == 0:
            return ProofValidity(True, 0.95, [self.prover_id], [])
        errors = [line for line in result.stderr.splitlines() + result.stdout.splitlines()
                  if line.strip()] or [f"coqc exited with status {result.returncode}"]
        logger.info("coq rejected proof %s: %s", proof.id, errors[0])
        return ProofValidity(False, 0.1, [self.prover_id], errors)

    async def run_command(self, command: str) -> CommandResult:
        """Check one vernacular fragment in a fresh file."""
        source = "\n".join([
            "Require Import Coq.Logic.Classical.",
            "Require Import ZArith.",
            "Require Import Lia.",
            "Open Scope Z_scope.",
            command if command.rstrip().endswith(".") else command + ".",
            "",
        ])
        result = await run_checker(self.executable, self.args, source, ".v")
        errors = [] if result.returncode == 0 else [result.stderr.strip() or result.stdout.strip()]
        return CommandResult(result.returncode == 0, result.stdout, errors)
