"""VeriProof Output Formatters — terminal rendering for the CLI.

    pretty — colored summary with severity icons (default)
    json   — machine-readable
"""

from __future__ import annotations

import os
import sys
from typing import List

from veriproof.gateway import ConsensusResult
from veriproof.hoare import TripleVerification
from veriproof.proof import ErrorSeverity, ProofValidity
from veriproof.wp import StrongestPostcondition, WeakestPrecondition


# ── ANSI color helpers ───────────────────────────────────────────────────

_NO_COLOR = os.environ.get("NO_COLOR") is not None or not sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if _NO_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def red(t: str) -> str:
    return _c("31", t)


def yellow(t: str) -> str:
    return _c("33", t)


def green(t: str) -> str:
    return _c("32", t)


def cyan(t: str) -> str:
    return _c("36", t)


def bold(t: str) -> str:
    return _c("1", t)


def dim(t: str) -> str:
    return _c("2", t)


ICON_ERROR = red("✖")
ICON_WARNING = yellow("▲")
ICON_OK = green("✔")
ICON_INFO = cyan("ℹ")


# ── Pretty formatters ────────────────────────────────────────────────────

def format_triple(result: TripleVerification) -> str:
    """Verdict, obligation table, validation findings and metrics."""
    lines: List[str] = []
    verdict = f"{ICON_OK} {green('VALID')}" if result.is_valid else f"{ICON_ERROR} {red('INVALID')}"
    lines.append(f"\n  {bold('VeriProof')} {verdict}  {dim(f'confidence {result.confidence:.2f}')}")
    lines.append(f"  {dim(result.trace.triple)}")
    lines.append(f"  {dim('─' * 60)}")
    lines.append(result.trace.to_ascii_table())

    validation = result.validation
    for error in validation.errors:
        icon = ICON_ERROR if error.severity >= ErrorSeverity.HIGH else ICON_WARNING
        where = f" ({error.step_id})" if error.step_id else ""
        lines.append(f"  {icon} {error.kind.value}{where}: {error.message}")
    for warning in validation.warnings:
        where = f" ({warning.step_id})" if warning.step_id else ""
        lines.append(f"  {ICON_WARNING} {warning.kind}{where}: {warning.message}")
    for suggestion in validation.suggestions:
        lines.append(f"  {ICON_INFO} {suggestion.kind}: {suggestion.message}")

    if validation.metrics:
        metrics = "  ".join(f"{k} {v:.2f}" for k, v in validation.metrics.items())
        lines.append(f"  {dim(metrics)}")
    return "\n".join(lines) + "\n"


def format_validity(prover: str, validity: ProofValidity) -> str:
    icon = ICON_OK if validity.is_valid else ICON_ERROR
    lines = [f"  {icon} {prover:<8} valid={validity.is_valid} confidence={validity.confidence:.2f}"]
    for error in validity.errors[:5]:
        lines.append(f"      {dim(error)}")
    return "\n".join(lines)


def format_consensus(result: ConsensusResult) -> str:
    lines = [format_validity(pid, v) for pid, v in result.results.items()]
    verdict = green("reached") if result.consensus else red("not reached")
    lines.append(f"  Consensus {verdict}, mean confidence {result.confidence:.3f}")
    return "\n".join(lines) + "\n"


def format_wp(result: WeakestPrecondition) -> str:
    lines = [f"  wp = {bold(result.formula.expression)}",
             f"  {dim(f'confidence {result.confidence:.2f}')}"]
    for sub in result.substitutions:
        lines.append(f"  {dim('substitution')} {sub}")
    for side in result.side_conditions:
        lines.append(f"  {dim('side condition')} {side.expression}")
    return "\n".join(lines) + "\n"


def format_sp(result: StrongestPostcondition) -> str:
    lines = [f"  sp = {bold(result.formula.expression)}",
             f"  {dim(f'confidence {result.confidence:.2f}')}"]
    for inv in result.invariants:
        lines.append(f"  {dim('loop invariant')} {inv.expression}")
    return "\n".join(lines) + "\n"
