"""Prover contract, verification sessions and shared translation machinery.

Any object with a ``prover_id`` and the three methods of ``ProofVerifier``
can be registered with the gateway; interactive provers also implement
``run_command``.  There is no base class to inherit from.

Translation to prover source goes through ``plan_translation``, which
resolves step premises and assigns every identifier a sort (``Bool`` or
``Int``) once, so each backend only has to print terms.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from veriproof.errors import FormulaSyntaxError, ProverCrash, TranslationFailure
from veriproof.parser import Node, Const, Var, App, Unary, Binary, Quant, parse_formula
from veriproof.proof import Proof, ProofValidity, VerificationResources
from veriproof.smt import Z3Translator, BOOL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProverCapabilities:
    supported_logics: Tuple[str, ...]
    max_complexity: int
    timeout_seconds: float
    supports_interactive: bool

    def to_dict(self) -> dict:
        return {
            "supported_logics": list(self.supported_logics),
            "max_complexity": self.max_complexity,
            "timeout_seconds": self.timeout_seconds,
            "supports_interactive": self.supports_interactive,
        }


@dataclass
class CommandResult:
    success: bool
    output: str = ""
    errors: List[str] = field(default_factory=list)


@runtime_checkable
class ProofVerifier(Protocol):
    prover_id: str

    def capabilities(self) -> ProverCapabilities: ...

    async def translate(self, proof: Proof) -> str: ...

    async def verify(self, proof: Proof) -> ProofValidity: ...


@runtime_checkable
class InteractiveProver(ProofVerifier, Protocol):
    async def run_command(self, command: str) -> CommandResult: ...


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class SessionState(str, Enum):
    INITIALIZING = "INITIALIZING"
    TRANSLATING = "TRANSLATING"
    VERIFYING = "VERIFYING"
    INTERACTIVE = "INTERACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


TERMINAL_STATES = (SessionState.COMPLETED, SessionState.FAILED, SessionState.TIMEOUT)


@dataclass
class InteractiveStep:
    step_number: int
    command: str
    response: str
    success: bool
    timestamp: float


@dataclass
class VerificationSession:
    """One prover call; lives until its attempt is recorded on the proof."""
    prover: str
    proof: Proof
    id: str = field(default_factory=lambda: f"session-{uuid.uuid4().hex[:12]}")
    state: SessionState = SessionState.INITIALIZING
    start_time: float = field(default_factory=time.time)
    translation: str = ""
    interactive_steps: List[InteractiveStep] = field(default_factory=list)
    resources: VerificationResources = field(default_factory=VerificationResources)

    def transition(self, state: SessionState) -> None:
        logger.debug("session %s (%s): %s -> %s", self.id, self.prover,
                     self.state.value, state.value)
        self.state = state

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


# ---------------------------------------------------------------------------
# Translation plan
# ---------------------------------------------------------------------------

@dataclass
class PlannedLemma:
    name: str
    statement: Node
    comment: str


@dataclass
class TranslationPlan:
    """Prover-neutral view of a proof.

    ``lemmas`` holds one entry per checkable step: the step's conclusion,
    with its cited formulas as antecedents unless the rule is structural.
    ``theorem`` is the conjunction of all lemmas, or ``premises → goal``
    for a proof without steps.
    """
    name: str
    sorts: Dict[str, str]
    functions: Dict[Tuple[str, int], Tuple[Tuple[str, ...], str]]
    assumptions: List[str]
    lemmas: List[PlannedLemma]
    theorem: Node
    bound: Tuple[str, ...] = ()


def _parse(text: str) -> Node:
    try:
        return parse_formula(text)
    except FormulaSyntaxError as exc:
        raise TranslationFailure(f"Cannot translate formula '{text}': {exc.message}") from exc


def _chain(antecedents: Sequence[Node], goal: Node) -> Node:
    for a in reversed(antecedents):
        goal = Binary("→", a, goal)
    return goal


def _conjunction(nodes: Sequence[Node]) -> Node:
    if not nodes:
        return Const(True)
    result = nodes[-1]
    for n in reversed(nodes[:-1]):
        result = Binary("∧", n, result)
    return result


def _bound_names(node: Node, out: set) -> None:
    if isinstance(node, Quant):
        out.update(node.names)
        _bound_names(node.body, out)
    elif isinstance(node, Binary):
        _bound_names(node.left, out)
        _bound_names(node.right, out)
    elif isinstance(node, Unary):
        _bound_names(node.operand, out)
    elif isinstance(node, App):
        for a in node.args:
            _bound_names(a, out)


def identifier(text: str) -> str:
    """A prover-safe identifier derived from ``text``."""
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", text)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"p_{cleaned}"
    return cleaned


def plan_translation(proof: Proof) -> TranslationPlan:
    """Resolve premises and infer sorts for every formula in ``proof``."""
    lemmas: List[PlannedLemma] = []
    for step in proof.steps:
        conclusion = _parse(step.conclusion.expression)
        cites_steps = any(ref.startswith("step-") for ref in step.premises)
        if step.rule.structural and cites_steps:
            continue
        antecedents = []
        for ref in step.premises:
            resolved = proof.resolve(ref)
            if resolved is None:
                raise TranslationFailure(f"Unresolved premise {ref} in {step.id}",
                                         step=step.id, premise=ref)
            antecedents.append(_parse(resolved.expression))
        statement = _chain(antecedents, conclusion)
        lemmas.append(PlannedLemma(identifier(step.id), statement,
                                   f"{step.id}: {step.rule.name}"))

    if lemmas:
        theorem = _conjunction([l.statement for l in lemmas])
    else:
        theorem = _chain([_parse(p.expression) for p in proof.premises],
                         _parse(proof.conclusion.expression))

    translator = Z3Translator()
    bound: set = set()
    for node in [l.statement for l in lemmas] + [theorem]:
        translator.infer(node, BOOL)
        _bound_names(node, bound)

    return TranslationPlan(
        name=identifier(f"proof_{proof.id}"),
        sorts={k: v for k, v in translator.sorts.items() if k not in bound},
        functions=dict(translator.signatures),
        assumptions=[p.expression for p in proof.premises],
        lemmas=lemmas,
        theorem=theorem,
        bound=tuple(sorted(bound)),
    )


class TermPrinter:
    """Prints formula ASTs with a per-prover operator table.

    ``quantifier`` formats ``(kind, names, sort_of, body)`` since binder
    syntax differs most between provers.
    """

    def __init__(self, ops: Dict[str, str], true: str, false: str,
                 quantifier: Callable[[str, Tuple[str, ...], Callable[[str], str], str], str],
                 sort_names: Dict[str, str], sorts: Dict[str, str]):
        self.ops = ops
        self.true = true
        self.false = false
        self.quantifier = quantifier
        self.sort_names = sort_names
        self.sorts = sorts

    def sort_of(self, name: str) -> str:
        return self.sort_names[self.sorts.get(name, "Int")]

    def print(self, node: Node) -> str:
        if isinstance(node, Const):
            if isinstance(node.value, bool):
                return self.true if node.value else self.false
            return str(node.value) if node.value >= 0 else f"({node.value})"
        if isinstance(node, Var):
            return node.name
        if isinstance(node, App):
            return "(" + " ".join([node.func] + [self.print(a) for a in node.args]) + ")"
        if isinstance(node, Unary):
            op = self.ops["¬"] if node.op == "¬" else "-"
            return f"({op} {self.print(node.operand)})"
        if isinstance(node, Quant):
            return self.quantifier(node.kind, node.names, self.sort_of, self.print(node.body))
        if isinstance(node, Binary):
            return f"({self.print(node.left)} {self.ops[node.op]} {self.print(node.right)})"
        raise TranslationFailure(f"Unsupported formula node {node!r}")


def group_by_sort(sorts: Dict[str, str]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for name, sort in sorts.items():
        grouped.setdefault(sort, []).append(name)
    return grouped


# ---------------------------------------------------------------------------
# External processes
# ---------------------------------------------------------------------------

@dataclass
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str
    duration: float


async def run_checker(executable: str, args: Sequence[str], source: str, suffix: str,
                      timeout: Optional[float] = None) -> ProcessResult:
    """Write ``source`` to a temp file and run ``executable args... file``.

    A missing executable raises ``ProverCrash``; a timeout kills the
    process and raises ``asyncio.TimeoutError``.
    """
    with tempfile.NamedTemporaryFile("w", suffix=suffix, delete=False,
                                     encoding="utf-8") as f:
        f.write(source)
        path = f.name

    started = time.perf_counter()
    proc = None
    try:
        try:
            proc = await asyncio.create_subprocess_exec(
                executable, *args, path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ProverCrash(f"Prover executable not found: {executable}",
                              executable=executable) from exc

        if timeout is None:
            stdout, stderr = await proc.communicate()
        else:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        return ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration=time.perf_counter() - started,
        )
    finally:
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        with contextlib.suppress(OSError):
            os.unlink(path)
