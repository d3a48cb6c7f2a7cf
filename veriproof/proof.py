"""VeriProof Proof Model — the proof aggregate and its validation records.

A ``Proof`` owns an append-only list of ``ProofStep`` objects.  Each step
cites premises by reference string:

    assumption-<i>   the i-th assumption of the proof (0-based)
    step-<n>         the conclusion of an earlier step (1-based)

Steps are exposed read-only; ``ProofSystem.add_proof_step`` is the only way
to append one, and ``ProofSystem.validate_proof`` the only way to store a
validation snapshot.  The gateway appends to ``verification_history``.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple

from veriproof.formulas import LogicalFormula


ASSUMPTION_PREFIX = "assumption-"
STEP_PREFIX = "step-"

_REFERENCE = re.compile(r"^(assumption|step)-(\d+)$")


def parse_reference(reference: str) -> Optional[Tuple[str, int]]:
    """Split a premise reference into (kind, index), or None if malformed."""
    m = _REFERENCE.match(reference)
    if not m:
        return None
    return m.group(1), int(m.group(2))


def step_id(step_number: int) -> str:
    return f"{STEP_PREFIX}{step_number}"


def assumption_ref(index: int) -> str:
    return f"{ASSUMPTION_PREFIX}{index}"


# ---------------------------------------------------------------------------
# Rules, lemmas, steps
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InferenceRule:
    """A named inference rule.

    ``structural`` rules are program-logic rules (Hoare rules) whose
    conclusion follows from program semantics rather than from the cited
    formulas alone.
    """
    name: str
    premises: Tuple[str, ...] = ()
    conclusion: str = ""
    soundness: bool = True
    structural: bool = False


@dataclass(frozen=True)
class Lemma:
    id: str
    name: str
    statement: LogicalFormula
    is_axiom: bool = False
    domain: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProofStep:
    id: str
    step_number: int
    rule: InferenceRule
    premises: Tuple[str, ...]
    conclusion: LogicalFormula
    justification: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "step": self.step_number,
            "rule": self.rule.name,
            "premises": list(self.premises),
            "conclusion": self.conclusion.expression,
            "justification": self.justification,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class ProofComplexity:
    step_count: int = 0
    depth: int = 0
    branching_factor: float = 0.0
    cyclomatic_complexity: int = 0
    logical_complexity: int = 0


# ---------------------------------------------------------------------------
# Verification records
# ---------------------------------------------------------------------------

@dataclass
class ProofValidity:
    is_valid: bool
    confidence: float
    verified_by: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": round(self.confidence, 4),
            "verified_by": list(self.verified_by),
            "errors": list(self.errors),
        }


@dataclass
class VerificationResources:
    cpu_time: float = 0.0
    wall_clock_time: float = 0.0
    prover_calls: int = 0
    cache_hits: int = 0
    command_count: int = 0


@dataclass
class VerificationAttempt:
    """One entry in a proof's verification history."""
    timestamp: float
    prover: str
    result: ProofValidity
    duration: float
    resources: VerificationResources
    state: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "prover": self.prover,
            "result": self.result.to_dict(),
            "duration": round(self.duration, 4),
            "state": self.state,
        }


# ---------------------------------------------------------------------------
# Validation records
# ---------------------------------------------------------------------------

class ErrorSeverity(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class ProofErrorKind(str, Enum):
    INVALID_INFERENCE = "INVALID_INFERENCE"
    MISSING_PREMISE = "MISSING_PREMISE"
    CIRCULAR_REASONING = "CIRCULAR_REASONING"
    LOGICAL_INCONSISTENCY = "LOGICAL_INCONSISTENCY"


@dataclass(frozen=True)
class ProofError:
    kind: ProofErrorKind
    severity: ErrorSeverity
    message: str
    step_id: Optional[str] = None


@dataclass(frozen=True)
class ProofWarning:
    kind: str
    message: str
    step_id: Optional[str] = None


@dataclass(frozen=True)
class Suggestion:
    kind: str
    message: str
    step_ids: Tuple[str, ...] = ()


@dataclass
class ValidationResult:
    is_valid: bool
    confidence: float
    errors: List[ProofError] = field(default_factory=list)
    warnings: List[ProofWarning] = field(default_factory=list)
    suggestions: List[Suggestion] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": round(self.confidence, 4),
            "errors": [
                {"kind": e.kind.value, "severity": e.severity.name,
                 "message": e.message, "step": e.step_id}
                for e in self.errors
            ],
            "warnings": [
                {"kind": w.kind, "message": w.message, "step": w.step_id}
                for w in self.warnings
            ],
            "suggestions": [
                {"kind": s.kind, "message": s.message, "steps": list(s.step_ids)}
                for s in self.suggestions
            ],
            "metrics": {k: round(v, 4) for k, v in self.metrics.items()},
        }


# ---------------------------------------------------------------------------
# Proof aggregate
# ---------------------------------------------------------------------------

class Proof:
    """Aggregate root: premises, conclusion, steps and verification history."""

    def __init__(self, premises: List[LogicalFormula], conclusion: LogicalFormula,
                 lemmas: Optional[List[Lemma]] = None, proof_id: Optional[str] = None):
        self.id = proof_id or str(uuid.uuid4())
        self.premises: Tuple[LogicalFormula, ...] = tuple(premises)
        self.assumptions: Tuple[LogicalFormula, ...] = tuple(premises)
        self.conclusion = conclusion
        self.lemmas: Tuple[Lemma, ...] = tuple(lemmas or ())
        self.complexity = ProofComplexity()
        self.verification_history: List[VerificationAttempt] = []
        self.validity: Optional[ProofValidity] = None
        self.validation: Optional[ValidationResult] = None
        self.created_at = time.time()
        self._steps: List[ProofStep] = []

    @property
    def steps(self) -> Tuple[ProofStep, ...]:
        return tuple(self._steps)

    def _append_step(self, step: ProofStep) -> None:
        self._steps.append(step)

    def step(self, reference: str) -> Optional[ProofStep]:
        parsed = parse_reference(reference)
        if parsed is None or parsed[0] != "step":
            return None
        n = parsed[1]
        if 1 <= n <= len(self._steps):
            return self._steps[n - 1]
        return None

    def resolve(self, reference: str) -> Optional[LogicalFormula]:
        """Formula a premise reference points to, or None if unresolved."""
        parsed = parse_reference(reference)
        if parsed is None:
            return None
        kind, index = parsed
        if kind == "assumption":
            return self.assumptions[index] if index < len(self.assumptions) else None
        found = self.step(reference)
        return found.conclusion if found else None

    def __repr__(self) -> str:
        return (f"Proof(id={self.id!r}, steps={len(self._steps)}, "
                f"conclusion={self.conclusion.expression!r})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "premises": [p.expression for p in self.premises],
            "conclusion": self.conclusion.expression,
            "steps": [s.to_dict() for s in self._steps],
            "lemmas": [l.name for l in self.lemmas],
            "complexity": {
                "step_count": self.complexity.step_count,
                "depth": self.complexity.depth,
                "branching_factor": round(self.complexity.branching_factor, 4),
                "cyclomatic_complexity": self.complexity.cyclomatic_complexity,
                "logical_complexity": self.complexity.logical_complexity,
            },
            "validity": self.validity.to_dict() if self.validity else None,
            "verification_history": [a.to_dict() for a in self.verification_history],
        }
