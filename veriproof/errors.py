"""Structured error objects for VeriProof.

Programming misuse (unknown proof handle, unknown prover, malformed
premise reference, unparsable formula, broken config file) is raised as a
``VeriproofError`` subclass.  Prover-side failures (``TranslationFailure``,
``ProverCrash``) are raised by backends and caught at the gateway boundary,
where they become ordinary invalid verification results.

Proof validation findings are never raised; see ``proof_system``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    PROOF_NOT_FOUND = "proof_not_found"
    PROVER_NOT_REGISTERED = "prover_not_registered"
    MALFORMED_PREMISE = "malformed_premise"
    SYNTAX_ERROR = "syntax_error"
    TRANSLATION_FAILURE = "translation_failure"
    PROVER_CRASH = "prover_crash"
    CONFIG_ERROR = "config_error"


@dataclass
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class Diagnostic:
    kind: ErrorKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


class VeriproofError(Exception):
    """Base exception; wraps a single ``Diagnostic``."""

    kind = ErrorKind.SYNTAX_ERROR

    def __init__(self, message: str, location: Optional[SourceLocation] = None,
                 **details: Any):
        self.diagnostic = Diagnostic(
            kind=self.kind, message=message, location=location, details=details,
        )
        super().__init__(str(self.diagnostic))

    @property
    def message(self) -> str:
        return self.diagnostic.message

    def to_dict(self) -> dict[str, Any]:
        return self.diagnostic.to_dict()

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class ProofNotFound(VeriproofError, KeyError):
    kind = ErrorKind.PROOF_NOT_FOUND

    def __str__(self) -> str:
        return str(self.diagnostic)


class ProverNotRegistered(VeriproofError, KeyError):
    kind = ErrorKind.PROVER_NOT_REGISTERED

    def __str__(self) -> str:
        return str(self.diagnostic)


class MalformedPremiseReference(VeriproofError, ValueError):
    kind = ErrorKind.MALFORMED_PREMISE


class FormulaSyntaxError(VeriproofError, ValueError):
    kind = ErrorKind.SYNTAX_ERROR


class TranslationFailure(VeriproofError):
    kind = ErrorKind.TRANSLATION_FAILURE


class ProverCrash(VeriproofError):
    kind = ErrorKind.PROVER_CRASH


class ConfigError(VeriproofError):
    kind = ErrorKind.CONFIG_ERROR


def proof_not_found(proof_id: str) -> ProofNotFound:
    return ProofNotFound(f"Proof {proof_id} not found", proof_id=proof_id)


def prover_not_registered(prover_id: str) -> ProverNotRegistered:
    return ProverNotRegistered(f"Prover {prover_id} is not registered",
                               prover_id=prover_id)


def malformed_premise(reference: str) -> MalformedPremiseReference:
    return MalformedPremiseReference(
        f"Malformed premise reference '{reference}': "
        f"expected 'assumption-<i>' or 'step-<n>'",
        reference=reference,
    )
