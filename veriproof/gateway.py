"""VeriProof Verifier Gateway — one interface to many external provers.

Every call runs in a ``VerificationSession``:

    INITIALIZING → TRANSLATING → VERIFYING → COMPLETED
                                           ↘ FAILED   (translation or prover error)
                                           ↘ TIMEOUT  (per-call deadline exceeded)

and interactive calls go INITIALIZING → INTERACTIVE → COMPLETED | FAILED.
Whatever happens, exactly one ``VerificationAttempt`` is appended to the
proof's history and a ``ProofValidity`` is returned; only an unknown prover
id raises.

Consensus runs all provers concurrently, waits for every result, and is
reached when more than half of them accept the proof.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from veriproof.config import VeriproofConfig
from veriproof.errors import prover_not_registered
from veriproof.proof import Proof, ProofValidity, VerificationAttempt
from veriproof.provers.base import (
    ProofVerifier, ProverCapabilities, SessionState, VerificationSession, InteractiveStep,
)
from veriproof.provers.coq import CoqProver
from veriproof.provers.lean import LeanProver
from veriproof.provers.z3_prover import Z3Prover

logger = logging.getLogger(__name__)


@dataclass
class ConsensusResult:
    consensus: bool
    results: Dict[str, ProofValidity] = field(default_factory=dict)
    confidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "consensus": self.consensus,
            "confidence": round(self.confidence, 4),
            "results": {k: v.to_dict() for k, v in self.results.items()},
        }


def _failure(message: str) -> ProofValidity:
    return ProofValidity(False, 0.0, [], [message])


class VerifierGateway:
    """Registry of provers plus session bookkeeping around every call."""

    def __init__(self, config: Optional[VeriproofConfig] = None):
        self.config = config or VeriproofConfig()
        self._provers: Dict[str, ProofVerifier] = {}
        self._default: Optional[str] = None

    # -- registry --------------------------------------------------------

    def register_prover(self, prover: ProofVerifier, prover_id: Optional[str] = None) -> str:
        if not isinstance(prover, ProofVerifier):
            raise TypeError(f"{type(prover).__name__} does not implement the prover contract")
        pid = prover_id or prover.prover_id
        self._provers[pid] = prover
        if self._default is None or pid == self.config.default_prover:
            self._default = pid
        logger.debug("registered prover %s", pid)
        return pid

    def available_provers(self) -> List[str]:
        return list(self._provers)

    def _prover(self, prover_id: str) -> ProofVerifier:
        prover = self._provers.get(prover_id)
        if prover is None:
            raise prover_not_registered(prover_id)
        return prover

    def capabilities(self, prover_id: str) -> ProverCapabilities:
        return self._prover(prover_id).capabilities()

    def set_default_prover(self, prover_id: str) -> None:
        self._prover(prover_id)
        self._default = prover_id

    @property
    def default_prover(self) -> Optional[str]:
        return self._default

    def timeout_for(self, prover_id: str) -> float:
        if self.config.prover_timeout is not None:
            return self.config.prover_timeout
        return self.capabilities(prover_id).timeout_seconds

    # -- single prover ---------------------------------------------------

    async def verify_with_prover(self, proof: Proof, prover_id: str) -> ProofValidity:
        prover = self._prover(prover_id)
        timeout = self.timeout_for(prover_id)
        session = VerificationSession(prover=prover_id, proof=proof)
        counters = _counters(prover)
        cpu_start = time.process_time()
        wall_start = time.perf_counter()

        try:
            result = await asyncio.wait_for(self._run(prover, session), timeout=timeout)
            session.transition(SessionState.COMPLETED)
        except asyncio.TimeoutError:
            session.transition(SessionState.TIMEOUT)
            logger.warning("prover %s timed out after %.1fs on proof %s",
                           prover_id, timeout, proof.id)
            result = _failure(f"Verification timed out after {timeout}s")
        except Exception as exc:
            session.transition(SessionState.FAILED)
            logger.warning("prover %s failed on proof %s: %s", prover_id, proof.id, exc)
            result = _failure(str(exc))

        self._record(session, prover, result, counters, cpu_start, wall_start)
        return result

    async def _run(self, prover: ProofVerifier, session: VerificationSession) -> ProofValidity:
        session.transition(SessionState.TRANSLATING)
        session.translation = await prover.translate(session.proof)
        session.transition(SessionState.VERIFYING)
        return await prover.verify(session.proof)

    def _record(self, session: VerificationSession, prover: ProofVerifier,
                result: ProofValidity, counters: Dict[str, int],
                cpu_start: float, wall_start: float) -> None:
        resources = session.resources
        resources.wall_clock_time = time.perf_counter() - wall_start
        resources.cpu_time = time.process_time() - cpu_start
        after = _counters(prover)
        resources.prover_calls = max(1, after["prover_calls"] - counters["prover_calls"])
        resources.cache_hits = after["cache_hits"] - counters["cache_hits"]
        session.proof.verification_history.append(VerificationAttempt(
            timestamp=session.start_time,
            prover=session.prover,
            result=result,
            duration=resources.wall_clock_time,
            resources=resources,
            state=session.state.value,
        ))
        logger.info("prover %s on proof %s: %s (valid=%s)", session.prover,
                    session.proof.id, session.state.value, result.is_valid)

    async def verify_proof(self, proof: Proof) -> ProofValidity:
        """Verify with the default prover."""
        if self._default is None:
            raise prover_not_registered("<default>")
        return await self.verify_with_prover(proof, self._default)

    # -- consensus -------------------------------------------------------

    async def verify_with_consensus(self, proof: Proof,
                                    prover_ids: Optional[Sequence[str]] = None) -> ConsensusResult:
        ids = list(dict.fromkeys(prover_ids)) if prover_ids is not None \
            else self.available_provers()
        for pid in ids:
            self._prover(pid)
        if not ids:
            return ConsensusResult(False, {}, 0.0)

        verdicts = await asyncio.gather(*(self.verify_with_prover(proof, pid) for pid in ids))
        results = dict(zip(ids, verdicts))
        valid = sum(1 for r in verdicts if r.is_valid)
        confidence = sum(r.confidence for r in verdicts) / len(verdicts)
        return ConsensusResult(valid > len(verdicts) / 2, results, confidence)

    # -- interactive -----------------------------------------------------

    async def verify_interactive(self, proof: Proof, prover_id: str,
                                 commands: Sequence[str]) -> VerificationSession:
        """Send commands one at a time; stop at the first failing one."""
        prover = self._prover(prover_id)
        timeout = self.timeout_for(prover_id)
        session = VerificationSession(prover=prover_id, proof=proof)
        counters = _counters(prover)
        cpu_start = time.process_time()
        wall_start = time.perf_counter()
        session.transition(SessionState.INTERACTIVE)

        run_command = getattr(prover, "run_command", None)
        if run_command is None or not prover.capabilities().supports_interactive:
            session.transition(SessionState.FAILED)
            result = _failure(f"Prover {prover_id} does not support interactive sessions")
            self._record(session, prover, result, counters, cpu_start, wall_start)
            return session

        for command in commands:
            number = len(session.interactive_steps) + 1
            stamp = time.time()
            try:
                reply = await asyncio.wait_for(run_command(command), timeout=timeout)
                step = InteractiveStep(number, command, reply.output or "; ".join(reply.errors),
                                       reply.success, stamp)
            except asyncio.TimeoutError:
                step = InteractiveStep(number, command, f"timed out after {timeout}s", False, stamp)
            except Exception as exc:
                step = InteractiveStep(number, command, str(exc), False, stamp)
            session.interactive_steps.append(step)
            session.resources.command_count += 1
            if not step.success:
                session.transition(SessionState.FAILED)
                break

        if session.state != SessionState.FAILED:
            session.transition(SessionState.COMPLETED)
            result = ProofValidity(True, 0.95, [prover_id], [])
        else:
            failed = session.interactive_steps[-1]
            result = ProofValidity(False, 0.0, [prover_id],
                                   [f"command {failed.step_number} failed: {failed.response}"])
        self._record(session, prover, result, counters, cpu_start, wall_start)
        return session

    # -- synchronous wrappers --------------------------------------------

    def verify_sync(self, proof: Proof, prover_id: Optional[str] = None) -> ProofValidity:
        if prover_id is None:
            return asyncio.run(self.verify_proof(proof))
        return asyncio.run(self.verify_with_prover(proof, prover_id))

    def consensus_sync(self, proof: Proof,
                       prover_ids: Optional[Sequence[str]] = None) -> ConsensusResult:
        return asyncio.run(self.verify_with_consensus(proof, prover_ids))


def _counters(prover: ProofVerifier) -> Dict[str, int]:
    return {
        "prover_calls": getattr(prover, "prover_calls", 0),
        "cache_hits": getattr(prover, "cache_hits", 0),
    }


def default_gateway(config: Optional[VeriproofConfig] = None) -> VerifierGateway:
    """Gateway with the built-in provers enabled in ``config``."""
    config = config or VeriproofConfig()
    gateway = VerifierGateway(config)
    candidates = [
        Z3Prover(),
        CoqProver(executable=config.coq_executable),
        LeanProver(executable=config.lean_executable),
    ]
    for prover in candidates:
        if config.prover_enabled(prover.prover_id):
            gateway.register_prover(prover)
    if config.default_prover in gateway.available_provers():
        gateway.set_default_prover(config.default_prover)
    return gateway
