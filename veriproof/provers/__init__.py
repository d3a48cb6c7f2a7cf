"""Prover backends and the contract they implement."""

from veriproof.provers.base import (
    ProverCapabilities, ProofVerifier, InteractiveProver, SessionState,
    VerificationSession, InteractiveStep, CommandResult,
)
from veriproof.provers.z3_prover import Z3Prover
from veriproof.provers.coq import CoqProver
from veriproof.provers.lean import LeanProver
