"""VeriProof — Hoare-logic proof construction and verification engine"""

__version__ = "0.1.0"

from veriproof.errors import (
    VeriproofError, ProofNotFound, ProverNotRegistered,
    MalformedPremiseReference, FormulaSyntaxError,
    TranslationFailure, ProverCrash, ConfigError,
)
from veriproof.formulas import (
    Variable, FormulaRole, LogicalFormula,
    substitute_variable, combine_formulas,
)
from veriproof.statements import StatementType, CodeStatement
from veriproof.wp import WPCalculator
from veriproof.obligations import ObligationType, ProofObligation, HoareTriple
from veriproof.proof_system import ProofSystem
from veriproof.hoare import HoareProofGenerator
from veriproof.gateway import VerifierGateway
