"""VeriProof Error Model Tests — ERR-001 through ERR-003."""

import json

import pytest

from veriproof.errors import (
    ConfigError, ErrorKind, FormulaSyntaxError, MalformedPremiseReference, ProofNotFound,
    ProverNotRegistered, SourceLocation, VeriproofError, malformed_premise, proof_not_found,
    prover_not_registered,
)


class TestDiagnostics:
    """ERR-001: Every error carries a diagnostic."""

    def test_kind_and_message(self):
        err = ConfigError("bad file", path=".veriproofrc.yml")
        assert err.diagnostic.kind == ErrorKind.CONFIG_ERROR
        assert err.message == "bad file"
        assert err.to_dict() == {
            "kind": "config_error",
            "message": "bad file",
            "details": {"path": ".veriproofrc.yml"},
        }

    def test_location(self):
        err = FormulaSyntaxError("unexpected ')'", SourceLocation(1, 7, "<formula>"))
        data = json.loads(err.to_json())
        assert data["location"] == {"file": "<formula>", "line": 1, "column": 7}
        assert str(err) == "[syntax_error] at <formula>:1:7: unexpected ')'"


class TestFactories:
    """ERR-002: Factory helpers."""

    def test_proof_not_found(self):
        err = proof_not_found("abc")
        assert isinstance(err, ProofNotFound)
        assert err.diagnostic.details == {"proof_id": "abc"}
        assert str(err) == "[proof_not_found]: Proof abc not found"

    def test_prover_not_registered(self):
        err = prover_not_registered("isabelle")
        assert isinstance(err, ProverNotRegistered)
        assert "isabelle" in err.message

    def test_malformed_premise(self):
        err = malformed_premise("lemma-3")
        assert isinstance(err, MalformedPremiseReference)
        assert "'lemma-3'" in err.message


class TestHierarchy:
    """ERR-003: Builtin bases for misuse errors."""

    def test_lookup_errors_are_key_errors(self):
        with pytest.raises(KeyError):
            raise proof_not_found("p")
        with pytest.raises(KeyError):
            raise prover_not_registered("x")

    def test_value_errors(self):
        with pytest.raises(ValueError):
            raise malformed_premise("x")
        with pytest.raises(ValueError):
            raise FormulaSyntaxError("bad")

    def test_all_share_base(self):
        for cls in (ProofNotFound, ProverNotRegistered, ConfigError, FormulaSyntaxError):
            assert issubclass(cls, VeriproofError)
