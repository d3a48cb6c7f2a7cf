"""VeriProof CLI — Command-line interface for the proof engine.

Commands:
  veriproof triple --pre P --stmt S --post Q   — Build, validate and check a Hoare triple
  veriproof wp --stmt S --post Q               — Weakest precondition
  veriproof sp --pre P --stmt S                — Strongest postcondition
  veriproof provers                            — Registered provers and capabilities
  veriproof export --pre P --stmt S --post Q --target coq|lean|smtlib2
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from veriproof import __version__
from veriproof.config import load_config, VeriproofConfig
from veriproof.errors import VeriproofError
from veriproof.formatters import (
    format_triple, format_consensus, format_validity, format_wp, format_sp, bold, dim, cyan,
)
from veriproof.formulas import FormulaRole
from veriproof.gateway import default_gateway
from veriproof.hoare import HoareProofGenerator
from veriproof.obligations import HoareTriple, ObligationTrace, discharge
from veriproof.parser import check_formula, parse_statement
from veriproof.proof_system import ProofSystem
from veriproof.provers.base import plan_translation
from veriproof.provers.coq import render_coq
from veriproof.provers.lean import render_lean
from veriproof.wp import WPCalculator


def _config(args: argparse.Namespace) -> VeriproofConfig:
    config = load_config(getattr(args, "config", None))
    level = "DEBUG" if getattr(args, "verbose", False) else config.log_level
    logging.basicConfig(level=getattr(logging, level, logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")
    return config


def _generator(config: VeriproofConfig) -> HoareProofGenerator:
    system = ProofSystem(lemma_threshold=config.lemma_threshold,
                         max_premises_per_step=config.max_premises_per_step)
    return HoareProofGenerator(system, WPCalculator(infer_invariants=config.infer_invariants))


def _triple(args: argparse.Namespace) -> HoareTriple:
    return HoareTriple(
        precondition=check_formula(args.pre, FormulaRole.PRECONDITION),
        statement=parse_statement(args.stmt),
        postcondition=check_formula(args.post, FormulaRole.POSTCONDITION),
    )


def cmd_triple(args: argparse.Namespace) -> int:
    """Verify {pre} stmt {post}; optionally discharge obligations and consult provers."""
    config = _config(args)
    try:
        triple = _triple(args)
    except VeriproofError as e:
        print(e.to_json())
        return 1

    result = _generator(config).verify_hoare_triple(triple, discharge_obligations=args.discharge)

    consensus = None
    single = None
    if args.prover and result.proof is not None:
        gateway = default_gateway(config)
        try:
            if len(args.prover) == 1:
                single = gateway.verify_sync(result.proof, args.prover[0])
            else:
                consensus = gateway.consensus_sync(result.proof, args.prover)
        except VeriproofError as e:
            print(e.to_json())
            return 1

    if args.format == "json":
        payload = result.to_dict()
        if consensus is not None:
            payload["consensus"] = consensus.to_dict()
        if single is not None:
            payload["prover"] = {args.prover[0]: single.to_dict()}
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(format_triple(result))
        if single is not None:
            print(format_validity(args.prover[0], single))
        if consensus is not None:
            print(format_consensus(consensus))

    ok = result.is_valid
    if consensus is not None:
        ok = ok and consensus.consensus
    if single is not None:
        ok = ok and single.is_valid
    return 0 if ok else 1


def cmd_wp(args: argparse.Namespace) -> int:
    """Print wp(stmt, post)."""
    config = _config(args)
    try:
        statement = parse_statement(args.stmt)
        post = check_formula(args.post, FormulaRole.POSTCONDITION)
    except VeriproofError as e:
        print(e.to_json())
        return 1
    result = WPCalculator(infer_invariants=config.infer_invariants).weakest_precondition(statement, post)
    print(format_wp(result))
    return 0


def cmd_sp(args: argparse.Namespace) -> int:
    """Print sp(pre, stmt)."""
    config = _config(args)
    try:
        statement = parse_statement(args.stmt)
        pre = check_formula(args.pre, FormulaRole.PRECONDITION)
    except VeriproofError as e:
        print(e.to_json())
        return 1
    result = WPCalculator(infer_invariants=config.infer_invariants).strongest_postcondition(pre, statement)
    print(format_sp(result))
    return 0


def cmd_provers(args: argparse.Namespace) -> int:
    """List registered provers."""
    config = _config(args)
    gateway = default_gateway(config)
    print(f"\n {bold('VeriProof Provers')}")
    print(f" {dim('─' * 45)}")
    for pid in gateway.available_provers():
        caps = gateway.capabilities(pid)
        marker = "*" if pid == gateway.default_prover else " "
        print(f" {marker} {cyan(pid):10s} logics={','.join(caps.supported_logics)} "
              f"timeout={gateway.timeout_for(pid)}s interactive={caps.supports_interactive}")
    print()
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Emit the proof of a triple as Coq, Lean or SMT-LIB2 source."""
    config = _config(args)
    try:
        triple = _triple(args)
    except VeriproofError as e:
        print(e.to_json())
        return 1

    generator = _generator(config)
    if args.target == "smtlib2":
        trace = ObligationTrace(triple=str(triple))
        for obligation in generator.obligation_generator.generate(triple):
            trace.add(discharge(obligation))
        print(trace.to_smtlib2_bundle())
        return 0

    result = generator.verify_hoare_triple(triple)
    proof = result.proof
    if proof is None:
        print(json.dumps({"error": "proof is not valid", "validation": result.validation.to_dict()}))
        return 1
    try:
        plan = plan_translation(proof)
    except VeriproofError as e:
        print(e.to_json())
        return 1
    print(render_coq(plan) if args.target == "coq" else render_lean(plan))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="veriproof",
        description="VeriProof — Hoare-logic proof construction and verification",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=None, help="Path to a .veriproofrc file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # triple
    p_triple = subparsers.add_parser("triple", help="Verify a Hoare triple {pre} stmt {post}")
    p_triple.add_argument("--pre", required=True, help="Precondition formula")
    p_triple.add_argument("--stmt", required=True, help="Statement, e.g. 'y := x + 1'")
    p_triple.add_argument("--post", required=True, help="Postcondition formula")
    p_triple.add_argument("--format", choices=["pretty", "json"], default="pretty",
                          help="Output format")
    p_triple.add_argument("--discharge", action="store_true",
                          help="Discharge proof obligations with Z3")
    p_triple.add_argument("--prover", action="append", default=[],
                          help="Send the proof to this prover (repeat for consensus)")
    p_triple.set_defaults(func=cmd_triple)

    # wp
    p_wp = subparsers.add_parser("wp", help="Weakest precondition of a statement")
    p_wp.add_argument("--stmt", required=True, help="Statement")
    p_wp.add_argument("--post", required=True, help="Postcondition formula")
    p_wp.set_defaults(func=cmd_wp)

    # sp
    p_sp = subparsers.add_parser("sp", help="Strongest postcondition of a statement")
    p_sp.add_argument("--pre", required=True, help="Precondition formula")
    p_sp.add_argument("--stmt", required=True, help="Statement")
    p_sp.set_defaults(func=cmd_sp)

    # provers
    p_provers = subparsers.add_parser("provers", help="List registered provers")
    p_provers.set_defaults(func=cmd_provers)

    # export
    p_export = subparsers.add_parser("export", help="Export a proof for an external prover")
    p_export.add_argument("--pre", required=True, help="Precondition formula")
    p_export.add_argument("--stmt", required=True, help="Statement")
    p_export.add_argument("--post", required=True, help="Postcondition formula")
    p_export.add_argument("--target", choices=["coq", "lean", "smtlib2"], required=True,
                          help="Output language")
    p_export.set_defaults(func=cmd_export)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(args.func(args))
    except VeriproofError as e:
        print(e.to_json())
        sys.exit(1)


if __name__ == "__main__":
    main()
