"""VeriProof SMT bridge — discharging formulas with Z3.

An implication ``A → G`` is valid iff ``A ∧ ¬G`` is unsatisfiable, so every
check asserts the assumptions, asserts the negated goal and asks Z3:

    unsat    the goal is proved                       (SolverResult.UNSAT)
    sat      the model is a counterexample witness    (SolverResult.SAT)
    unknown  timeout or incomplete theory             (SolverResult.UNKNOWN)

Formulas are untyped text, so sorts are inferred before translation:
identifiers in boolean position (operands of connectives, quantifier
bodies, the top level) are ``Bool``, everything else is ``Int``.
Applications ``f(a, b)`` become uninterpreted functions.

References:
  de Moura & Bjørner (2008) "Z3: An Efficient SMT Solver"
  TACAS 2008, https://doi.org/10.1007/978-3-540-78800-3_24
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from veriproof.errors import TranslationFailure
from veriproof.parser import Node, Const, Var, App, Unary, Binary, Quant, parse_formula

try:
    import z3
    HAS_Z3 = True
except ImportError:
    z3 = None
    HAS_Z3 = False

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000


class SolverResult(str, Enum):
    """Outcome of an SMT query."""
    UNSAT = "UNSAT"          # negated goal unsatisfiable -> proved
    SAT = "SAT"              # counterexample found
    UNKNOWN = "UNKNOWN"      # solver timed out or gave up
    SKIPPED = "SKIPPED"      # Z3 unavailable
    ERROR = "ERROR"          # formula could not be translated


@dataclass
class SmtOutcome:
    result: SolverResult
    witness: Dict[str, str] = field(default_factory=dict)
    smtlib2: str = ""
    duration_ms: float = 0.0
    error: str = ""

    @property
    def proved(self) -> bool:
        return self.result == SolverResult.UNSAT


_LOGICAL = {"∧", "∨", "→", "↔"}
_ORDER = {"<", "≤", ">", "≥"}
_ARITH = {"+", "-", "*", "/", "%"}

BOOL = "Bool"
INT = "Int"


class Z3Translator:
    """Translate parsed formulas into Z3 terms over one shared signature."""

    def __init__(self):
        self.sorts: Dict[str, str] = {}
        self.signatures: Dict[Tuple[str, int], Tuple[Tuple[str, ...], str]] = {}
        self.consts: Dict[str, Any] = {}
        self.functions: Dict[Tuple[str, int], Any] = {}

    # -- sort inference ----------------------------------------------------

    def _record(self, name: str, sort: str) -> None:
        known = self.sorts.get(name)
        if known is None:
            self.sorts[name] = sort
        elif known != sort:
            raise TranslationFailure(
                f"'{name}' is used both as {known} and as {sort}", name=name)

    def infer(self, node: Node, expected: Optional[str] = BOOL) -> Optional[str]:
        if isinstance(node, Const):
            return BOOL if isinstance(node.value, bool) else INT
        if isinstance(node, Var):
            if expected is not None:
                self._record(node.name, expected)
            return self.sorts.get(node.name)
        if isinstance(node, App):
            arg_sorts = tuple(self.infer(a, None) or INT for a in node.args)
            for a, s in zip(node.args, arg_sorts):
                self.infer(a, s)
            key = (node.func, len(node.args))
            ret = expected or INT
            known = self.signatures.get(key)
            if known is None:
                self.signatures[key] = (arg_sorts, ret)
            elif expected is not None and known[1] != expected:
                raise TranslationFailure(
                    f"Function '{node.func}' returns {known[1]}, used as {expected}",
                    function=node.func)
            return self.signatures[key][1]
        if isinstance(node, Unary):
            sort = BOOL if node.op == "¬" else INT
            self.infer(node.operand, sort)
            return sort
        if isinstance(node, Quant):
            self.infer(node.body, BOOL)
            for name in node.names:
                self.sorts.setdefault(name, INT)
            return BOOL
        if isinstance(node, Binary):
            if node.op in _LOGICAL:
                self.infer(node.left, BOOL)
                self.infer(node.right, BOOL)
                return BOOL
            if node.op in _ORDER:
                self.infer(node.left, INT)
                self.infer(node.right, INT)
                return BOOL
            if node.op in _ARITH:
                self.infer(node.left, INT)
                self.infer(node.right, INT)
                return INT
            # = and ≠ unify their operands
            ls = self.infer(node.left, None)
            rs = self.infer(node.right, None)
            sort = ls or rs or INT
            self.infer(node.left, sort)
            self.infer(node.right, sort)
            return BOOL
        raise TranslationFailure(f"Unsupported formula node {node!r}")

    # -- translation -------------------------------------------------------

    def _z3_sort(self, sort: str):
        return z3.BoolSort() if sort == BOOL else z3.IntSort()

    def _const(self, name: str):
        if name not in self.consts:
            sort = self.sorts.get(name, INT)
            self.consts[name] = z3.Bool(name) if sort == BOOL else z3.Int(name)
        return self.consts[name]

    def _function(self, name: str, arity: int):
        key = (name, arity)
        if key not in self.functions:
            arg_sorts, ret = self.signatures[key]
            sig = [self._z3_sort(s) for s in arg_sorts] + [self._z3_sort(ret)]
            self.functions[key] = z3.Function(name, *sig)
        return self.functions[key]

    def translate(self, node: Node, env: Optional[Dict[str, Any]] = None):
        env = env or {}
        if isinstance(node, Const):
            if isinstance(node.value, bool):
                return z3.BoolVal(node.value)
            return z3.IntVal(node.value)
        if isinstance(node, Var):
            if node.name in env:
                return env[node.name]
            return self._const(node.name)
        if isinstance(node, App):
            fn = self._function(node.func, len(node.args))
            return fn(*[self.translate(a, env) for a in node.args])
        if isinstance(node, Unary):
            inner = self.translate(node.operand, env)
            return z3.Not(inner) if node.op == "¬" else -inner
        if isinstance(node, Quant):
            scope = dict(env)
            bound = []
            for name in node.names:
                sort = self.sorts.get(name, INT)
                c = z3.FreshConst(self._z3_sort(sort), name)
                scope[name] = c
                bound.append(c)
            body = self.translate(node.body, scope)
            if node.kind == "∀":
                return z3.ForAll(bound, body)
            return z3.Exists(bound, body)
        if isinstance(node, Binary):
            left = self.translate(node.left, env)
            right = self.translate(node.right, env)
            ops = {
                "∧": lambda l, r: z3.And(l, r),
                "∨": lambda l, r: z3.Or(l, r),
                "→": lambda l, r: z3.Implies(l, r),
                "↔": lambda l, r: l == r,
                "=": lambda l, r: l == r,
                "≠": lambda l, r: l != r,
                "<": lambda l, r: l < r,
                "≤": lambda l, r: l <= r,
                ">": lambda l, r: l > r,
                "≥": lambda l, r: l >= r,
                "+": lambda l, r: l + r,
                "-": lambda l, r: l - r,
                "*": lambda l, r: l * r,
                "/": lambda l, r: l / r,
                "%": lambda l, r: l % r,
            }
            return ops[node.op](left, right)
        raise TranslationFailure(f"Unsupported formula node {node!r}")


def _parse_all(texts: Sequence[str]) -> List[Node]:
    return [parse_formula(t) for t in texts]


def build_query(goal: str, assumptions: Sequence[str] = ()):
    """Translate ``assumptions ⊢ goal`` into (translator, z3 assumptions, z3 goal)."""
    if not HAS_Z3:
        raise TranslationFailure("z3-solver is not installed")
    nodes = _parse_all(list(assumptions) + [goal])
    tr = Z3Translator()
    for n in nodes:
        tr.infer(n, BOOL)
    terms = [tr.translate(n) for n in nodes]
    return tr, terms[:-1], terms[-1]


def check_valid(goal: str, assumptions: Sequence[str] = (),
                timeout_ms: int = DEFAULT_TIMEOUT_MS) -> SmtOutcome:
    """Decide whether ``assumptions ⊢ goal`` holds.

    Syntax and sort errors surface as ``SolverResult.ERROR`` with the
    message in ``error``; they are reported, never treated as proved.
    """
    if not HAS_Z3:
        return SmtOutcome(SolverResult.SKIPPED, error="z3-solver is not installed")

    started = time.perf_counter()
    try:
        tr, hyps, concl = build_query(goal, assumptions)
    except (TranslationFailure, ValueError, z3.Z3Exception) as exc:
        logger.debug("cannot translate %r: %s", goal, exc)
        return SmtOutcome(SolverResult.ERROR, error=str(exc))

    solver = z3.Solver()
    solver.set("timeout", timeout_ms)
    for h in hyps:
        solver.add(h)
    solver.add(z3.Not(concl))
    smtlib2 = solver.to_smt2()

    result = solver.check()
    duration = (time.perf_counter() - started) * 1000.0

    if result == z3.unsat:
        return SmtOutcome(SolverResult.UNSAT, smtlib2=smtlib2, duration_ms=duration)
    if result == z3.sat:
        model = solver.model()
        witness = {}
        for name, const in tr.consts.items():
            witness[name] = str(model.evaluate(const, model_completion=True))
        return SmtOutcome(SolverResult.SAT, witness=witness, smtlib2=smtlib2,
                          duration_ms=duration)
    return SmtOutcome(SolverResult.UNKNOWN, smtlib2=smtlib2, duration_ms=duration,
                      error=solver.reason_unknown())


def to_smtlib2(goal: str, assumptions: Sequence[str] = ()) -> str:
    """SMT-LIB2 script asserting the assumptions and the negated goal."""
    _, hyps, concl = build_query(goal, assumptions)
    solver = z3.Solver()
    for h in hyps:
        solver.add(h)
    solver.add(z3.Not(concl))
    return solver.to_smt2()
