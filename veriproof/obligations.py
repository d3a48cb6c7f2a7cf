"""VeriProof Proof Obligations — from Hoare triples to implications.

Given a triple {P} S {Q} the generator emits the implications that must
all be valid for the triple to hold:

  1. MAIN            P → wp(S, Q)                               priority 10
  2. LOOPS           preservation (I ∧ b) → wp(body, I)          priority 9
                     termination  (I ∧ b) → V > 0                priority 8
                                  (I ∧ b ∧ v0 = V) → wp(body, V < v0)
                     exit         (I ∧ ¬b) → Q'                  priority 9
  3. CONDITIONALS    then  (P ∧ b) → wp(S1, Q)                   priority 9
                     else  (P ∧ ¬b) → wp(S2, Q)                  priority 9
  4. SAFETY          P → wp(prefix, d ≠ 0) for every divisor d   priority 7
  5. FORWARD         sp(P, S) → Q (optional)                     priority 6

Each obligation keeps its context (statement, pre/post, assumptions) so it
can be translated for a prover and attributed when validation fails.
Discharging with Z3 fills in ``result``, ``witness`` and ``smtlib2``.
"""

from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from veriproof.errors import FormulaSyntaxError
from veriproof.formulas import (
    LogicalFormula, FormulaRole, Variable, make_formula, conjoin, implies, negate,
    free_variables,
)
from veriproof.parser import Binary, Const, Node, App, Unary, Quant, parse_formula
from veriproof.smt import SolverResult, check_valid, DEFAULT_TIMEOUT_MS
from veriproof.statements import CodeStatement, StatementType, sequence
from veriproof.wp import WPCalculator, InvariantGuess, _assigned


class ObligationType(str, Enum):
    PRECONDITION_IMPLIES_WP = "PRECONDITION_IMPLIES_WP"
    SP_IMPLIES_POSTCONDITION = "SP_IMPLIES_POSTCONDITION"
    LOOP_INVARIANT = "LOOP_INVARIANT"
    TERMINATION = "TERMINATION"
    SAFETY = "SAFETY"


@dataclass(frozen=True)
class HoareTriple:
    """{precondition} statement {postcondition}"""
    precondition: LogicalFormula
    statement: CodeStatement
    postcondition: LogicalFormula

    def __str__(self) -> str:
        return f"{{{self.precondition}}} {self.statement} {{{self.postcondition}}}"


@dataclass
class ObligationContext:
    statement: CodeStatement
    precondition: LogicalFormula
    postcondition: LogicalFormula
    variables: Tuple[Variable, ...] = ()
    assumptions: List[LogicalFormula] = field(default_factory=list)


@dataclass
class ProofObligation:
    """A single implication to discharge.

    Attributes
    ----------
    id : str
        ``po-<kind>-<n>``, unique within one generator run.
    type : ObligationType
        Which Hoare rule produced the obligation.
    formula : LogicalFormula
        The implication that must be valid.
    context : ObligationContext
        Statement and pre/post the obligation was derived from.
    priority : int
        Higher is more important; the main obligation is 10.
    dependencies : List[str]
        Ids of obligations this one relies on.
    description : str
        One-line human readable summary.
    confidence : float
        Heuristic confidence of the wp/sp computation behind the formula.
    result : SolverResult
        Outcome of discharging with Z3, UNKNOWN until discharged.
    witness : Dict[str, str]
        Counterexample when ``result`` is SAT.
    smtlib2 : str
        Query sent to the solver.
    """
    id: str
    type: ObligationType
    formula: LogicalFormula
    context: ObligationContext
    priority: int
    dependencies: List[str] = field(default_factory=list)
    description: str = ""
    confidence: float = 0.9
    result: SolverResult = SolverResult.UNKNOWN
    witness: Dict[str, str] = field(default_factory=dict)
    smtlib2: str = ""
    duration_ms: float = 0.0

    @property
    def proved(self) -> bool:
        return self.result == SolverResult.UNSAT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "formula": self.formula.expression,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "description": self.description,
            "confidence": round(self.confidence, 4),
            "statement": self.context.statement.content,
            "result": self.result.value,
            "witness": dict(self.witness),
        }

    def to_ascii(self) -> str:
        """Single-obligation summary for terminal output."""
        lines = [
            f"  [{self.id}] {_status(self)}",
            f"    Type      : {self.type.value}",
            f"    Formula   : {textwrap.fill(self.formula.expression, width=72, subsequent_indent=' ' * 16)}",
            f"    Statement : {self.context.statement.content}",
            f"    Confidence: {self.confidence:.2f}",
        ]
        if self.witness:
            lines.append(f"    Witness   : {json.dumps(self.witness)}")
        return "\n".join(lines)


def _status(o: ProofObligation) -> str:
    if o.proved:
        return "✓ PROVED"
    if o.result == SolverResult.SAT:
        return "✗ FAILED"
    return o.result.value


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

_KIND_SLUGS = {
    "main": ObligationType.PRECONDITION_IMPLIES_WP,
    "preservation": ObligationType.LOOP_INVARIANT,
    "exit": ObligationType.LOOP_INVARIANT,
    "bounded": ObligationType.TERMINATION,
    "decrease": ObligationType.TERMINATION,
    "termination": ObligationType.TERMINATION,
    "then": ObligationType.PRECONDITION_IMPLIES_WP,
    "else": ObligationType.PRECONDITION_IMPLIES_WP,
    "safety": ObligationType.SAFETY,
    "forward": ObligationType.SP_IMPLIES_POSTCONDITION,
}

PLACEHOLDER_TERMINATION_CONFIDENCE = 0.3
INFERRED_VARIANT_CONFIDENCE = 0.6


class ObligationGenerator:
    """Turns a Hoare triple into prioritised proof obligations."""

    def __init__(self, calculator: Optional[WPCalculator] = None,
                 forward_check: bool = False, safety_checks: bool = True):
        self.calculator = calculator or WPCalculator()
        self.forward_check = forward_check
        self.safety_checks = safety_checks
        self._counter = 0
        self._context: Optional[ObligationContext] = None

    def _emit(self, kind: str, formula: LogicalFormula, priority: int,
              description: str, confidence: float,
              dependencies: Optional[List[str]] = None) -> ProofObligation:
        self._counter += 1
        return ProofObligation(
            id=f"po-{kind}-{self._counter}",
            type=_KIND_SLUGS[kind],
            formula=formula,
            context=self._context,
            priority=priority,
            dependencies=list(dependencies or []),
            description=description,
            confidence=confidence,
        )

    def generate(self, triple: HoareTriple) -> List[ProofObligation]:
        """All obligations for ``triple``, highest priority first."""
        self._counter = 0
        pre, stmt, post = triple.precondition, triple.statement, triple.postcondition
        self._context = ObligationContext(
            statement=stmt, precondition=pre, postcondition=post,
            variables=tuple(stmt.variables), assumptions=[pre],
        )
        calc = self.calculator
        wp = calc.weakest_precondition(stmt, post, pre)
        main = self._emit("main", implies(pre, wp.formula), 10,
                          f"precondition implies wp({stmt.content})", wp.confidence)
        obligations = [main]

        for loop_stmt, guess in wp.loops:
            obligations.extend(self._loop_obligations(loop_stmt, guess, main.id))

        for side in wp.side_conditions:
            obligations.append(self._emit(
                "exit", side, 9, "invariant and negated guard imply what follows the loop",
                wp.confidence, [main.id]))

        if stmt.type == StatementType.CONDITIONAL:
            obligations.extend(self._branch_obligations(stmt, pre, post, main.id))

        if self.safety_checks:
            obligations.extend(self._safety_obligations(stmt, pre, main.id))

        if self.forward_check:
            sp = calc.strongest_postcondition(pre, stmt)
            obligations.append(self._emit(
                "forward", implies(sp.formula, post), 6,
                "strongest postcondition implies the postcondition", sp.confidence))

        obligations.sort(key=lambda o: -o.priority)
        return obligations

    def _loop_obligations(self, stmt: CodeStatement, guess: InvariantGuess,
                          main_id: str) -> List[ProofObligation]:
        calc = self.calculator
        invariant = guess.formula
        cond = stmt.condition or make_formula("true")
        body = stmt.substatements[0] if stmt.substatements else sequence()
        entry = conjoin([invariant, cond])

        body_wp = calc.weakest_precondition(body, invariant)
        preservation = self._emit(
            "preservation", implies(entry, body_wp.formula), 9,
            f"invariant {invariant.expression} is preserved by the loop body",
            body_wp.confidence, [main_id])
        out = [preservation]

        variant = calc.loop_variant(stmt)
        if variant is None:
            placeholder = make_formula(f"∃n. {_paren(invariant.expression)} → decreases(n)")
            out.append(self._emit(
                "termination", placeholder, 8,
                "no ranking function could be inferred",
                PLACEHOLDER_TERMINATION_CONFIDENCE, [preservation.id]))
            return out

        confidence = body_wp.confidence
        if not stmt.variant:
            confidence = min(confidence, INFERRED_VARIANT_CONFIDENCE)
        out.append(self._emit(
            "bounded", implies(entry, make_formula(f"{variant} > 0")), 8,
            f"ranking function {variant} is positive while the loop runs",
            confidence, [preservation.id]))

        v0 = _fresh("v0", [variant, entry.expression])
        decreased = calc.weakest_precondition(body, make_formula(f"{variant} < {v0}"))
        snapshot = make_formula(f"{v0} = {variant}")
        out.append(self._emit(
            "decrease", implies(conjoin([entry, snapshot]), decreased.formula), 8,
            f"ranking function {variant} strictly decreases each iteration",
            min(confidence, decreased.confidence), [preservation.id]))
        return out

    def _branch_obligations(self, stmt: CodeStatement, pre: LogicalFormula,
                            post: LogicalFormula, main_id: str) -> List[ProofObligation]:
        calc = self.calculator
        cond = stmt.condition or make_formula("true")
        then_branch = stmt.substatements[0] if stmt.substatements else sequence()
        then_wp = calc.weakest_precondition(then_branch, post)
        out = [self._emit(
            "then", implies(conjoin([pre, cond]), then_wp.formula), 9,
            "then-branch establishes the postcondition", then_wp.confidence, [main_id])]
        if len(stmt.substatements) > 1:
            else_wp = calc.weakest_precondition(stmt.substatements[1], post)
            else_formula, else_conf = else_wp.formula, else_wp.confidence
        else:
            else_formula, else_conf = post, then_wp.confidence
        out.append(self._emit(
            "else", implies(conjoin([pre, negate(cond)]), else_formula), 9,
            "else-branch establishes the postcondition", else_conf, [main_id]))
        return out

    def _safety_obligations(self, stmt: CodeStatement, pre: LogicalFormula,
                            main_id: str) -> List[ProofObligation]:
        """Divisors in straight-line code must be non-zero where they execute."""
        leaves = _straight_line(stmt)
        out: List[ProofObligation] = []
        for i, leaf in enumerate(leaves):
            _, value = _assigned(leaf)
            for divisor in _divisors(value or ""):
                guard = make_formula(f"{divisor} ≠ 0")
                prefix = leaves[:i]
                if prefix:
                    guard_wp = self.calculator.weakest_precondition(sequence(*prefix), guard)
                    formula, conf = guard_wp.formula, guard_wp.confidence
                else:
                    formula, conf = guard, 0.9
                out.append(self._emit(
                    "safety", implies(pre, formula), 7,
                    f"divisor {divisor} is non-zero in {leaf.content}", conf, [main_id]))
        return out


def _paren(text: str) -> str:
    return f"({text})"


def _fresh(base: str, texts: List[str]) -> str:
    taken = set()
    for t in texts:
        try:
            taken.update(free_variables(t))
        except FormulaSyntaxError:
            continue
    name, k = base, 0
    while name in taken:
        k += 1
        name = f"{base}_{k}"
    return name


def _straight_line(stmt: CodeStatement) -> List[CodeStatement]:
    if stmt.type == StatementType.SEQUENCE:
        out: List[CodeStatement] = []
        for sub in stmt.substatements:
            out.extend(_straight_line(sub))
        return out
    if stmt.is_composite:
        return []
    return [stmt]


def _divisors(text: str) -> List[str]:
    if not text:
        return []
    try:
        node = parse_formula(text)
    except FormulaSyntaxError:
        return []
    found: List[str] = []

    def walk(n: Node) -> None:
        if isinstance(n, Binary):
            if n.op in ("/", "%") and not (isinstance(n.right, Const) and n.right.value != 0):
                rendered = str(n.right)
                if rendered not in found:
                    found.append(rendered)
            walk(n.left)
            walk(n.right)
        elif isinstance(n, Unary):
            walk(n.operand)
        elif isinstance(n, App):
            for a in n.args:
                walk(a)
        elif isinstance(n, Quant):
            walk(n.body)

    walk(node)
    return found


# ---------------------------------------------------------------------------
# Discharge
# ---------------------------------------------------------------------------

def discharge(obligation: ProofObligation,
              timeout_ms: int = DEFAULT_TIMEOUT_MS) -> ProofObligation:
    """Check one obligation with Z3 and record the outcome on it."""
    outcome = check_valid(obligation.formula.expression, timeout_ms=timeout_ms)
    obligation.result = outcome.result
    obligation.witness = outcome.witness
    obligation.smtlib2 = outcome.smtlib2
    obligation.duration_ms = outcome.duration_ms
    return obligation


# ---------------------------------------------------------------------------
# Trace
# ---------------------------------------------------------------------------

@dataclass
class ObligationTrace:
    """Ordered collection of obligations from one triple.

    Serialises to JSON, an ASCII table and an SMT-LIB2 bundle.
    """
    obligations: List[ProofObligation] = field(default_factory=list)
    triple: str = ""

    def add(self, obligation: ProofObligation) -> None:
        self.obligations.append(obligation)

    def extend(self, obligations: List[ProofObligation]) -> None:
        self.obligations.extend(obligations)

    @property
    def total(self) -> int:
        return len(self.obligations)

    @property
    def proved_count(self) -> int:
        return sum(1 for o in self.obligations if o.proved)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.obligations if o.result == SolverResult.SAT)

    @property
    def unknown_count(self) -> int:
        return self.total - self.proved_count - self.failed_count

    @property
    def all_proved(self) -> bool:
        return self.total > 0 and self.proved_count == self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triple": self.triple,
            "summary": {
                "total": self.total,
                "proved": self.proved_count,
                "failed": self.failed_count,
                "unknown": self.unknown_count,
                "all_proved": self.all_proved,
            },
            "obligations": [o.to_dict() for o in self.obligations],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def to_ascii_table(self) -> str:
        """Compact ASCII table of all obligations."""
        if not self.obligations:
            return "  (no proof obligations)\n"

        col_w = {"id": 18, "type": 26, "prio": 4, "conf": 5, "result": 9}
        header = (
            f"  {'Id':<{col_w['id']}} "
            f"{'Type':<{col_w['type']}} "
            f"{'Pri':<{col_w['prio']}} "
            f"{'Conf':<{col_w['conf']}} "
            f"{'Result':<{col_w['result']}} Formula"
        )
        sep = "  " + "-" * (sum(col_w.values()) + 12)
        rows = [header, sep]
        for o in self.obligations:
            rows.append(
                f"  {o.id:<{col_w['id']}} "
                f"{o.type.value:<{col_w['type']}} "
                f"{o.priority:<{col_w['prio']}} "
                f"{o.confidence:<{col_w['conf']}.2f} "
                f"{_status(o):<{col_w['result']}} "
                f"{o.formula.expression}"
            )
        rows.append(sep)
        rows.append(
            f"  {self.proved_count}/{self.total} obligations proved"
            + (f", {self.failed_count} failed" if self.failed_count else "")
        )
        return "\n".join(rows) + "\n"

    def to_smtlib2_bundle(self) -> str:
        """All discharged SMT-LIB2 queries as one annotated file."""
        parts = [
            "; VeriProof obligation bundle",
            f"; Triple: {self.triple}",
            f"; Total obligations: {self.total}",
            "",
        ]
        for o in self.obligations:
            if not o.smtlib2:
                continue
            parts += [
                f"; --- {o.id}: {o.type.value} ---",
                f"; Formula : {o.formula.expression}",
                f"; Result  : {o.result.value}",
                o.smtlib2,
                "(reset)",
                "",
            ]
        return "\n".join(parts)
