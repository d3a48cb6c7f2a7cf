"""VeriProof WP/SP Calculus — weakest preconditions and strongest postconditions.

Implements Dijkstra's weakest precondition calculus and its forward dual
over the ``CodeStatement`` tree.

References:
  Dijkstra (1975) "Guarded Commands, Nondeterminacy and Formal Derivation
  of Programs" CACM 18(8), https://doi.org/10.1145/360933.360975

  Hoare (1969) "An Axiomatic Basis for Computer Programming"
  CACM 12(10), https://doi.org/10.1145/363235.363259

  Floyd (1967) "Assigning Meanings to Programs"
  Proc. Symp. Applied Mathematics, AMS

  Flanagan & Leino (2001) "Houdini, an Annotation Assistant for ESC/Java"
  FME 2001, https://doi.org/10.1007/3-540-45251-6_29

Rules:

    wp(x := e, Q)                 = Q[x/e]
    wp(return e, Q)               = Q[result/e]
    wp(S1; S2, Q)                 = wp(S1, wp(S2, Q))
    wp(if b then S1 else S2, Q)   = (b → wp(S1, Q)) ∧ (¬b → wp(S2, Q))
    wp(while b do S, Q)           = I        side condition (I ∧ ¬b) → Q

    sp(x := e, P)                 = ∃x0. P[x/x0] ∧ x = e[x/x0]
    sp(S1; S2, P)                 = sp(S2, sp(S1, P))
    sp(if b then S1 else S2, P)   = sp(S1, P ∧ b) ∨ sp(S2, P ∧ ¬b)
    sp(while b do S, P)           = I ∧ ¬b

CONFIDENCE:
  Every result carries a heuristic confidence.  It starts at 0.9 and is
  reduced by the statement's complexity (at most 0.3) and by the number of
  logical connectives in the result (at most 0.2).  Statements the calculus
  cannot interpret are passed through unchanged at a 0.2 penalty, and an
  inferred (not supplied) loop invariant costs 0.25.  A composite takes the
  minimum of its own score and its children's; the floor is 0.1.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from veriproof.errors import FormulaSyntaxError
from veriproof.formulas import (
    LogicalFormula, FormulaRole, Variable, make_formula, true_formula,
    substitute_variable, conjoin, disjoin, implies, negate,
    count_logical_operators, free_variables, expression_precedence,
    PREC_CMP, PREC_ATOM,
)
from veriproof.parser import Binary, parse_formula
from veriproof.statements import CodeStatement, StatementType, parse_assignment, sequence
from veriproof import smt

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.9
MIN_CONFIDENCE = 0.1
UNKNOWN_STATEMENT_PENALTY = 0.2
INFERRED_INVARIANT_PENALTY = 0.25
OPAQUE_SUBSTITUTION_PENALTY = 0.2


@dataclass(frozen=True)
class Substitution:
    variable: str
    expression: str

    def __str__(self) -> str:
        return f"[{self.variable}/{self.expression}]"


@dataclass
class WeakestPrecondition:
    formula: LogicalFormula
    substitutions: List[Substitution] = field(default_factory=list)
    side_conditions: List[LogicalFormula] = field(default_factory=list)
    confidence: float = BASE_CONFIDENCE
    loops: List[Tuple[CodeStatement, InvariantGuess]] = field(default_factory=list)


@dataclass(frozen=True)
class VariableEffect:
    """``variable`` now holds ``value``; its prior value is ``old_name``."""
    variable: str
    old_name: str
    value: str


@dataclass
class StrongestPostcondition:
    formula: LogicalFormula
    effects: List[VariableEffect] = field(default_factory=list)
    invariants: List[LogicalFormula] = field(default_factory=list)
    confidence: float = BASE_CONFIDENCE


@dataclass
class InvariantGuess:
    formula: LogicalFormula
    inferred: bool
    candidates: List[str] = field(default_factory=list)


def _clamp(value: float) -> float:
    return max(MIN_CONFIDENCE, min(1.0, value))


def formula_confidence(statement: CodeStatement, formula: LogicalFormula,
                       penalty: float = 0.0) -> float:
    complexity_penalty = min(0.3, statement.metadata.complexity * 0.02)
    operator_penalty = min(0.2, count_logical_operators(formula.expression) * 0.05)
    return _clamp(BASE_CONFIDENCE - complexity_penalty - operator_penalty - penalty)


def substitute_opaque(formula: LogicalFormula, name: str, value: str) -> LogicalFormula:
    """Word-boundary substitution for replacement text outside the formula language."""
    expression = re.sub(rf"\b{re.escape(name)}\b", f"({value})", formula.expression)
    kept = tuple(v for v in formula.variables if v.name != name)
    return LogicalFormula(expression, kept, formula.role)


def _assigned(statement: CodeStatement):
    if statement.target is not None:
        return statement.target, statement.value
    parsed = parse_assignment(statement.content)
    if parsed is None:
        return None, None
    return parsed


class WPCalculator:
    """Computes weakest preconditions and strongest postconditions.

    ``infer_invariants`` controls whether loops without a supplied
    invariant get one from Houdini-style inference; when disabled such
    loops use ``true``.
    """

    def __init__(self, infer_invariants: bool = True,
                 solver_timeout_ms: int = 2000):
        self.infer_invariants = infer_invariants
        self.solver_timeout_ms = solver_timeout_ms
        self._var_counter = 0
        self._invariants: Dict[Tuple[CodeStatement, str, str], InvariantGuess] = {}

    def _reset(self) -> None:
        self._var_counter = 0
        self._invariants.clear()

    def fresh_var(self, base: str) -> str:
        self._var_counter += 1
        return f"{base}_old{self._var_counter}"

    # -------------------------------------------------------------------
    # Weakest precondition
    # -------------------------------------------------------------------

    def weakest_precondition(self, statement: CodeStatement,
                             postcondition: LogicalFormula,
                             precondition: Optional[LogicalFormula] = None) -> WeakestPrecondition:
        """Compute wp(statement, postcondition).

        ``precondition`` seeds invariant inference when ``statement`` is itself
        a loop.
        """
        self._reset()
        result = self._wp(statement, postcondition, precondition)
        result.formula = result.formula.with_role(FormulaRole.PRECONDITION)
        return result

    def _wp(self, stmt: CodeStatement, post: LogicalFormula,
            pre: Optional[LogicalFormula] = None) -> WeakestPrecondition:
        t = stmt.type
        if t in (StatementType.ASSIGNMENT, StatementType.DECLARATION, StatementType.RETURN):
            return self._wp_assign(stmt, post)
        if t == StatementType.SEQUENCE:
            return self._wp_sequence(stmt, post)
        if t == StatementType.CONDITIONAL:
            return self._wp_conditional(stmt, post)
        if t == StatementType.LOOP:
            return self._wp_loop(stmt, post, pre)
        return WeakestPrecondition(
            post, confidence=formula_confidence(stmt, post, UNKNOWN_STATEMENT_PENALTY))

    def _wp_assign(self, stmt: CodeStatement, post: LogicalFormula) -> WeakestPrecondition:
        """wp(x := e, Q) = Q[x/e]; also ``let x = e`` and ``return e`` (x = result)."""
        target, value = _assigned(stmt)
        if target is None or value is None:
            # A declaration without initialiser or a bare return is a no-op.
            penalty = 0.0 if stmt.type != StatementType.ASSIGNMENT else UNKNOWN_STATEMENT_PENALTY
            return WeakestPrecondition(post, confidence=formula_confidence(stmt, post, penalty))

        penalty = 0.0
        try:
            formula = substitute_variable(post, target, value)
        except FormulaSyntaxError:
            logger.debug("opaque substitution of %r in %r", value, post.expression)
            formula = substitute_opaque(post, target, value)
            penalty = OPAQUE_SUBSTITUTION_PENALTY
        return WeakestPrecondition(
            formula,
            substitutions=[Substitution(target, value)],
            confidence=formula_confidence(stmt, formula, penalty),
        )

    def _wp_sequence(self, stmt: CodeStatement, post: LogicalFormula) -> WeakestPrecondition:
        """wp(S1; ...; Sn, Q), computed right-to-left."""
        current = post
        substitutions: List[Substitution] = []
        side_conditions: List[LogicalFormula] = []
        loops: List[Tuple[CodeStatement, InvariantGuess]] = []
        child_conf = 1.0
        for sub in reversed(stmt.substatements):
            r = self._wp(sub, current)
            current = r.formula
            substitutions = r.substitutions + substitutions
            side_conditions = r.side_conditions + side_conditions
            loops = r.loops + loops
            child_conf = min(child_conf, r.confidence)
        confidence = min(formula_confidence(stmt, current), child_conf)
        return WeakestPrecondition(current, substitutions, side_conditions, confidence, loops)

    def _wp_conditional(self, stmt: CodeStatement, post: LogicalFormula) -> WeakestPrecondition:
        """wp(if b then S1 else S2, Q) = (b → wp(S1, Q)) ∧ (¬b → wp(S2, Q))"""
        cond = stmt.condition or true_formula()
        then_r = self._wp(_then_branch(stmt), post)
        if len(stmt.substatements) > 1:
            else_r = self._wp(stmt.substatements[1], post)
        else:
            else_r = WeakestPrecondition(post, confidence=1.0)
        formula = conjoin([implies(cond, then_r.formula),
                           implies(negate(cond), else_r.formula)])
        confidence = min(formula_confidence(stmt, formula),
                         then_r.confidence, else_r.confidence)
        return WeakestPrecondition(
            formula,
            then_r.substitutions + else_r.substitutions,
            then_r.side_conditions + else_r.side_conditions,
            confidence,
            then_r.loops + else_r.loops,
        )

    def _wp_loop(self, stmt: CodeStatement, post: LogicalFormula,
                 pre: Optional[LogicalFormula] = None) -> WeakestPrecondition:
        """wp(while b do S, Q) = I, with side condition (I ∧ ¬b) → Q.

        Preservation {I ∧ b} S {I} is not part of the wp; the obligation
        generator emits it separately.
        """
        cond = stmt.condition or true_formula()
        guess = self.loop_invariant(stmt, post, pre)
        invariant = guess.formula
        body_r = self._wp(stmt.substatements[0], invariant) if stmt.substatements else None

        exit_condition = implies(conjoin([invariant, negate(cond)]), post)
        side_conditions = [exit_condition]
        loops = [(stmt, guess)]
        if body_r is not None:
            side_conditions.extend(body_r.side_conditions)
            loops.extend(body_r.loops)

        penalty = INFERRED_INVARIANT_PENALTY if guess.inferred else 0.0
        confidence = formula_confidence(stmt, invariant, penalty)
        if body_r is not None:
            confidence = min(confidence, body_r.confidence)
        return WeakestPrecondition(invariant, [], side_conditions, confidence, loops)

    # -------------------------------------------------------------------
    # Strongest postcondition
    # -------------------------------------------------------------------

    def strongest_postcondition(self, precondition: LogicalFormula,
                                statement: CodeStatement) -> StrongestPostcondition:
        """Compute sp(precondition, statement)."""
        self._reset()
        result = self._sp(statement, precondition)
        result.formula = result.formula.with_role(FormulaRole.POSTCONDITION)
        return result

    def _sp(self, stmt: CodeStatement, pre: LogicalFormula) -> StrongestPostcondition:
        t = stmt.type
        if t in (StatementType.ASSIGNMENT, StatementType.DECLARATION, StatementType.RETURN):
            return self._sp_assign(stmt, pre)
        if t == StatementType.SEQUENCE:
            current = pre
            effects: List[VariableEffect] = []
            invariants: List[LogicalFormula] = []
            child_conf = 1.0
            for sub in stmt.substatements:
                r = self._sp(sub, current)
                current = r.formula
                effects.extend(r.effects)
                invariants.extend(r.invariants)
                child_conf = min(child_conf, r.confidence)
            confidence = min(formula_confidence(stmt, current), child_conf)
            return StrongestPostcondition(current, effects, invariants, confidence)
        if t == StatementType.CONDITIONAL:
            cond = stmt.condition or true_formula()
            then_r = self._sp(_then_branch(stmt), conjoin([pre, cond]))
            negated = conjoin([pre, negate(cond)])
            if len(stmt.substatements) > 1:
                else_r = self._sp(stmt.substatements[1], negated)
            else:
                else_r = StrongestPostcondition(negated, confidence=1.0)
            formula = disjoin([then_r.formula, else_r.formula])
            confidence = min(formula_confidence(stmt, formula),
                             then_r.confidence, else_r.confidence)
            return StrongestPostcondition(formula, then_r.effects + else_r.effects,
                                          then_r.invariants + else_r.invariants,
                                          confidence)
        if t == StatementType.LOOP:
            cond = stmt.condition or true_formula()
            guess = self.loop_invariant(stmt, None, pre)
            formula = conjoin([guess.formula, negate(cond)])
            penalty = INFERRED_INVARIANT_PENALTY if guess.inferred else 0.0
            return StrongestPostcondition(formula, [], [guess.formula],
                                          formula_confidence(stmt, formula, penalty))
        return StrongestPostcondition(
            pre, confidence=formula_confidence(stmt, pre, UNKNOWN_STATEMENT_PENALTY))

    def _sp_assign(self, stmt: CodeStatement, pre: LogicalFormula) -> StrongestPostcondition:
        """sp(x := e, P) = ∃x0. P[x/x0] ∧ x = e[x/x0]"""
        target, value = _assigned(stmt)
        if target is None or value is None:
            penalty = 0.0 if stmt.type != StatementType.ASSIGNMENT else UNKNOWN_STATEMENT_PENALTY
            return StrongestPostcondition(pre, confidence=formula_confidence(stmt, pre, penalty))

        old = self.fresh_var(target)
        penalty = 0.0
        try:
            renamed_pre = substitute_variable(pre, target, old)
            renamed_value = substitute_variable(make_formula(value), target, old).expression
            if expression_precedence(renamed_value) <= PREC_CMP:
                renamed_value = f"({renamed_value})"
            mentions_old = old in free_variables(renamed_pre.expression) or \
                old in free_variables(renamed_value)
        except FormulaSyntaxError:
            renamed_pre = substitute_opaque(pre, target, old)
            renamed_value = f"({value})"
            mentions_old = True
            penalty = OPAQUE_SUBSTITUTION_PENALTY

        equation = LogicalFormula(f"{target} = {renamed_value}",
                                  (Variable(target),) + renamed_pre.variables)
        body = conjoin([renamed_pre, equation])
        if mentions_old:
            formula = LogicalFormula(f"(∃{old}. {body.expression})",
                                     tuple(v for v in body.variables if v.name != old),
                                     pre.role)
        else:
            formula = body
        return StrongestPostcondition(
            formula, effects=[VariableEffect(target, old, value)],
            confidence=formula_confidence(stmt, formula, penalty),
        )

    # -------------------------------------------------------------------
    # Loop invariants and variants
    # -------------------------------------------------------------------

    def loop_invariant(self, stmt: CodeStatement, post: Optional[LogicalFormula],
                       pre: Optional[LogicalFormula] = None) -> InvariantGuess:
        """The supplied invariant, or a Houdini-inferred one.

        Guesses are memoised per (loop, postcondition, precondition) until the
        next top-level wp or sp calculation.
        """
        if stmt.invariant is not None:
            return InvariantGuess(stmt.invariant, inferred=False)
        if not self.infer_invariants:
            return InvariantGuess(true_formula(FormulaRole.INVARIANT), inferred=True)
        key = (stmt, post.expression if post is not None else "",
               pre.expression if pre is not None else "")
        if key not in self._invariants:
            self._invariants[key] = self.infer_invariant(stmt, post, pre)
        return self._invariants[key]

    def _candidates(self, stmt: CodeStatement, post: Optional[LogicalFormula],
                    pre: Optional[LogicalFormula]) -> List[str]:
        """Candidate invariant atoms.

        Families:
          1. conjuncts of the precondition and the postcondition
          2. the loop guard weakened to its non-strict form
          3. non-negativity of every variable in guard and postcondition
          4. ``b ∨ Q`` (loop guard or postcondition)
        """
        cond = stmt.condition.expression if stmt.condition else "true"
        found: List[str] = []

        def add(text: str) -> None:
            text = text.strip()
            if text and text != "true" and text not in found:
                found.append(text)

        for f in (pre, post):
            if f is not None:
                for part in _conjuncts(f.expression):
                    add(part)

        for part in _conjuncts(cond):
            weakened = _weaken_guard(part)
            if weakened:
                add(weakened)

        names: List[str] = []
        for text in [cond] + ([post.expression] if post else []):
            try:
                for name in free_variables(text):
                    if name not in names:
                        names.append(name)
            except FormulaSyntaxError:
                continue
        for name in names:
            add(f"{name} ≥ 0")

        if post is not None:
            add(f"({cond}) ∨ ({post.expression})")
        return found

    def infer_invariant(self, stmt: CodeStatement, post: Optional[LogicalFormula],
                        pre: Optional[LogicalFormula] = None) -> InvariantGuess:
        """Houdini: drop candidates until the conjunction is inductive.

        1. Drop candidates not implied by the precondition (initiation).
        2. Repeat until no change: drop each candidate c for which
           (⋀ candidates ∧ b) → wp(body, c) is not valid (consecution).
        Without Z3 nothing can be checked and the guess is ``true``.
        """
        candidates = self._candidates(stmt, post, pre)
        if not smt.HAS_Z3 or not stmt.substatements:
            return InvariantGuess(true_formula(FormulaRole.INVARIANT), True, candidates)

        cond = stmt.condition.expression if stmt.condition else "true"
        body = stmt.substatements[0]
        inner = WPCalculator(infer_invariants=False,
                             solver_timeout_ms=self.solver_timeout_ms)

        alive = list(candidates)
        if pre is not None:
            alive = [c for c in alive if self._valid(c, [pre.expression])]

        changed = True
        while changed and alive:
            changed = False
            hypothesis = [f"({c})" for c in alive] + [f"({cond})"]
            for c in list(alive):
                try:
                    obligation = inner._wp(body, make_formula(c)).formula.expression
                except FormulaSyntaxError:
                    obligation = None
                if obligation is None or not self._valid(obligation, hypothesis):
                    alive.remove(c)
                    changed = True
                    break

        if not alive:
            return InvariantGuess(true_formula(FormulaRole.INVARIANT), True, candidates)
        formula = conjoin([make_formula(c) for c in alive], FormulaRole.INVARIANT)
        logger.debug("inferred invariant %s for %s", formula.expression, stmt.content)
        return InvariantGuess(formula, True, candidates)

    def _valid(self, goal: str, assumptions: List[str]) -> bool:
        return smt.check_valid(goal, assumptions, self.solver_timeout_ms).proved

    def loop_variant(self, stmt: CodeStatement) -> Optional[str]:
        """The supplied ranking function, or one read off the loop guard.

        Floyd (1967): for guards ``lo < hi`` / ``hi > lo`` the distance
        ``hi - lo`` is a candidate; ``≤``/``≥`` add one; ``x ≠ c`` gives
        ``x - c``.  Returns None when no candidate exists.
        """
        if stmt.variant:
            return stmt.variant
        if stmt.condition is None:
            return None
        for part in _conjuncts(stmt.condition.expression):
            try:
                node = parse_formula(part)
            except FormulaSyntaxError:
                continue
            if not isinstance(node, Binary):
                continue
            left, right = _render(node.left), _render(node.right)
            if node.op == "<":
                return f"{right} - {_paren_sub(left)}"
            if node.op == "≤":
                return f"{right} - {_paren_sub(left)} + 1"
            if node.op == ">":
                return f"{left} - {_paren_sub(right)}"
            if node.op == "≥":
                return f"{left} - {_paren_sub(right)} + 1"
            if node.op == "≠":
                return f"{left} - {_paren_sub(right)}"
        return None


def _then_branch(stmt: CodeStatement) -> CodeStatement:
    """The then-branch of a conditional; a missing one is skip."""
    return stmt.substatements[0] if stmt.substatements else sequence()


def _render(node) -> str:
    text = str(node)
    if isinstance(node, Binary) and text.startswith("(") and text.endswith(")"):
        return text[1:-1]
    return text


def _paren_sub(text: str) -> str:
    try:
        atomic = expression_precedence(text) == PREC_ATOM
    except FormulaSyntaxError:
        atomic = False
    return text if atomic else f"({text})"


def _conjuncts(expression: str) -> List[str]:
    """Split at top-level ∧; unparsable text is one conjunct."""
    try:
        node = parse_formula(expression)
    except FormulaSyntaxError:
        return [expression]
    parts: List[str] = []

    def walk(n) -> None:
        if isinstance(n, Binary) and n.op == "∧":
            walk(n.left)
            walk(n.right)
        else:
            parts.append(_render(n))

    walk(node)
    return parts


def _weaken_guard(text: str) -> Optional[str]:
    try:
        node = parse_formula(text)
    except FormulaSyntaxError:
        return None
    if isinstance(node, Binary) and node.op in ("<", ">"):
        op = "≤" if node.op == "<" else "≥"
        return f"{_render(node.left)} {op} {_render(node.right)}"
    if isinstance(node, Binary) and node.op in ("≤", "≥"):
        return _render(node)
    return None
