"""VeriProof Formula Model — assertion formulas and substitution.

Formulas are carried as expression strings together with the ordered set
of their free variables and a role tag.  The weakest-precondition rule for
assignment is plain substitution on that text:

    wp(x := e, Q) = Q[x/e]

``substitute_variable`` works on the token stream of ``Q`` rather than on
raw characters, so that

  - only identifiers named ``x`` are replaced (``xs`` and ``max`` are not),
  - occurrences bound by ``∀x.`` / ``∃x.`` are left alone,
  - function symbols ``x(...)`` are left alone,
  - a quantifier that would capture a free variable of ``e`` is renamed,
  - the replacement is parenthesised only when operator precedence
    requires it, so wp(y := x + 1, y > 1) is exactly ``x + 1 > 1``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from veriproof.errors import FormulaSyntaxError
from veriproof.lexer import Token, TokenType, tokenize


class FormulaRole(str, Enum):
    PRECONDITION = "precondition"
    POSTCONDITION = "postcondition"
    INVARIANT = "invariant"
    ASSERTION = "assertion"


@dataclass(frozen=True)
class Variable:
    name: str
    type: str = "any"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class LogicalFormula:
    """An assertion: expression text, free variables, role."""
    expression: str
    variables: Tuple[Variable, ...] = ()
    role: FormulaRole = FormulaRole.ASSERTION

    def __str__(self) -> str:
        return self.expression

    @property
    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables]

    def with_role(self, role: FormulaRole) -> LogicalFormula:
        return replace(self, role=role)

    def to_dict(self) -> dict:
        return {
            "expression": self.expression,
            "variables": [{"name": v.name, "type": v.type} for v in self.variables],
            "role": self.role.value,
        }


TRUE_EXPR = "true"
FALSE_EXPR = "false"


def make_formula(expression: str, role: FormulaRole = FormulaRole.ASSERTION,
                 variables: Optional[Iterable[Variable]] = None) -> LogicalFormula:
    """Build a formula, scanning its free variables when none are given."""
    expression = expression.strip()
    if variables is None:
        variables = [Variable(n) for n in free_variables(expression)]
    return LogicalFormula(expression, _dedupe(variables), role)


def true_formula(role: FormulaRole = FormulaRole.ASSERTION) -> LogicalFormula:
    return LogicalFormula(TRUE_EXPR, (), role)


def _dedupe(variables: Iterable[Variable]) -> Tuple[Variable, ...]:
    seen: dict[str, Variable] = {}
    for v in variables:
        if v.name not in seen:
            seen[v.name] = v
    return tuple(seen.values())


# ---------------------------------------------------------------------------
# Operator precedence (shared with the formula parser)
# ---------------------------------------------------------------------------

PREC_QUANT = 0
PREC_IFF = 1
PREC_IMPLIES = 2
PREC_OR = 3
PREC_AND = 4
PREC_NOT = 5
PREC_CMP = 6
PREC_ADD = 7
PREC_MUL = 8
PREC_NEG = 9
PREC_ATOM = 10

BINARY_PRECEDENCE: dict[TokenType, int] = {
    TokenType.IFF: PREC_IFF,
    TokenType.IMPLIES: PREC_IMPLIES,
    TokenType.OR: PREC_OR,
    TokenType.AND: PREC_AND,
    TokenType.EQ: PREC_CMP,
    TokenType.NEQ: PREC_CMP,
    TokenType.LT: PREC_CMP,
    TokenType.LTE: PREC_CMP,
    TokenType.GT: PREC_CMP,
    TokenType.GTE: PREC_CMP,
    TokenType.PLUS: PREC_ADD,
    TokenType.MINUS: PREC_ADD,
    TokenType.STAR: PREC_MUL,
    TokenType.SLASH: PREC_MUL,
    TokenType.PERCENT: PREC_MUL,
}

# Levels that may not chain on the right without parentheses.
_NON_LEFT_ASSOC = {PREC_IFF, PREC_IMPLIES, PREC_CMP}

_OPERAND_END = {TokenType.IDENT, TokenType.INT_LIT, TokenType.TRUE,
                TokenType.FALSE, TokenType.RPAREN}


def _is_unary_minus(tokens: Sequence[Token], i: int) -> bool:
    return tokens[i].type == TokenType.MINUS and (
        i == 0 or tokens[i - 1].type not in _OPERAND_END)


def _prefix_precedence(tokens: Sequence[Token], i: int) -> int:
    """Precedence of the operator token at ``i``, or -1 if it is not one."""
    tok = tokens[i]
    if tok.type == TokenType.NOT:
        return PREC_NOT
    if _is_unary_minus(tokens, i):
        return PREC_NEG
    return BINARY_PRECEDENCE.get(tok.type, -1)


def expression_precedence(expression: str) -> int:
    """Binding strength of the loosest top-level operator in ``expression``."""
    tokens = tokenize(expression)
    depth = 0
    lowest = PREC_ATOM
    for i, tok in enumerate(tokens):
        if tok.type == TokenType.LPAREN:
            depth += 1
        elif tok.type == TokenType.RPAREN:
            depth -= 1
        elif depth == 0:
            if tok.type in (TokenType.FORALL, TokenType.EXISTS):
                return PREC_QUANT
            p = _prefix_precedence(tokens, i)
            if p >= 0:
                lowest = min(lowest, p)
    return lowest


# ---------------------------------------------------------------------------
# Scope analysis
# ---------------------------------------------------------------------------

FREE = "free"
BOUND = "bound"
BINDER = "binder"
FUNCTION = "function"


def classify_identifiers(tokens: Sequence[Token]) -> List[Optional[str]]:
    """Label each IDENT token as free, bound, binder or function symbol.

    A quantifier ``∀x, y. body`` scopes over everything to its right up to
    the closing parenthesis (or argument comma) of the group it opened in.
    """
    labels: List[Optional[str]] = [None] * len(tokens)
    bindings: List[Tuple[int, set]] = []
    depth = 0
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.type in (TokenType.FORALL, TokenType.EXISTS):
            names = set()
            i += 1
            while i < len(tokens) and tokens[i].type == TokenType.IDENT:
                labels[i] = BINDER
                names.add(tokens[i].value)
                i += 1
                if i < len(tokens) and tokens[i].type == TokenType.COLON:
                    i += 2  # type annotation
                if i < len(tokens) and tokens[i].type == TokenType.COMMA:
                    i += 1
            bindings.append((depth, names))
            if i < len(tokens) and tokens[i].type == TokenType.DOT:
                i += 1
            continue
        if tok.type == TokenType.LPAREN:
            depth += 1
        elif tok.type == TokenType.RPAREN:
            depth -= 1
            while bindings and bindings[-1][0] > depth:
                bindings.pop()
        elif tok.type == TokenType.COMMA:
            while bindings and bindings[-1][0] >= depth and depth > 0:
                bindings.pop()
        elif tok.type == TokenType.IDENT:
            if i + 1 < len(tokens) and tokens[i + 1].type == TokenType.LPAREN:
                labels[i] = FUNCTION
            elif any(tok.value in names for _, names in bindings):
                labels[i] = BOUND
            else:
                labels[i] = FREE
        i += 1
    return labels


def free_variables(expression: str) -> List[str]:
    """Free variable names of a formula, in order of first occurrence."""
    tokens = tokenize(expression)
    labels = classify_identifiers(tokens)
    seen: List[str] = []
    for tok, label in zip(tokens, labels):
        if label == FREE and tok.value not in seen:
            seen.append(tok.value)
    return seen


def _splice(source: str, edits: List[Tuple[int, int, str]]) -> str:
    out = []
    last = 0
    for start, end, text in sorted(edits):
        out.append(source[last:start])
        out.append(text)
        last = end
    out.append(source[last:])
    return "".join(out)


def _fresh_name(base: str, taken: set) -> str:
    k = 1
    while f"{base}_{k}" in taken:
        k += 1
    return f"{base}_{k}"


def rename_bound(expression: str, name: str, fresh: str) -> str:
    """Alpha-rename every quantifier binding of ``name`` to ``fresh``."""
    tokens = tokenize(expression)
    labels = classify_identifiers(tokens)
    edits = [(t.start, t.end, fresh) for t, l in zip(tokens, labels)
             if t.value == name and l in (BOUND, BINDER)]
    return _splice(expression, edits)


# ---------------------------------------------------------------------------
# Substitution: Q[x/e]
# ---------------------------------------------------------------------------

def _needs_parens(tokens: Sequence[Token], i: int, prec: int) -> bool:
    if prec >= PREC_ATOM:
        return False
    left = _prefix_precedence(tokens, i - 1) if i > 0 else -1
    right = BINARY_PRECEDENCE.get(tokens[i + 1].type, -1)
    if left >= prec:
        return True
    if right > prec:
        return True
    return right == prec and prec in _NON_LEFT_ASSOC


def substitute_variable(formula: LogicalFormula, name: str,
                        replacement: Union[str, LogicalFormula]) -> LogicalFormula:
    """Replace every free occurrence of ``name`` in ``formula`` by ``replacement``.

    The resulting variable set drops ``name`` and merges in the free
    variables of the replacement (existing entries win on name clashes).
    """
    if isinstance(replacement, LogicalFormula):
        repl_text = replacement.expression.strip()
        repl_vars = list(replacement.variables)
    else:
        repl_text = replacement.strip()
        repl_vars = [Variable(n) for n in free_variables(repl_text)]

    expression = formula.expression
    repl_names = {v.name for v in repl_vars}

    tokens = tokenize(expression)
    labels = classify_identifiers(tokens)
    bound_names = {t.value for t, l in zip(tokens, labels) if l == BINDER}
    capture = (bound_names & repl_names) - {name}
    if capture:
        taken = {t.value for t in tokens if t.type == TokenType.IDENT} | repl_names
        for var in sorted(capture):
            fresh = _fresh_name(var, taken)
            taken.add(fresh)
            expression = rename_bound(expression, var, fresh)
        tokens = tokenize(expression)
        labels = classify_identifiers(tokens)

    prec = expression_precedence(repl_text)
    edits = []
    for i, (tok, label) in enumerate(zip(tokens, labels)):
        if label == FREE and tok.value == name:
            text = f"({repl_text})" if _needs_parens(tokens, i, prec) else repl_text
            edits.append((tok.start, tok.end, text))
    new_expression = _splice(expression, edits)

    kept = [v for v in formula.variables if v.name != name]
    return LogicalFormula(new_expression, _dedupe(kept + repl_vars), formula.role)


# ---------------------------------------------------------------------------
# Combination and metrics
# ---------------------------------------------------------------------------

def combine_formulas(formulas: Sequence[LogicalFormula], operator: str = "∧",
                     role: Optional[FormulaRole] = None) -> LogicalFormula:
    """Join formulas with a boolean operator.

    Empty input yields ``true``; a single formula is returned unchanged.
    """
    if not formulas:
        return true_formula(role or FormulaRole.ASSERTION)
    if len(formulas) == 1:
        f = formulas[0]
        return f if role is None else f.with_role(role)
    expression = "(" + f" {operator} ".join(f.expression for f in formulas) + ")"
    variables = _dedupe(v for f in formulas for v in f.variables)
    return LogicalFormula(expression, variables, role or formulas[0].role)


def _operand(expression: str, min_prec: int) -> str:
    try:
        prec = expression_precedence(expression)
    except FormulaSyntaxError:
        prec = -1
    return expression if prec >= min_prec else f"({expression})"


def _merged(formulas: Iterable[LogicalFormula]) -> Tuple[Variable, ...]:
    return _dedupe(v for f in formulas for v in f.variables)


def conjoin(formulas: Sequence[LogicalFormula],
            role: FormulaRole = FormulaRole.ASSERTION) -> LogicalFormula:
    """``a ∧ b ∧ ...`` with ``true`` operands dropped."""
    parts = [f for f in formulas if f.expression != TRUE_EXPR]
    if not parts:
        return true_formula(role)
    if len(parts) == 1:
        return parts[0].with_role(role)
    expression = " ∧ ".join(_operand(f.expression, PREC_AND) for f in parts)
    return LogicalFormula(expression, _merged(parts), role)


def disjoin(formulas: Sequence[LogicalFormula],
            role: FormulaRole = FormulaRole.ASSERTION) -> LogicalFormula:
    """``a ∨ b ∨ ...``; an empty disjunction is ``false``."""
    if not formulas:
        return LogicalFormula(FALSE_EXPR, (), role)
    if len(formulas) == 1:
        return formulas[0].with_role(role)
    expression = " ∨ ".join(_operand(f.expression, PREC_OR) for f in formulas)
    return LogicalFormula(expression, _merged(formulas), role)


def implies(lhs: LogicalFormula, rhs: LogicalFormula,
            role: FormulaRole = FormulaRole.ASSERTION) -> LogicalFormula:
    """``lhs → rhs``; a ``true`` antecedent is dropped."""
    if lhs.expression == TRUE_EXPR:
        return rhs.with_role(role)
    expression = (f"{_operand(lhs.expression, PREC_OR)} → "
                  f"{_operand(rhs.expression, PREC_IMPLIES)}")
    return LogicalFormula(expression, _merged([lhs, rhs]), role)


def negate(f: LogicalFormula) -> LogicalFormula:
    return LogicalFormula(f"¬{_operand(f.expression, PREC_ATOM)}", f.variables, f.role)


_LOGICAL_OPERATOR = re.compile(r"<->|<=>|&&|\|\||->|=>|/\\|\\/|[∧∨→↔¬∀∃]")


def count_logical_operators(expression: str) -> int:
    """Number of ∧ ∨ → ↔ ¬ ∀ ∃ connectives (ASCII spellings included)."""
    return len(_LOGICAL_OPERATOR.findall(expression))


_IDENTIFIER = re.compile(r"\b([A-Za-z_$][A-Za-z0-9_$]*)\b(?!\s*\()")

_CODE_KEYWORDS = frozenset({
    "if", "else", "while", "for", "do", "return", "let", "var", "const",
    "function", "class", "interface", "new", "this", "true", "false",
    "null", "undefined", "switch", "case", "break", "continue", "typeof",
    "instanceof", "in", "of", "skip", "and", "or", "not", "def", "None",
    "True", "False", "void", "async", "await", "import", "from", "export",
})


def extract_variables(code: str) -> Tuple[Variable, ...]:
    """Best-effort identifier scan of a code fragment.

    Keywords and called names are skipped; everything else becomes a
    ``Variable`` of type ``any``.  This is deliberately lossy.
    """
    found: List[Variable] = []
    seen = set()
    for m in _IDENTIFIER.finditer(code):
        name = m.group(1)
        if name in _CODE_KEYWORDS or name in seen:
            continue
        if m.start() > 0 and code[m.start() - 1] == ".":
            continue
        seen.add(name)
        found.append(Variable(name))
    return tuple(found)
