"""VeriProof Statement Model — the program side of a Hoare triple.

A ``CodeStatement`` is an immutable tagged tree.  Composite shapes use
``substatements``:

    SEQUENCE     (S1, S2, ..., Sn)
    CONDITIONAL  (then, [else])      + condition
    LOOP         (body,)             + condition, optional invariant/variant

Leaves (assignment, declaration, return, call, expression) carry their
source text in ``content``; assignment-like leaves also expose the
assigned ``target`` and ``value``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from veriproof.formulas import (
    LogicalFormula, FormulaRole, Variable, make_formula, extract_variables,
)


class StatementType(str, Enum):
    ASSIGNMENT = "assignment"
    SEQUENCE = "sequence"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    FUNCTION_CALL = "function_call"
    RETURN = "return"
    DECLARATION = "declaration"
    EXPRESSION = "expression"


@dataclass(frozen=True)
class StatementMetadata:
    line: int = 0
    column: int = 0
    file: str = ""
    original_code: str = ""
    transformed_code: str = ""
    complexity: int = 1


@dataclass(frozen=True)
class CodeStatement:
    type: StatementType
    content: str
    variables: Tuple[Variable, ...] = ()
    substatements: Tuple[CodeStatement, ...] = ()
    condition: Optional[LogicalFormula] = None
    metadata: StatementMetadata = field(default_factory=StatementMetadata)
    target: Optional[str] = None
    value: Optional[str] = None
    invariant: Optional[LogicalFormula] = None
    variant: Optional[str] = None

    def __str__(self) -> str:
        return self.content

    def walk(self):
        """Pre-order traversal of this statement and all nested ones."""
        yield self
        for sub in self.substatements:
            yield from sub.walk()

    @property
    def is_composite(self) -> bool:
        return self.type in (StatementType.SEQUENCE, StatementType.CONDITIONAL,
                             StatementType.LOOP)


_CONTROL = re.compile(r"\b(if|while|for|switch)\b")
_DEFINITION = re.compile(r"\b(function|class|interface)\b")


def statement_complexity(code: str) -> int:
    """Length, branching and definition weighted complexity of a snippet."""
    complexity = math.ceil(len(code) / 10)
    complexity += 2 * len(_CONTROL.findall(code))
    complexity += 3 * len(_DEFINITION.findall(code))
    return complexity


def _metadata(code: str, metadata: Optional[StatementMetadata]) -> StatementMetadata:
    if metadata is not None:
        return metadata
    return StatementMetadata(original_code=code, transformed_code=code,
                             complexity=statement_complexity(code))


def _as_condition(condition: Union[str, LogicalFormula]) -> LogicalFormula:
    if isinstance(condition, LogicalFormula):
        return condition
    return make_formula(condition, FormulaRole.ASSERTION)


def _merge_vars(*groups) -> Tuple[Variable, ...]:
    seen: dict[str, Variable] = {}
    for group in groups:
        for v in group:
            seen.setdefault(v.name, v)
    return tuple(seen.values())


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def assignment(target: str, value: str,
               metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    content = f"{target} := {value}"
    return CodeStatement(
        type=StatementType.ASSIGNMENT, content=content,
        variables=_merge_vars([Variable(target)], extract_variables(value)),
        metadata=_metadata(content, metadata), target=target, value=value,
    )


def declaration(name: str, value: Optional[str] = None,
                metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    content = f"let {name}" + (f" = {value}" if value is not None else "")
    return CodeStatement(
        type=StatementType.DECLARATION, content=content,
        variables=_merge_vars([Variable(name)], extract_variables(value or "")),
        metadata=_metadata(content, metadata), target=name, value=value,
    )


def return_stmt(value: Optional[str] = None,
                metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    content = "return" + (f" {value}" if value else "")
    return CodeStatement(
        type=StatementType.RETURN, content=content,
        variables=extract_variables(value or ""),
        metadata=_metadata(content, metadata), target="result", value=value,
    )


def call(content: str, metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    return CodeStatement(
        type=StatementType.FUNCTION_CALL, content=content,
        variables=extract_variables(content), metadata=_metadata(content, metadata),
    )


def expression(content: str, metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    return CodeStatement(
        type=StatementType.EXPRESSION, content=content,
        variables=extract_variables(content), metadata=_metadata(content, metadata),
    )


def sequence(*statements: CodeStatement,
             metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    content = "; ".join(s.content for s in statements)
    return CodeStatement(
        type=StatementType.SEQUENCE, content=content,
        variables=_merge_vars(*(s.variables for s in statements)),
        substatements=tuple(statements), metadata=_metadata(content, metadata),
    )


def conditional(condition: Union[str, LogicalFormula], then_branch: CodeStatement,
                else_branch: Optional[CodeStatement] = None,
                metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    cond = _as_condition(condition)
    content = f"if ({cond.expression}) {{ {then_branch.content} }}"
    subs: Tuple[CodeStatement, ...] = (then_branch,)
    if else_branch is not None:
        content += f" else {{ {else_branch.content} }}"
        subs = (then_branch, else_branch)
    return CodeStatement(
        type=StatementType.CONDITIONAL, content=content,
        variables=_merge_vars(cond.variables, *(s.variables for s in subs)),
        substatements=subs, condition=cond, metadata=_metadata(content, metadata),
    )


def loop(condition: Union[str, LogicalFormula], body: CodeStatement,
         invariant: Union[str, LogicalFormula, None] = None,
         variant: Optional[str] = None,
         metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    cond = _as_condition(condition)
    inv = None
    if invariant is not None:
        inv = _as_condition(invariant).with_role(FormulaRole.INVARIANT)
    content = f"while ({cond.expression}) {{ {body.content} }}"
    return CodeStatement(
        type=StatementType.LOOP, content=content,
        variables=_merge_vars(cond.variables, body.variables),
        substatements=(body,), condition=cond, metadata=_metadata(content, metadata),
        invariant=inv, variant=variant,
    )


_ASSIGNMENT = re.compile(
    r"^\s*(?:(let|var|const)\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*(?::=|=(?!=))\s*(.+?)\s*;?\s*$",
    re.DOTALL,
)
_BARE_DECLARATION = re.compile(r"^\s*(?:let|var|const)\s+([A-Za-z_][A-Za-z0-9_]*)\s*;?\s*$")


def parse_assignment(code: str) -> Optional[Tuple[str, str]]:
    """Split ``x := e`` / ``x = e`` / ``let x = e`` into ``(x, e)``."""
    m = _ASSIGNMENT.match(code)
    if m is None:
        return None
    return m.group(2), m.group(3)


def leaf_from_code(code: str, metadata: Optional[StatementMetadata] = None) -> CodeStatement:
    """Classify a single line of code as a leaf statement."""
    code = code.strip().rstrip(";").strip()
    m = _ASSIGNMENT.match(code)
    if m is not None:
        if m.group(1):
            return declaration(m.group(2), m.group(3), metadata)
        return assignment(m.group(2), m.group(3), metadata)
    m = _BARE_DECLARATION.match(code)
    if m is not None:
        return declaration(m.group(1), None, metadata)
    if code.startswith("return"):
        return return_stmt(code[len("return"):].strip() or None, metadata)
    if re.match(r"^[A-Za-z_][A-Za-z0-9_.]*\s*\(.*\)$", code, re.DOTALL):
        return call(code, metadata)
    return expression(code, metadata)


# ---------------------------------------------------------------------------
# Code transformations supplied by fix producers
# ---------------------------------------------------------------------------

class TransformationKind(str, Enum):
    INSERTION = "INSERTION"
    DELETION = "DELETION"
    MODIFICATION = "MODIFICATION"
    REFACTORING = "REFACTORING"
    OPTIMIZATION = "OPTIMIZATION"


@dataclass(frozen=True)
class CodeTransformation:
    kind: TransformationKind
    source_code: str
    target_code: str
    reversible: bool = False


def parse_code_transformation(transformation: CodeTransformation) -> CodeStatement:
    """Map a transformation to its default statement shape.

    insertion -> declaration, modification -> assignment,
    refactoring -> sequence, anything else -> expression.
    Variables come from an identifier scan of the target code.
    """
    target = transformation.target_code
    metadata = StatementMetadata(
        original_code=transformation.source_code,
        transformed_code=target,
        complexity=statement_complexity(target),
    )
    variables = extract_variables(target)
    kind = transformation.kind

    if kind == TransformationKind.REFACTORING:
        parts = [p for p in re.split(r"[;\n]", target) if p.strip()]
        subs = tuple(leaf_from_code(p) for p in parts)
        return CodeStatement(type=StatementType.SEQUENCE, content=target,
                             variables=variables, substatements=subs,
                             metadata=metadata)

    parsed = parse_assignment(target)
    if kind == TransformationKind.INSERTION:
        return CodeStatement(type=StatementType.DECLARATION, content=target,
                             variables=variables, metadata=metadata,
                             target=parsed[0] if parsed else None,
                             value=parsed[1] if parsed else None)
    if kind == TransformationKind.MODIFICATION:
        return CodeStatement(type=StatementType.ASSIGNMENT, content=target,
                             variables=variables, metadata=metadata,
                             target=parsed[0] if parsed else None,
                             value=parsed[1] if parsed else None)
    return CodeStatement(type=StatementType.EXPRESSION, content=target,
                         variables=variables, metadata=metadata)
