"""VeriProof Statement Model Tests — STMT-001 through STMT-004."""

import pytest

from veriproof.formulas import FormulaRole
from veriproof.statements import (
    StatementType, CodeTransformation, TransformationKind,
    assignment, conditional, loop, sequence, expression,
    leaf_from_code, parse_assignment, parse_code_transformation, statement_complexity,
)


class TestConstructors:
    """STMT-001: Statement constructors."""

    def test_assignment_fields(self):
        stmt = assignment("y", "x + 1")
        assert stmt.content == "y := x + 1"
        assert [v.name for v in stmt.variables] == ["y", "x"]
        assert not stmt.is_composite

    def test_sequence_merges_variables(self):
        stmt = sequence(assignment("x", "5"), assignment("y", "x + 1"))
        assert stmt.content == "x := 5; y := x + 1"
        assert [v.name for v in stmt.variables] == ["x", "y"]
        assert stmt.is_composite

    def test_conditional_content_and_condition(self):
        stmt = conditional("x > 0", assignment("y", "1"), assignment("y", "2"))
        assert stmt.condition.expression == "x > 0"
        assert stmt.content == "if (x > 0) { y := 1 } else { y := 2 }"

    def test_loop_invariant_role(self):
        stmt = loop("i < n", assignment("i", "i + 1"), invariant="i ≤ n", variant="n - i")
        assert stmt.invariant.role == FormulaRole.INVARIANT
        assert stmt.variant == "n - i"

    def test_walk_is_preorder(self):
        inner = assignment("i", "i + 1")
        stmt = sequence(assignment("i", "0"), loop("i < n", inner))
        kinds = [s.type for s in stmt.walk()]
        assert kinds == [StatementType.SEQUENCE, StatementType.ASSIGNMENT,
                         StatementType.LOOP, StatementType.ASSIGNMENT]

    def test_statements_are_hashable(self):
        a = assignment("x", "1")
        b = assignment("x", "1")
        assert a == b and hash(a) == hash(b)


class TestComplexity:
    """STMT-002: Complexity heuristic."""

    def test_length_only(self):
        assert statement_complexity("x := 1") == 1

    def test_control_flow_weighted(self):
        assert statement_complexity("if (x) { y }") == 4

    def test_definitions_weighted(self):
        assert statement_complexity("function f") == 1 + 3


class TestLeafClassification:
    """STMT-003: Single lines of code."""

    def test_parse_assignment(self):
        assert parse_assignment("x = y + 1;") == ("x", "y + 1")
        assert parse_assignment("let x := 2") == ("x", "2")
        assert parse_assignment("x == y") is None

    @pytest.mark.parametrize("code,kind", [
        ("x = 1", StatementType.ASSIGNMENT),
        ("const x = 1", StatementType.DECLARATION),
        ("let x", StatementType.DECLARATION),
        ("return x", StatementType.RETURN),
        ("log.info(x)", StatementType.FUNCTION_CALL),
        ("x++", StatementType.EXPRESSION),
    ])
    def test_leaf_kinds(self, code, kind):
        assert leaf_from_code(code).type == kind


class TestCodeTransformations:
    """STMT-004: Default statement shape per transformation kind."""

    def test_modification_is_assignment(self):
        stmt = parse_code_transformation(
            CodeTransformation(TransformationKind.MODIFICATION, "y = x", "y = x + 1"))
        assert stmt.type == StatementType.ASSIGNMENT
        assert stmt.target == "y" and stmt.value == "x + 1"
        assert stmt.metadata.original_code == "y = x"
        assert stmt.metadata.transformed_code == "y = x + 1"

    def test_insertion_is_declaration(self):
        stmt = parse_code_transformation(
            CodeTransformation(TransformationKind.INSERTION, "", "let z = 3"))
        assert stmt.type == StatementType.DECLARATION and stmt.target == "z"

    def test_refactoring_is_sequence(self):
        stmt = parse_code_transformation(
            CodeTransformation(TransformationKind.REFACTORING, "", "a = 1; b = a + 1"))
        assert stmt.type == StatementType.SEQUENCE
        assert [s.type for s in stmt.substatements] == [StatementType.ASSIGNMENT] * 2

    @pytest.mark.parametrize("kind", [TransformationKind.DELETION,
                                      TransformationKind.OPTIMIZATION])
    def test_other_kinds_are_expressions(self, kind):
        stmt = parse_code_transformation(CodeTransformation(kind, "x = 1", "cache.clear()"))
        assert stmt.type == StatementType.EXPRESSION
        assert [v.name for v in stmt.variables] == ["cache"]

    def test_expression_constructor(self):
        assert expression("a < b").type == StatementType.EXPRESSION
