"""VeriProof Parser — recursive-descent parser for formulas and statements.

Formula grammar (loosest binding first):

    formula     := quantified | iff
    quantified  := (∀|∃) IDENT (',' IDENT)* '.' formula
    iff         := implies ('↔' implies)?
    implies     := or ('→' implies)?            (right associative)
    or          := and ('∨' and)*
    and         := not ('∧' not)*
    not         := '¬' not | quantified | comparison
    comparison  := additive (relop additive)?
    additive    := multiplicative (('+'|'-') multiplicative)*
    multiplicative := unary (('*'|'/'|'%') unary)*
    unary       := '-' unary | postfix
    postfix     := primary ('(' args ')')?
    primary     := INT | true | false | IDENT | '(' formula ')'

Statement grammar (best effort, not a full language front end):

    program     := stmt (';' stmt)* ';'?
    stmt        := skip | return expr? | let IDENT (('='|':=') expr)?
                 | IDENT (':='|'=') expr
                 | if cond block (else (block | if ...))?
                 | while cond (invariant formula | decreases expr)* block
                 | expr
    block       := '{' program? '}'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from veriproof.errors import FormulaSyntaxError
from veriproof.formulas import make_formula, FormulaRole
from veriproof.lexer import Token, TokenType, tokenize
from veriproof import statements as st


# ---------------------------------------------------------------------------
# Formula AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Node:
    pass


@dataclass(frozen=True)
class Const(Node):
    value: Union[bool, int]

    def __str__(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)


@dataclass(frozen=True)
class Var(Node):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class App(Node):
    func: str
    args: Tuple[Node, ...]

    def __str__(self) -> str:
        return f"{self.func}({', '.join(str(a) for a in self.args)})"


@dataclass(frozen=True)
class Unary(Node):
    op: str            # "¬" or "-"
    operand: Node

    def __str__(self) -> str:
        return f"{self.op}({self.operand})"


@dataclass(frozen=True)
class Binary(Node):
    op: str
    left: Node
    right: Node

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


@dataclass(frozen=True)
class Quant(Node):
    kind: str          # "∀" or "∃"
    names: Tuple[str, ...]
    body: Node

    def __str__(self) -> str:
        return f"({self.kind}{', '.join(self.names)}. {self.body})"


_CANONICAL: dict[TokenType, str] = {
    TokenType.AND: "∧",
    TokenType.OR: "∨",
    TokenType.IMPLIES: "→",
    TokenType.IFF: "↔",
    TokenType.EQ: "=",
    TokenType.NEQ: "≠",
    TokenType.LT: "<",
    TokenType.LTE: "≤",
    TokenType.GT: ">",
    TokenType.GTE: "≥",
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
}

_RELATIONS = (TokenType.EQ, TokenType.NEQ, TokenType.LT, TokenType.LTE,
              TokenType.GT, TokenType.GTE)


class Parser:
    """Recursive-descent parser over a ``Lexer`` token stream."""

    def __init__(self, source: str, filename: str = "<formula>"):
        self.source = source
        self.filename = filename
        self.tokens = tokenize(source, filename)
        self.pos = 0
        self._last_end = 0

    def _current(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self) -> TokenType:
        return self._current().type

    def _peek_at(self, offset: int) -> TokenType:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx].type

    def _advance(self) -> Token:
        tok = self._current()
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        self._last_end = tok.end
        return tok

    def _expect(self, tt: TokenType) -> Token:
        tok = self._current()
        if tok.type != tt:
            raise FormulaSyntaxError(
                f"Expected {tt.name}, got {tok.type.name} ('{tok.value}')",
                tok.location, source=self.source,
            )
        return self._advance()

    def _match(self, tt: TokenType) -> Optional[Token]:
        if self._peek() == tt:
            return self._advance()
        return None

    def _text_from(self, start: int) -> str:
        return self.source[start:self._last_end].strip()

    # -------------------------------------------------------------------
    # Formulas
    # -------------------------------------------------------------------

    def parse_formula(self) -> Node:
        node = self._parse_formula()
        if self._peek() != TokenType.EOF:
            tok = self._current()
            raise FormulaSyntaxError(
                f"Unexpected '{tok.value}' after end of formula",
                tok.location, source=self.source,
            )
        return node

    def _parse_formula(self) -> Node:
        if self._peek() in (TokenType.FORALL, TokenType.EXISTS):
            return self._parse_quantified()
        return self._parse_iff()

    def _parse_quantified(self) -> Node:
        kind = "∀" if self._advance().type == TokenType.FORALL else "∃"
        names = [self._expect(TokenType.IDENT).value]
        self._skip_annotation()
        while self._match(TokenType.COMMA):
            names.append(self._expect(TokenType.IDENT).value)
            self._skip_annotation()
        self._expect(TokenType.DOT)
        body = self._parse_formula()
        return Quant(kind, tuple(names), body)

    def _skip_annotation(self) -> None:
        if self._match(TokenType.COLON):
            self._expect(TokenType.IDENT)

    def _parse_iff(self) -> Node:
        left = self._parse_implies()
        if self._match(TokenType.IFF):
            right = self._parse_implies()
            return Binary("↔", left, right)
        return left

    def _parse_implies(self) -> Node:
        left = self._parse_or()
        if self._match(TokenType.IMPLIES):
            right = self._parse_implies_rhs()
            return Binary("→", left, right)
        return left

    def _parse_implies_rhs(self) -> Node:
        if self._peek() in (TokenType.FORALL, TokenType.EXISTS):
            return self._parse_quantified()
        return self._parse_implies()

    def _parse_or(self) -> Node:
        left = self._parse_and()
        while self._match(TokenType.OR):
            left = Binary("∨", left, self._parse_and())
        return left

    def _parse_and(self) -> Node:
        left = self._parse_not()
        while self._match(TokenType.AND):
            left = Binary("∧", left, self._parse_not())
        return left

    def _parse_not(self) -> Node:
        if self._match(TokenType.NOT):
            return Unary("¬", self._parse_not())
        if self._peek() in (TokenType.FORALL, TokenType.EXISTS):
            return self._parse_quantified()
        return self._parse_comparison()

    def _parse_comparison(self) -> Node:
        left = self._parse_additive()
        if self._peek() in _RELATIONS:
            op = _CANONICAL[self._advance().type]
            right = self._parse_additive()
            return Binary(op, left, right)
        return left

    def _parse_additive(self) -> Node:
        left = self._parse_multiplicative()
        while self._peek() in (TokenType.PLUS, TokenType.MINUS):
            op = _CANONICAL[self._advance().type]
            left = Binary(op, left, self._parse_multiplicative())
        return left

    def _parse_multiplicative(self) -> Node:
        left = self._parse_unary()
        while self._peek() in (TokenType.STAR, TokenType.SLASH, TokenType.PERCENT):
            op = _CANONICAL[self._advance().type]
            left = Binary(op, left, self._parse_unary())
        return left

    def _parse_unary(self) -> Node:
        if self._match(TokenType.MINUS):
            operand = self._parse_unary()
            if isinstance(operand, Const) and not isinstance(operand.value, bool):
                return Const(-operand.value)
            return Unary("-", operand)
        return self._parse_postfix()

    def _parse_postfix(self) -> Node:
        node = self._parse_primary()
        if isinstance(node, Var) and self._peek() == TokenType.LPAREN:
            self._advance()
            args = []
            if self._peek() != TokenType.RPAREN:
                args.append(self._parse_formula())
                while self._match(TokenType.COMMA):
                    args.append(self._parse_formula())
            self._expect(TokenType.RPAREN)
            return App(node.name, tuple(args))
        return node

    def _parse_primary(self) -> Node:
        tok = self._current()
        if tok.type == TokenType.INT_LIT:
            self._advance()
            return Const(int(tok.value))
        if tok.type == TokenType.TRUE:
            self._advance()
            return Const(True)
        if tok.type == TokenType.FALSE:
            self._advance()
            return Const(False)
        if tok.type == TokenType.IDENT:
            self._advance()
            return Var(tok.value)
        if tok.type == TokenType.LPAREN:
            self._advance()
            node = self._parse_formula()
            self._expect(TokenType.RPAREN)
            return node
        if tok.type == TokenType.NOT:
            return self._parse_not()
        raise FormulaSyntaxError(
            f"Unexpected {tok.type.name} ('{tok.value}') in formula",
            tok.location, source=self.source,
        )

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def parse_program(self) -> st.CodeStatement:
        stmt = self._parse_sequence(TokenType.EOF)
        self._expect(TokenType.EOF)
        return stmt

    def _metadata(self, tok: Token, text: str) -> st.StatementMetadata:
        return st.StatementMetadata(
            line=tok.location.line, column=tok.location.column, file=self.filename,
            original_code=text, transformed_code=text,
            complexity=st.statement_complexity(text),
        )

    def _parse_sequence(self, terminator: TokenType) -> st.CodeStatement:
        first = self._current()
        stmts = []
        while self._peek() not in (terminator, TokenType.EOF):
            stmts.append(self._parse_statement())
            if not self._match(TokenType.SEMICOLON):
                if self._peek() not in (terminator, TokenType.EOF) and \
                        stmts[-1].type not in (st.StatementType.CONDITIONAL,
                                               st.StatementType.LOOP):
                    tok = self._current()
                    raise FormulaSyntaxError(
                        f"Expected ';' between statements, got '{tok.value}'",
                        tok.location, source=self.source,
                    )
        if not stmts:
            return st.CodeStatement(type=st.StatementType.SEQUENCE, content="skip",
                                    metadata=self._metadata(first, "skip"))
        if len(stmts) == 1:
            return stmts[0]
        return st.sequence(*stmts, metadata=self._metadata(
            first, self.source[first.start:self._last_end].strip()))

    def _parse_block(self) -> st.CodeStatement:
        self._expect(TokenType.LBRACE)
        body = self._parse_sequence(TokenType.RBRACE)
        self._expect(TokenType.RBRACE)
        return body

    def _parse_condition(self) -> str:
        start = self._current().start
        self._parse_formula()
        return strip_outer_parens(self._text_from(start))

    def _parse_expression_text(self) -> str:
        start = self._current().start
        self._parse_formula()
        return self._text_from(start)

    def _parse_statement(self) -> st.CodeStatement:
        tok = self._current()
        tt = tok.type

        if tt == TokenType.SKIP:
            self._advance()
            return st.CodeStatement(type=st.StatementType.SEQUENCE, content="skip",
                                    metadata=self._metadata(tok, "skip"))

        if tt == TokenType.RETURN:
            self._advance()
            value = None
            if self._peek() not in (TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF):
                value = self._parse_expression_text()
            text = self._text_from(tok.start)
            return st.return_stmt(value, self._metadata(tok, text))

        if tt == TokenType.LET:
            self._advance()
            name = self._expect(TokenType.IDENT).value
            value = None
            if self._match(TokenType.ASSIGN) or self._match(TokenType.EQ):
                value = self._parse_expression_text()
            text = self._text_from(tok.start)
            return st.declaration(name, value, self._metadata(tok, text))

        if tt == TokenType.IF:
            return self._parse_if()

        if tt == TokenType.WHILE:
            return self._parse_while()

        if tt == TokenType.IDENT and (
                self._peek_at(1) == TokenType.ASSIGN or
                (self._peek_at(1) == TokenType.EQ and self.tokens[self.pos + 1].value == "=")):
            target = self._advance().value
            self._advance()
            value = self._parse_expression_text()
            text = self._text_from(tok.start)
            return st.assignment(target, value, self._metadata(tok, text))

        node = self._parse_formula()
        text = self._text_from(tok.start)
        if isinstance(node, App):
            return st.call(text, self._metadata(tok, text))
        return st.expression(text, self._metadata(tok, text))

    def _parse_if(self) -> st.CodeStatement:
        tok = self._expect(TokenType.IF)
        condition = self._parse_condition()
        then_branch = self._parse_block()
        else_branch = None
        if self._match(TokenType.ELSE):
            if self._peek() == TokenType.IF:
                else_branch = self._parse_if()
            else:
                else_branch = self._parse_block()
        text = self._text_from(tok.start)
        return st.conditional(condition, then_branch, else_branch,
                              self._metadata(tok, text))

    def _parse_while(self) -> st.CodeStatement:
        tok = self._expect(TokenType.WHILE)
        condition = self._parse_condition()
        invariant = None
        variant = None
        while self._peek() == TokenType.IDENT and self._current().value in ("invariant", "decreases"):
            keyword = self._advance().value
            text = self._parse_expression_text()
            if keyword == "invariant":
                invariant = text if invariant is None else f"({invariant}) ∧ ({text})"
            else:
                variant = text
        body = self._parse_block()
        text = self._text_from(tok.start)
        return st.loop(condition, body, invariant, variant, self._metadata(tok, text))


def parse_formula(text: str) -> Node:
    """Parse an assertion into its AST.  Raises ``FormulaSyntaxError``."""
    return Parser(text).parse_formula()


def parse_statement(text: str, filename: str = "<statement>") -> st.CodeStatement:
    """Parse a snippet of the statement language into a ``CodeStatement``."""
    return Parser(text, filename).parse_program()


def check_formula(text: str, role: FormulaRole = FormulaRole.ASSERTION):
    """Validate syntax and build a ``LogicalFormula`` from ``text``."""
    parse_formula(text)
    return make_formula(text, role)


def strip_outer_parens(text: str) -> str:
    """Drop parentheses that wrap the whole of ``text``."""
    text = text.strip()
    while text.startswith("(") and text.endswith(")"):
        depth = 0
        for i, ch in enumerate(text):
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0 and i < len(text) - 1:
                    return text
        text = text[1:-1].strip()
    return text
