"""Recursive-descent parser for the grading formula grammar.

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("+" | "-") unary | primary
    primary    := NUMBER | IDENTIFIER | "(" expression ")"

The grammar is closed: there are no function calls, comparisons or
assignments, so a parsed formula can only ever compute a number.
"""

from __future__ import annotations

import contextlib
import dataclasses
import decimal
import re
import typing as t

from gradebook.errors import FormulaSyntaxError

from .tree import BinaryOp, Literal, Negate, Node, Reference

MaxDepth = 64
MaxLength = 2000

TokenKind = t.Literal["number", "name", "op", "lparen", "rparen", "end"]

_token_re = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<number>(?:\d+(?:\.\d*)?|\.\d+))
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>[-+*/])
    | (?P<lparen>\()
    | (?P<rparen>\))
    """,
    re.VERBOSE,
)


@dataclasses.dataclass(frozen=True, slots=True)
class Token(object):
    kind: TokenKind
    text: str
    position: int


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(expression):
        m = _token_re.match(expression, pos)
        if m is None:
            raise FormulaSyntaxError(f"unexpected character {expression[pos]!r} at {pos}", position=pos)
        kind = t.cast(str, m.lastgroup)
        if kind != "ws":
            tokens.append(Token(t.cast(TokenKind, kind), m.group(), pos))
        pos = m.end()
    tokens.append(Token("end", "", len(expression)))
    return tokens


class Parser(object):
    tokens: list[Token]
    index: int
    depth: int

    def __init__(self, expression: str):
        if len(expression) > MaxLength:
            raise FormulaSyntaxError(f"expression is longer than {MaxLength} characters")
        self.tokens = tokenize(expression)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "end":
            self.index += 1
        return token

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise FormulaSyntaxError("expression is empty", position=0)
        node = self.expression()
        if self.current.kind != "end":
            raise self.unexpected()
        return node

    def expression(self) -> Node:
        node = self.term()
        while self.current.kind == "op" and self.current.text in ("+", "-"):
            op = self.advance()
            node = BinaryOp(t.cast(t.Literal["+", "-"], op.text), node, self.term(), op.position)
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == "op" and self.current.text in ("*", "/"):
            op = self.advance()
            node = BinaryOp(t.cast(t.Literal["*", "/"], op.text), node, self.unary(), op.position)
        return node

    def unary(self) -> Node:
        if self.current.kind == "op" and self.current.text in ("+", "-"):
            op = self.advance()
            with self.nested(op):
                operand = self.unary()
            return operand if op.text == "+" else Negate(operand, op.position)
        return self.primary()

    def primary(self) -> Node:
        token = self.current
        match token.kind:
            case "number":
                self.advance()
                return Literal(decimal.Decimal(token.text), token.position)
            case "name":
                self.advance()
                if self.current.kind == "lparen":
                    raise FormulaSyntaxError(
                        f"function calls are not supported ({token.text!s} at {token.position})",
                        position=token.position,
                    )
                return Reference(token.text, token.position)
            case "lparen":
                self.advance()
                with self.nested(token):
                    node = self.expression()
                if self.current.kind != "rparen":
                    raise FormulaSyntaxError(
                        f"unbalanced parenthesis opened at {token.position}", position=token.position
                    )
                self.advance()
                return node
            case _:
                raise self.unexpected()

    def unexpected(self) -> FormulaSyntaxError:
        token = self.current
        if token.kind == "end":
            return FormulaSyntaxError("unexpected end of expression", position=token.position)
        return FormulaSyntaxError(f"unexpected {token.text!r} at {token.position}", position=token.position)

    @contextlib.contextmanager
    def nested(self, token: Token) -> t.Iterator[None]:
        self.depth += 1
        try:
            if self.depth > MaxDepth:
                raise FormulaSyntaxError(
                    f"expression nested more than {MaxDepth} levels deep", position=token.position
                )
            yield
        finally:
            self.depth -= 1


def parse(expression: str) -> Node:
    """Parse ``expression`` into an evaluation tree.

    Raises:
        FormulaSyntaxError: if the expression is not in the grammar
    """
    return Parser(expression).parse()
