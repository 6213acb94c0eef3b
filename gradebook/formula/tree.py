"""Evaluation tree for grading formulas.

Nodes are immutable. A tree is produced once by the parser and may be
evaluated any number of times against different score maps.
"""

from __future__ import annotations

import dataclasses
import decimal
import typing as t

Operator = t.Literal["+", "-", "*", "/"]


@dataclasses.dataclass(frozen=True, slots=True)
class Literal(object):
    value: decimal.Decimal
    position: int = 0

    def __str__(self) -> str:
        return str(self.value)


@dataclasses.dataclass(frozen=True, slots=True)
class Reference(object):
    name: str
    position: int = 0

    def __str__(self) -> str:
        return self.name


@dataclasses.dataclass(frozen=True, slots=True)
class Negate(object):
    operand: Node
    position: int = 0

    def __str__(self) -> str:
        return f"-{self.operand!s}"


@dataclasses.dataclass(frozen=True, slots=True)
class BinaryOp(object):
    op: Operator
    left: Node
    right: Node
    position: int = 0

    def __str__(self) -> str:
        return f"({self.left!s} {self.op} {self.right!s})"


Node = Literal | Reference | Negate | BinaryOp


def references(node: Node) -> frozenset[str]:
    """Every component identifier the tree refers to."""
    match node:
        case Literal():
            return frozenset()
        case Reference(name=name):
            return frozenset((name,))
        case Negate(operand=operand):
            return references(operand)
        case BinaryOp(left=left, right=right):
            return references(left) | references(right)
