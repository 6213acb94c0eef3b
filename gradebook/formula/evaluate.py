from __future__ import annotations

import decimal
import typing as t

from gradebook.errors import DivisionByZero, DivisionByZeroRisk, MissingComponentScore

from .tree import BinaryOp, Literal, Negate, Node, Reference, references

# fixed context so results never depend on the caller's thread-local decimal settings
Context = decimal.Context(prec=28, rounding=decimal.ROUND_HALF_EVEN, traps=[decimal.InvalidOperation])


def evaluate(tree: Node, component_scores: t.Mapping[str, decimal.Decimal | None]) -> decimal.Decimal:
    """Evaluate a parsed formula against a map of component scores.

    Raises:
        MissingComponentScore: a referenced component has no score in the map
        DivisionByZero: a divisor evaluated to zero for these scores
    """
    missing = {name for name in references(tree) if component_scores.get(name) is None}
    if missing:
        raise MissingComponentScore(missing)

    scores = {k: decimal.Decimal(v) for k, v in component_scores.items() if v is not None}
    with decimal.localcontext(Context):
        return _evaluate(tree, scores)


def _evaluate(node: Node, scores: dict[str, decimal.Decimal]) -> decimal.Decimal:
    match node:
        case Literal(value=value):
            return value
        case Reference(name=name):
            return scores[name]
        case Negate(operand=operand):
            return -_evaluate(operand, scores)
        case BinaryOp(op=op, left=left, right=right):
            lhs = _evaluate(left, scores)
            rhs = _evaluate(right, scores)
            match op:
                case "+":
                    return lhs + rhs
                case "-":
                    return lhs - rhs
                case "*":
                    return lhs * rhs
                case "/":
                    if rhs == 0:
                        raise DivisionByZero(f"division by zero at {node.position}", position=node.position)
                    return lhs / rhs


def fold(node: Node) -> decimal.Decimal | None:
    """Reduce a subtree without references to its constant value.

    Returns None when the subtree depends on a component score, or when it
    divides by zero itself (that case is reported by check_divisors).
    """
    if references(node):
        return None
    try:
        with decimal.localcontext(Context):
            return _evaluate(node, {})
    except DivisionByZero:
        return None


def check_divisors(node: Node) -> None:
    """Raise DivisionByZeroRisk for any divisor that is a constant zero."""
    match node:
        case Negate(operand=operand):
            check_divisors(operand)
        case BinaryOp(op=op, left=left, right=right):
            check_divisors(left)
            check_divisors(right)
            if op == "/" and fold(right) == 0:
                raise DivisionByZeroRisk(position=node.position)
        case _:
            pass
