"""Formula engine: parse, validate and evaluate grading formulas.

Everything in this package is pure. Nothing here reads from or writes to
the store, so the same functions back both persisted computations and
side-effect free previews.
"""

from __future__ import annotations

__all__ = [
    "BinaryOp",
    "Literal",
    "Negate",
    "Node",
    "Reference",
    "Preview",
    "ValidationResult",
    "apply_rounding",
    "check_boundaries",
    "evaluate",
    "map_to_letter",
    "parse",
    "preview",
    "references",
    "score",
    "validate",
]

import dataclasses
import decimal
import typing as t

from gradebook.errors import UnknownReference
from gradebook.model import GradeBoundary, RoundingRule

from .boundary import check_boundaries, map_to_letter
from .evaluate import check_divisors, evaluate
from .grammar import parse
from .rounding import apply_rounding
from .tree import BinaryOp, Literal, Negate, Node, Reference, references


@dataclasses.dataclass(frozen=True)
class ValidationResult(object):
    expression: str
    tree: Node
    references: frozenset[str]

    @property
    def canonical(self) -> str:
        return str(self.tree)


@dataclasses.dataclass(frozen=True)
class Preview(object):
    raw_score: decimal.Decimal
    letter: str
    is_passing: bool | None
    unrounded: decimal.Decimal
    component_scores: dict[str, decimal.Decimal]

    def breakdown(self, expression: str) -> dict[str, t.Any]:
        return {
            "components": {k: str(v) for k, v in sorted(self.component_scores.items())},
            "expression": expression,
            "unrounded": str(self.unrounded),
            "raw_score": str(self.raw_score),
            "letter": self.letter,
        }


def validate(expression: str, known_component_ids: t.Iterable[str]) -> ValidationResult:
    """Parse and statically check a formula without evaluating it.

    Raises:
        FormulaSyntaxError: the expression is malformed
        UnknownReference: the expression names a component not in ``known_component_ids``
        DivisionByZeroRisk: a divisor is a constant zero
    """
    tree = parse(expression)
    refs = references(tree)
    unknown = refs - set(known_component_ids)
    if unknown:
        raise UnknownReference(unknown)
    check_divisors(tree)
    return ValidationResult(expression=expression, tree=tree, references=refs)


def score(
    tree: Node,
    component_scores: t.Mapping[str, decimal.Decimal | None],
    *,
    boundaries: t.Sequence[GradeBoundary],
    output_scale: decimal.Decimal,
    rounding_rule: RoundingRule = RoundingRule.HalfUp,
    decimal_places: int = 2,
    pass_threshold: decimal.Decimal | None = None,
) -> Preview:
    """Evaluate, round and map a compiled formula to a letter."""
    unrounded = evaluate(tree, component_scores)
    raw_score = apply_rounding(unrounded, rounding_rule, decimal_places)
    letter = map_to_letter(raw_score, boundaries, output_scale)
    used = {name: decimal.Decimal(t.cast(decimal.Decimal, component_scores[name])) for name in references(tree)}
    return Preview(
        raw_score=raw_score,
        letter=letter,
        is_passing=(raw_score >= pass_threshold) if pass_threshold is not None else None,
        unrounded=unrounded,
        component_scores=used,
    )


def preview(
    expression: str,
    sample_scores: t.Mapping[str, decimal.Decimal | None],
    *,
    boundaries: t.Sequence[GradeBoundary],
    output_scale: decimal.Decimal = decimal.Decimal(100),
    rounding_rule: RoundingRule = RoundingRule.HalfUp,
    decimal_places: int = 2,
    pass_threshold: decimal.Decimal | None = None,
    known_component_ids: t.Iterable[str] | None = None,
) -> Preview:
    """Run validate, evaluate and map_to_letter over sample scores without persisting anything."""
    check_boundaries(boundaries, output_scale)
    known = known_component_ids if known_component_ids is not None else sample_scores.keys()
    result = validate(expression, known)
    return score(
        result.tree,
        sample_scores,
        boundaries=boundaries,
        output_scale=output_scale,
        rounding_rule=rounding_rule,
        decimal_places=decimal_places,
        pass_threshold=pass_threshold,
    )
