from __future__ import annotations

import decimal
import typing as t

import annotated_types as ant
import pydantic as p

from gradebook.model import GradeBoundary, RoundingRule

from .base import BaseSettings


class GradingSettings(BaseSettings):
    components: ComponentSettings = p.Field(default_factory=lambda: ComponentSettings())
    formula: FormulaSettings = p.Field(default_factory=lambda: FormulaSettings())
    computation: ComputationSettings = p.Field(default_factory=lambda: ComputationSettings())
    audit: AuditSettings = p.Field(default_factory=lambda: AuditSettings())


class ComponentSettings(BaseSettings):
    """How weight-based components of one offering must add up.

    Writes never let the active weights exceed ``weight_target + epsilon``.
    When ``require_complete_weights`` is set, activating a formula also
    requires the weights to reach the target (within epsilon).
    """

    weight_target: t.Annotated[decimal.Decimal, ant.Gt(0)] = decimal.Decimal("1.0")
    epsilon: t.Annotated[decimal.Decimal, ant.Ge(0)] = decimal.Decimal("0.001")
    require_complete_weights: bool = True


def _default_boundaries() -> list[GradeBoundary]:
    return [
        GradeBoundary(min_score=decimal.Decimal(90), letter="A"),
        GradeBoundary(min_score=decimal.Decimal(80), letter="B"),
        GradeBoundary(min_score=decimal.Decimal(70), letter="C"),
        GradeBoundary(min_score=decimal.Decimal(60), letter="D"),
        GradeBoundary(min_score=decimal.Decimal(0), letter="F"),
    ]


class FormulaSettings(BaseSettings):
    """Defaults applied to formulas created without these fields."""

    default_output_scale: t.Annotated[decimal.Decimal, ant.Gt(0)] = decimal.Decimal(100)
    default_rounding_rule: RoundingRule = RoundingRule.HalfUp
    default_decimal_places: t.Annotated[int, ant.Ge(0), ant.Le(4)] = 2
    default_boundaries: list[GradeBoundary] = p.Field(default_factory=_default_boundaries)


class ComputationSettings(BaseSettings):
    # a claim older than this belongs to a run that died; the next run may take it over
    stale_after_seconds: t.Annotated[int, ant.Gt(0)] = 900


class AuditSettings(BaseSettings):
    backend: t.Literal["sql", "log"] = "sql"
