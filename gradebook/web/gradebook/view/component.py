"""View models for grading components."""

from __future__ import annotations

import datetime
import decimal

import pydantic as p

from gradebook.model import ClassOfferingID, ComponentID, Weighting


class ComponentCreateRequest(p.BaseModel):
    class_offering_id: ClassOfferingID
    name: str
    label: str | None = None
    weighting: Weighting = Weighting.Weight
    weight: decimal.Decimal
    max_score: decimal.Decimal = decimal.Decimal(100)


class ComponentUpdateRequest(p.BaseModel):
    """Fields left out of the request body are not changed."""

    name: str | None = None
    label: str | None = None
    weighting: Weighting | None = None
    weight: decimal.Decimal | None = None
    max_score: decimal.Decimal | None = None
    is_active: bool | None = None


class ComponentResponse(p.BaseModel):
    model_config = p.ConfigDict(from_attributes=True)

    component_id: ComponentID
    class_offering_id: ClassOfferingID
    name: str
    label: str | None = None
    weighting: Weighting
    weight: decimal.Decimal
    max_score: decimal.Decimal
    is_active: bool
    create_time: datetime.datetime
    update_time: datetime.datetime


class ComponentListResponse(p.BaseModel):
    components: list[ComponentResponse]
    total_weight: decimal.Decimal
