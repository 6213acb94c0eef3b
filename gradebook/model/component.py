import enum
import re

import pydantic as p

from .base import BaseModel, Timestamp, Weight, WithTimestamps
from .id import ClassOfferingID, ComponentID

IdentifierPattern = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Weighting(enum.Enum):
    """How a component's weight is interpreted.

    Weight-based components carry a fraction of the final grade and the active
    set for an offering sums to a configured target. Point-based components
    carry a number of points with no sum constraint.
    """

    Weight = "weight"
    Points = "points"


class GradingComponent(WithTimestamps, BaseModel):
    component_id: ComponentID
    class_offering_id: ClassOfferingID

    name: str = p.Field(pattern=IdentifierPattern.pattern, max_length=50)
    label: str | None = None
    weighting: Weighting = Weighting.Weight
    weight: Weight
    max_score: Weight

    is_active: bool = True
    deleted_at: Timestamp | None = None
