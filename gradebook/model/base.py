import datetime
import decimal

import typing as t

import annotated_types as ant
import pydantic as p
from pydantic.main import IncEx

from gradebook.lib.util import as_utc

# scores and weights are carried as Decimal end to end; floats never enter grade arithmetic
Score = t.Annotated[decimal.Decimal, ant.Ge(0)]
Weight = t.Annotated[decimal.Decimal, ant.Gt(0)]
# naive values (sqlite) are taken to be UTC
Timestamp = t.Annotated[datetime.datetime, p.AfterValidator(as_utc)]


class BaseModel(p.BaseModel):
    def model_dump(
        self,
        *,
        mode: t.Literal["json", "python"] | str = "python",
        include: IncEx | None = None,
        exclude: IncEx | None = None,
        context: t.Any | None = None,
        by_alias: bool = True,
        exclude_unset: bool = False,
        exclude_defaults: bool = False,
        exclude_none: bool = False,
        round_trip: bool = False,
        warnings: bool | t.Literal["none", "warn", "error"] = True,
        serialize_as_any: bool = False,
    ) -> dict[str, t.Any]:
        # invert default by_alias to True
        return super().model_dump(
            mode=mode,
            include=include,
            exclude=exclude,
            context=context,
            by_alias=by_alias,
            exclude_unset=exclude_unset,
            exclude_defaults=exclude_defaults,
            exclude_none=exclude_none,
            round_trip=round_trip,
            warnings=warnings,
            serialize_as_any=serialize_as_any,
        )


class WithCtime(BaseModel):
    create_time: Timestamp


class WithMtime(BaseModel):
    update_time: Timestamp


class WithTimestamps(WithCtime, WithMtime): ...
