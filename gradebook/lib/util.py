import datetime
import typing as t
from collections.abc import Mapping

KT = t.TypeVar("KT")
VT = t.TypeVar("VT")
RecursiveMapping = VT | Mapping[KT, "RecursiveMapping[KT, VT]"]


def deep_update(
    d1: dict[KT, RecursiveMapping[KT, VT]], d2: Mapping[KT, RecursiveMapping[KT, VT]]
) -> dict[KT, RecursiveMapping[KT, VT]]:
    result = d1.copy()
    for k, v in d2.items():
        if isinstance(v, Mapping) and k in result and isinstance(result[k], Mapping):
            result[k] = deep_update(result[k], v)  # type: ignore
        else:
            result[k] = v
    return result


@t.overload
def as_utc(dt: datetime.datetime) -> datetime.datetime: ...
@t.overload
def as_utc(dt: None) -> None: ...
def as_utc(dt: datetime.datetime | None) -> datetime.datetime | None:
    """Attach UTC to naive datetimes, as returned by drivers without timezone support (sqlite)."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=datetime.UTC)
