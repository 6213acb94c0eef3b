from __future__ import annotations

import enum
import typing as t

from sqlalchemy.types import Enum as EnumType


class EnumValuesType(EnumType):
    """SQLAlchemy's built-in EnumType uses the enum member's name as the bind param, not the value, so we use this"""

    def __init__(self, enum_class: type[enum.Enum], **kwargs: t.Any):
        kwargs["values_callable"] = self._get_values
        kwargs.setdefault("native_enum", False)
        kwargs.setdefault("length", 32)
        super().__init__(enum_class, **kwargs)

    @staticmethod
    def _get_values(meta: type[enum.Enum]) -> list[str]:
        return [e.value for e in meta]
