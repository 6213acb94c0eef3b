__all__ = [
    "DebugSession",
    "EnumValuesType",
]

from .enum import EnumValuesType
from .session import DebugSession
