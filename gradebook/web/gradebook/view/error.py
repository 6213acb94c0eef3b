"""Error bodies returned by the grading API."""

from __future__ import annotations

import typing as t

import pydantic as p


class FieldErrorDetail(p.BaseModel):
    field: str | None = None
    message: str
    code: str


class ErrorResponse(p.BaseModel):
    error: str
    message: str
    details: list[FieldErrorDetail] | None = None
    context: dict[str, t.Any] | None = None
