from __future__ import annotations

import typing as t

import annotated_types as ant
import pydantic as p

from .base import BaseSettings


class WebSettings(BaseSettings):
    gradebook: GradebookWebSettings


class ServeSettings(BaseSettings):
    host: p.IPvAnyAddress
    port: t.Annotated[int, ant.Gt(0), ant.Le(65535)]


class AuthSettings(BaseSettings):
    """Bearer token settings; tokens are issued elsewhere, only decoded here."""

    jwt_algorithm: t.Literal["HS256"] = "HS256"
    access_token_expire_minutes: int = 30


class GradebookWebSettings(BaseSettings):
    backend: ServeSettings
    frontend: ServeSettings | None = None
    auth: AuthSettings = p.Field(default_factory=lambda: AuthSettings())
    api_prefix: str = "/api/grading"
