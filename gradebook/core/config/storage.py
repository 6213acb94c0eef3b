from __future__ import annotations

import typing as t

import pydantic as p

from .base import BaseSettings


class StorageSettings(BaseSettings):
    persistent: PersistentSettings


class PersistentSettings(BaseSettings):
    database: DatabaseSettings


class DatabaseSettings(BaseSettings):
    """Where the relational store lives.

    PostgreSQL is the deployed store. SQLite is accepted for tests and local
    experiments; ``database: ":memory:"`` gives a private in-process database.
    """

    driver: t.Literal["postgresql+psycopg", "sqlite"] = "postgresql+psycopg"
    host: p.IPvAnyAddress | str | None = None
    port: int | None = 5432
    database: str
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.driver == "sqlite"
