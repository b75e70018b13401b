# Overview: Repository selection; the rest of the app only sees SalesRepository.

from __future__ import annotations

from flask import Flask, current_app

from .base import DuplicateTransactionError, PersistenceError, RejectedRowError, SalesRepository
from .memory import MemoryRepository
from .sql import SqlRepository

EXTENSION_KEY = "sales_repository"


def build_repository(app: Flask) -> SalesRepository:
    backend = app.config.get("LEDGER_BACKEND", "sql")
    if backend == "memory":
        return MemoryRepository()
    if backend == "sql":
        return SqlRepository(app.config["SQLALCHEMY_DATABASE_URI"])
    raise ValueError(f"Unsupported LEDGER_BACKEND: {backend}")


def init_app(app: Flask) -> SalesRepository:
    repository = build_repository(app)
    app.extensions[EXTENSION_KEY] = repository
    return repository


def get_repository() -> SalesRepository:
    """Repository bound to the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    "SalesRepository", "MemoryRepository", "SqlRepository",
    "DuplicateTransactionError", "PersistenceError", "RejectedRowError",
    "build_repository", "init_app", "get_repository",
]
