"""Persistence backends for approval requests."""

from .base import RequestFilter, RequestStore
from .memory import InMemoryRequestStore
from .sql import SqlRequestStore

__all__ = [
    "RequestFilter",
    "RequestStore",
    "InMemoryRequestStore",
    "SqlRequestStore",
]
