"""Persistence for imagewatch."""

from imagewatch.storage.base import Store, UnitOfWork
from imagewatch.storage.sql import SqlStore, SqlUnitOfWork

__all__ = ["SqlStore", "SqlUnitOfWork", "Store", "UnitOfWork"]
