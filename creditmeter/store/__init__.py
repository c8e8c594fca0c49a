"""Ledger store adapters."""

from .base import Abort, Document, LedgerStore, LedgerTransaction
from .memory import InMemoryLedgerStore
from .sql import SQLAlchemyLedgerStore

__all__ = [
  "Abort",
  "Document",
  "InMemoryLedgerStore",
  "LedgerStore",
  "LedgerTransaction",
  "SQLAlchemyLedgerStore",
]
