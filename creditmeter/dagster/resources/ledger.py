"""Ledger store resource for Dagster.

Jobs run their async work on a fresh event loop per op, so the resource hands
out a new store for each run instead of holding an engine across loops.
"""

from dagster import ConfigurableResource

from creditmeter.config import env
from creditmeter.store.base import LedgerStore
from creditmeter.store.sql import SQLAlchemyLedgerStore


class LedgerStoreResource(ConfigurableResource):
  """SQL ledger store resource for Dagster operations."""

  database_url: str = ""

  def create_store(self) -> LedgerStore:
    """Build a store bound to ``database_url`` (or ``DATABASE_URL``).

    The caller owns the store and must ``await store.close()``.
    """
    return SQLAlchemyLedgerStore.from_url(self.database_url or env.DATABASE_URL)
