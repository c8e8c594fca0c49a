"""Dagster test fixtures.

Provides a ledger resource backed by an in-memory store so ops can run
without a database.
"""

from typing import Any

import pytest
from dagster import build_op_context

from creditmeter.dagster.resources import LedgerStoreResource
from creditmeter.store.memory import InMemoryLedgerStore


@pytest.fixture
def memory_store():
  return InMemoryLedgerStore(retry_delay_ms=0)


@pytest.fixture
def mock_ledger_resource(memory_store, monkeypatch):
  """Ledger resource whose stores all resolve to ``memory_store``.

  Patched on the class because Dagster may re-instantiate the resource
  while initializing it for an op.
  """
  monkeypatch.setattr(LedgerStoreResource, "create_store", lambda self: memory_store)
  return LedgerStoreResource(database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
def op_context(mock_ledger_resource) -> Any:
  return build_op_context(resources={"ledger": mock_ledger_resource})
