"""Shared fixtures for the credit metering test suite."""

import os

# Must be set before creditmeter.config.env is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402

from creditmeter.middleware.auth import Identity, StaticIdentityProvider  # noqa: E402
from creditmeter.models.credits import Collection, UserAccount  # noqa: E402
from creditmeter.store.base import LedgerStore  # noqa: E402
from creditmeter.store.memory import InMemoryLedgerStore  # noqa: E402
from creditmeter.store.sql import SQLAlchemyLedgerStore  # noqa: E402

TEST_USER_ID = "user_01HZX3K4M5N6P7Q8R9S0T1V2W3"
OTHER_USER_ID = "user_01HZX3K4M5N6P7Q8R9S0T1V2W4"
ADMIN_USER_ID = "user_01HZX3K4M5N6P7Q8R9S0T1V2W5"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


async def seed_account(
  store: LedgerStore,
  user_id: str = TEST_USER_ID,
  balance: int = 10,
  is_privileged: bool = False,
) -> UserAccount:
  """Write a user account document directly, bypassing the grant paths."""
  account = UserAccount(
    user_id=user_id,
    credit_balance=balance,
    is_privileged=is_privileged,
    last_updated=FIXED_NOW,
  )
  await store.put(Collection.USERS, user_id, account.to_doc())
  return account


async def get_balance(store: LedgerStore, user_id: str = TEST_USER_ID) -> int:
  doc = await store.get(Collection.USERS, user_id)
  return doc["credit_balance"]


@pytest.fixture
def store():
  """In-memory ledger store without retry delays."""
  return InMemoryLedgerStore(retry_delay_ms=0)


@pytest.fixture
async def sql_store(tmp_path):
  """SQL ledger store on a throwaway SQLite file."""
  ledger = SQLAlchemyLedgerStore.from_url(
    f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", retry_delay_ms=0
  )
  await ledger.create_tables()
  yield ledger
  await ledger.close()


@pytest.fixture
def identity():
  return Identity(user_id=TEST_USER_ID)


@pytest.fixture
def identity_provider(identity):
  return StaticIdentityProvider(identity)


@pytest.fixture
def clock():
  return lambda: FIXED_NOW
