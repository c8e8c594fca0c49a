"""Tests for the in-memory ledger store."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from creditmeter.exceptions import CreditErrorCode, TransactionConflictError
from creditmeter.models.credits import Collection
from creditmeter.store.base import Abort
from creditmeter.store.memory import InMemoryLedgerStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestBasicOperations:
  @pytest.mark.unit
  async def test_put_get_round_trip(self, store):
    await store.put(Collection.USERS, "u1", {"user_id": "u1", "credit_balance": 3})
    assert await store.get(Collection.USERS, "u1") == {
      "user_id": "u1",
      "credit_balance": 3,
    }
    assert await store.get(Collection.USERS, "missing") is None

  @pytest.mark.unit
  async def test_reads_return_copies(self, store):
    await store.put(Collection.USERS, "u1", {"user_id": "u1", "tags": []})
    doc = await store.get(Collection.USERS, "u1")
    doc["tags"].append("mutated")
    assert (await store.get(Collection.USERS, "u1"))["tags"] == []

  @pytest.mark.unit
  async def test_query_matches_every_filter(self, store):
    await store.put(Collection.USAGE_EVENTS, "a", {"user_id": "u1", "status": "pending"})
    await store.put(Collection.USAGE_EVENTS, "b", {"user_id": "u1", "status": "completed"})
    await store.put(Collection.USAGE_EVENTS, "c", {"user_id": "u2", "status": "pending"})

    docs = await store.query(Collection.USAGE_EVENTS, user_id="u1", status="pending")
    assert docs == [{"user_id": "u1", "status": "pending"}]


class TestTransactions:
  @pytest.mark.unit
  async def test_commit_applies_buffered_writes(self, store):
    async def body(tx):
      tx.put(Collection.USERS, "u1", {"user_id": "u1", "credit_balance": 1})
      # Reads see the transaction's own writes
      return await tx.get(Collection.USERS, "u1")

    result = await store.transaction(body)
    assert result["credit_balance"] == 1
    assert (await store.get(Collection.USERS, "u1"))["credit_balance"] == 1
    assert store.commit_count == 1

  @pytest.mark.unit
  async def test_abort_discards_writes(self, store):
    async def body(tx):
      tx.put(Collection.USERS, "u1", {"user_id": "u1"})
      return Abort(CreditErrorCode.INSUFFICIENT_CREDITS, {"required": 3})

    result = await store.transaction(body)
    assert result == Abort(CreditErrorCode.INSUFFICIENT_CREDITS, {"required": 3})
    assert await store.get(Collection.USERS, "u1") is None
    assert store.commit_count == 0

  @pytest.mark.unit
  async def test_concurrent_increments_do_not_lose_updates(self):
    store = InMemoryLedgerStore(max_retries=50, retry_delay_ms=0)
    await store.put(Collection.USERS, "u1", {"user_id": "u1", "credit_balance": 0})

    async def increment(tx):
      doc = await tx.get(Collection.USERS, "u1")
      doc["credit_balance"] += 1
      tx.put(Collection.USERS, "u1", doc)

    await asyncio.gather(*(store.transaction(increment) for _ in range(10)))

    assert (await store.get(Collection.USERS, "u1"))["credit_balance"] == 10
    assert store.conflict_count > 0

  @pytest.mark.unit
  async def test_insert_race_on_absent_key_is_a_conflict(self, store):
    attempts = []

    async def create(tx):
      attempts.append(1)
      existing = await tx.get(Collection.USAGE_EVENTS, "k")
      if existing is not None:
        return "replayed"
      if len(attempts) == 1:
        # Another writer inserts the same key before this commit
        await store.put(Collection.USAGE_EVENTS, "k", {"owner": "other"})
      tx.put(Collection.USAGE_EVENTS, "k", {"owner": "me"})
      return "created"

    assert await store.transaction(create) == "replayed"
    assert (await store.get(Collection.USAGE_EVENTS, "k")) == {"owner": "other"}
    assert len(attempts) == 2

  @pytest.mark.unit
  async def test_exhausted_retries_raise_conflict(self):
    store = InMemoryLedgerStore(max_retries=3, retry_delay_ms=0)
    await store.put(Collection.USERS, "u1", {"n": 0})
    calls = []

    async def always_stale(tx):
      calls.append(1)
      doc = await tx.get(Collection.USERS, "u1")
      await store.put(Collection.USERS, "u1", {"n": doc["n"] + 100})
      tx.put(Collection.USERS, "u1", {"n": doc["n"] + 1})

    with pytest.raises(TransactionConflictError) as exc_info:
      await store.transaction(always_stale)

    assert exc_info.value.details["attempts"] == 3
    assert len(calls) == 3


class TestExpiredReservations:
  @pytest.mark.unit
  async def test_pending_events_past_expiry(self, store):
    minute = timedelta(minutes=1)
    docs = {
      "expired": {"status": "pending", "expires_at": NOW - minute},
      "fresh": {"status": "pending", "expires_at": NOW + minute},
      "done": {"status": "completed", "expires_at": NOW - minute},
      "legacy": {"status": "pending", "created_at": NOW - 90 * minute},
      "recent": {"status": "pending", "created_at": NOW - 30 * minute},
      "undated": {"status": "pending"},
    }
    for key, doc in docs.items():
      await store.put(Collection.USAGE_EVENTS, key, {"idempotency_key": key, **doc})

    expired = await store.expired_reservations(
      before=NOW, created_before=NOW - 60 * minute, limit=10
    )

    assert [doc["idempotency_key"] for doc in expired] == ["legacy", "expired"]

  @pytest.mark.unit
  async def test_limit(self, store):
    for minutes in (1, 2, 3):
      await store.put(
        Collection.USAGE_EVENTS,
        f"k{minutes}",
        {
          "idempotency_key": f"k{minutes}",
          "status": "pending",
          "expires_at": NOW - timedelta(minutes=minutes),
        },
      )

    expired = await store.expired_reservations(before=NOW, created_before=NOW, limit=2)

    assert [doc["idempotency_key"] for doc in expired] == ["k3", "k2"]
