"""In-process ledger store with per-document optimistic versions."""

import asyncio
import copy
from datetime import datetime
from typing import Any

from ..exceptions import TransactionConflictError
from ..models.credits import Collection, UsageStatus
from .base import Abort, Document, LedgerStore, LedgerTransaction, TransactionBody

Slot = tuple[Collection, str]


class _MemoryTransaction(LedgerTransaction):
  def __init__(self, store: "InMemoryLedgerStore"):
    self._store = store
    self.reads: dict[Slot, int] = {}
    self.writes: dict[Slot, Document] = {}

  async def get(self, collection: Collection, key: str) -> Document | None:
    slot = (Collection(collection), key)
    if slot in self.writes:
      return copy.deepcopy(self.writes[slot])
    version, doc = self._store._snapshot(slot)
    self.reads.setdefault(slot, version)
    # Suspend like a network round-trip; the snapshot may be stale on return
    await asyncio.sleep(0)
    return doc

  def put(self, collection: Collection, key: str, doc: Document) -> None:
    self.writes[(Collection(collection), key)] = copy.deepcopy(doc)


class InMemoryLedgerStore(LedgerStore):
  """
  Ledger store backed by dictionaries.

  Each document carries a version counter (0 means absent). Commits validate
  every version read, including reads of absent keys, under a lock, so an
  insert racing another insert of the same key is detected as a conflict.
  """

  def __init__(self, max_retries: int | None = None, retry_delay_ms: int | None = 0):
    super().__init__(max_retries=max_retries, retry_delay_ms=retry_delay_ms)
    self._data: dict[Collection, dict[str, tuple[int, Document]]] = {
      collection: {} for collection in Collection
    }
    self._lock = asyncio.Lock()
    self.commit_count = 0
    self.conflict_count = 0

  def _snapshot(self, slot: Slot) -> tuple[int, Document | None]:
    collection, key = slot
    entry = self._data[collection].get(key)
    if entry is None:
      return 0, None
    version, doc = entry
    return version, copy.deepcopy(doc)

  def _write(self, slot: Slot, doc: Document) -> None:
    collection, key = slot
    version, _ = self._data[collection].get(key, (0, None))
    self._data[collection][key] = (version + 1, copy.deepcopy(doc))

  async def _run_once(self, fn: TransactionBody) -> Any:
    tx = _MemoryTransaction(self)
    result = await fn(tx)
    if isinstance(result, Abort):
      return result

    async with self._lock:
      for slot, seen in tx.reads.items():
        current, _ = self._data[slot[0]].get(slot[1], (0, None))
        if current != seen:
          self.conflict_count += 1
          raise TransactionConflictError(attempts=1, collection=slot[0].value)
      for slot, doc in tx.writes.items():
        self._write(slot, doc)
      self.commit_count += 1
    return result

  async def get(self, collection: Collection, key: str) -> Document | None:
    await asyncio.sleep(0)
    return self._snapshot((Collection(collection), key))[1]

  async def query(self, collection: Collection, **filters: Any) -> list[Document]:
    await asyncio.sleep(0)
    return [
      copy.deepcopy(doc)
      for _, doc in self._data[Collection(collection)].values()
      if all(doc.get(field) == value for field, value in filters.items())
    ]

  async def put(self, collection: Collection, key: str, doc: Document) -> None:
    async with self._lock:
      self._write((Collection(collection), key), doc)

  async def expired_reservations(
    self, before: datetime, created_before: datetime, limit: int
  ) -> list[Document]:
    await asyncio.sleep(0)
    expired = []
    for _, doc in self._data[Collection.USAGE_EVENTS].values():
      if doc.get("status") != UsageStatus.PENDING.value:
        continue
      if doc.get("expires_at") is not None:
        expiry, cutoff = doc["expires_at"], before
      elif doc.get("created_at") is not None:
        expiry, cutoff = doc["created_at"], created_before
      else:
        continue
      if expiry <= cutoff:
        expired.append((expiry, doc))
    expired.sort(key=lambda item: item[0])
    return [copy.deepcopy(doc) for _, doc in expired[:limit]]
