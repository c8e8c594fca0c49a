"""
SQLAlchemy-backed ledger store.

Transactions run in one ``AsyncSession``. Rows read through the transaction
are kept in the session's identity map; a later ``put`` mutates the loaded row
so the UPDATE is guarded by its ``version`` column. Writes to keys that were
not read are INSERTs, and a duplicate primary key surfaces as
``IntegrityError``. Both outcomes are reported as conflicts and the body is
re-run by ``LedgerStore.transaction``.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..database import create_engine, create_session_factory, init_models
from ..exceptions import StoreUnavailableError, TransactionConflictError
from ..logger import get_logger
from ..models.credits import Collection, UsageStatus
from ..models.ledger import (
  CreditTransactionModel,
  LedgerRowMixin,
  UsageEventModel,
  UserAccountModel,
)
from .base import Abort, Document, LedgerStore, LedgerTransaction, TransactionBody

logger = get_logger(__name__)

MODELS: dict[Collection, type[LedgerRowMixin]] = {
  Collection.USERS: UserAccountModel,
  Collection.USAGE_EVENTS: UsageEventModel,
  Collection.CREDIT_TRANSACTIONS: CreditTransactionModel,
}


class _SQLTransaction(LedgerTransaction):
  def __init__(self, session: AsyncSession):
    self._session = session
    self._rows: dict[tuple[Collection, str], LedgerRowMixin] = {}

  async def get(self, collection: Collection, key: str) -> Document | None:
    collection = Collection(collection)
    row = await self._session.get(MODELS[collection], key)
    if row is None:
      return None
    self._rows[(collection, key)] = row
    return row.to_doc()

  def put(self, collection: Collection, key: str, doc: Document) -> None:
    collection = Collection(collection)
    row = self._rows.get((collection, key))
    if row is None:
      row = MODELS[collection].from_doc(doc)
      self._session.add(row)
      self._rows[(collection, key)] = row
    else:
      row.apply_doc(doc)


class SQLAlchemyLedgerStore(LedgerStore):
  """Ledger store over the ``users``, ``usage_events`` and ``credit_transactions`` tables."""

  def __init__(
    self,
    engine: AsyncEngine | None = None,
    max_retries: int | None = None,
    retry_delay_ms: int | None = None,
  ):
    super().__init__(max_retries=max_retries, retry_delay_ms=retry_delay_ms)
    self.engine = engine or create_engine()
    self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(
      self.engine
    )

  @classmethod
  def from_url(cls, database_url: str, **kwargs: Any) -> "SQLAlchemyLedgerStore":
    return cls(engine=create_engine(database_url), **kwargs)

  async def create_tables(self) -> None:
    try:
      await init_models(self.engine)
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def _run_once(self, fn: TransactionBody) -> Any:
    try:
      async with self._session_factory() as session:
        tx = _SQLTransaction(session)
        result = await fn(tx)
        if isinstance(result, Abort):
          await session.rollback()
          return result
        try:
          await session.commit()
        except (StaleDataError, IntegrityError) as e:
          await session.rollback()
          raise TransactionConflictError(attempts=1) from e
        return result
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def get(self, collection: Collection, key: str) -> Document | None:
    try:
      async with self._session_factory() as session:
        row = await session.get(MODELS[Collection(collection)], key)
        return row.to_doc() if row is not None else None
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def query(self, collection: Collection, **filters: Any) -> list[Document]:
    model = MODELS[Collection(collection)]
    stmt = select(model)
    for field, value in filters.items():
      stmt = stmt.where(model.attribute_for(field) == value)
    try:
      async with self._session_factory() as session:
        result = await session.execute(stmt)
        return [row.to_doc() for row in result.scalars().all()]
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def put(self, collection: Collection, key: str, doc: Document) -> None:
    model = MODELS[Collection(collection)]
    try:
      async with self._session_factory() as session:
        row = await session.get(model, key)
        if row is None:
          session.add(model.from_doc(doc))
        else:
          row.apply_doc(doc)
        await session.commit()
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def expired_reservations(
    self, before: datetime, created_before: datetime, limit: int
  ) -> list[Document]:
    stmt = (
      select(UsageEventModel)
      .where(UsageEventModel.status == UsageStatus.PENDING.value)
      .where(
        or_(
          UsageEventModel.expires_at <= before,
          and_(
            UsageEventModel.expires_at.is_(None),
            UsageEventModel.created_at <= created_before,
          ),
        )
      )
      .order_by(UsageEventModel.expires_at, UsageEventModel.created_at)
      .limit(limit)
    )
    try:
      async with self._session_factory() as session:
        result = await session.execute(stmt)
        return [row.to_doc() for row in result.scalars().all()]
    except (OperationalError, InterfaceError) as e:
      raise StoreUnavailableError(str(e)) from e

  async def close(self) -> None:
    await self.engine.dispose()
