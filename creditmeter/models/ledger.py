"""
SQL tables backing the ledger store.

Each table mirrors one store collection. Every row carries a ``version``
column wired into SQLAlchemy's ``version_id_col`` so an UPDATE issued from a
stale read matches zero rows and raises ``StaleDataError`` at flush, which the
SQL store treats as an optimistic-transaction conflict.
"""

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
  Boolean,
  CheckConstraint,
  Column,
  DateTime,
  Index,
  Integer,
  String,
  Text,
)

from ..database import Base


def _aware(value: Any) -> Any:
  # SQLite drops tzinfo on round-trip
  if isinstance(value, datetime) and value.tzinfo is None:
    return value.replace(tzinfo=UTC)
  return value


class LedgerRowMixin:
  """Converts between rows and store documents."""

  # Document keys, in order
  __doc_fields__: tuple[str, ...] = ()
  # Document key -> attribute holding the JSON-encoded value
  __json_fields__: dict[str, str] = {}

  @classmethod
  def attribute_for(cls, doc_field: str) -> Any:
    if doc_field in cls.__json_fields__ or doc_field not in cls.__doc_fields__:
      raise ValueError(f"Cannot filter {cls.__name__} on '{doc_field}'")
    return getattr(cls, doc_field)

  def to_doc(self) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for name in self.__doc_fields__:
      if name in self.__json_fields__:
        raw = getattr(self, self.__json_fields__[name])
        doc[name] = json.loads(raw) if raw else {}
      else:
        doc[name] = _aware(getattr(self, name))
    return doc

  def apply_doc(self, doc: dict[str, Any]) -> None:
    for name in self.__doc_fields__:
      if name in self.__json_fields__:
        value = doc.get(name)
        setattr(
          self,
          self.__json_fields__[name],
          json.dumps(value, default=str) if value else None,
        )
      elif name in doc:
        setattr(self, name, doc[name])

  @classmethod
  def from_doc(cls, doc: dict[str, Any]):
    row = cls()
    row.apply_doc(doc)
    return row


class UserAccountModel(LedgerRowMixin, Base):
  __tablename__ = "users"
  __doc_fields__ = ("user_id", "credit_balance", "is_privileged", "last_updated")

  user_id = Column(String(128), primary_key=True)
  credit_balance = Column(Integer, nullable=False, default=0)
  is_privileged = Column(Boolean, nullable=False, default=False)
  last_updated = Column(DateTime(timezone=True), nullable=True)
  version = Column(Integer, nullable=False)

  __mapper_args__ = {"version_id_col": version}
  __table_args__ = (
    CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_non_negative"),
  )

  def __repr__(self):
    return f"<UserAccountModel(user_id={self.user_id}, balance={self.credit_balance})>"


class UsageEventModel(LedgerRowMixin, Base):
  __tablename__ = "usage_events"
  __doc_fields__ = (
    "idempotency_key",
    "user_id",
    "operation_kind",
    "credits_reserved",
    "status",
    "created_at",
    "completed_at",
    "expires_at",
    "charged",
    "refunded",
    "refund_reason",
    "refunded_at",
    "error",
    "metadata",
  )
  __json_fields__ = {"metadata": "event_metadata"}

  idempotency_key = Column(String(255), primary_key=True)
  user_id = Column(String(128), nullable=False)
  operation_kind = Column(String(32), nullable=False)
  credits_reserved = Column(Integer, nullable=False)
  status = Column(String(16), nullable=False, default="pending")
  created_at = Column(DateTime(timezone=True), nullable=True)
  completed_at = Column(DateTime(timezone=True), nullable=True)
  expires_at = Column(DateTime(timezone=True), nullable=True)
  charged = Column(Boolean, nullable=False, default=True)
  refunded = Column(Boolean, nullable=False, default=False)
  refund_reason = Column(Text, nullable=True)
  refunded_at = Column(DateTime(timezone=True), nullable=True)
  error = Column(Text, nullable=True)
  event_metadata = Column("metadata", Text, nullable=True)
  version = Column(Integer, nullable=False)

  __mapper_args__ = {"version_id_col": version}
  __table_args__ = (
    Index("idx_usage_events_user_status", user_id, status),
    Index("idx_usage_events_status_expires", status, expires_at),
  )

  def __repr__(self):
    return f"<UsageEventModel(key={self.idempotency_key}, status={self.status})>"


class CreditTransactionModel(LedgerRowMixin, Base):
  __tablename__ = "credit_transactions"
  __doc_fields__ = (
    "id",
    "user_id",
    "type",
    "amount",
    "description",
    "timestamp",
    "idempotency_key",
    "metadata",
  )
  __json_fields__ = {"metadata": "transaction_metadata"}

  id = Column(String(64), primary_key=True)
  user_id = Column(String(128), nullable=False)
  type = Column(String(16), nullable=False)
  amount = Column(Integer, nullable=False)  # Positive for additions, negative for usage
  description = Column(String(500), nullable=False)
  timestamp = Column(DateTime(timezone=True), nullable=False)
  idempotency_key = Column(String(255), nullable=True)
  transaction_metadata = Column("metadata", Text, nullable=True)
  version = Column(Integer, nullable=False)

  __mapper_args__ = {"version_id_col": version}
  __table_args__ = (
    Index("idx_credit_transactions_user_id", user_id),
    Index("idx_credit_transactions_timestamp", timestamp),
    Index("idx_credit_transactions_idempotency", idempotency_key),
  )

  def __repr__(self):
    return f"<CreditTransactionModel(id={self.id}, type={self.type}, amount={self.amount})>"
