"""Credit reservation and accounting operations."""

from .balance_service import CreditBalanceService
from .cost_calculator import get_cost_table, get_operation_cost, parse_operation_kind
from .grant_service import CreditGrantService
from .idempotency import generate_idempotency_key
from .reconciliation import ReconciliationSummary, ReservationReconciler
from .reservation_service import CreditReservationService

__all__ = [
  "CreditBalanceService",
  "CreditGrantService",
  "CreditReservationService",
  "ReconciliationSummary",
  "ReservationReconciler",
  "generate_idempotency_key",
  "get_cost_table",
  "get_operation_cost",
  "parse_operation_kind",
]
