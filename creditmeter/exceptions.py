"""
Custom Exception Types for the credit metering service.

Each exception carries a machine-readable ``error_code`` from
``CreditErrorCode`` so services can convert failures into result models
and the HTTP layer can map them to status codes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class CreditErrorCode(str, Enum):
  """Error taxonomy shared by every credit operation."""

  AUTH_REQUIRED = "AUTH_REQUIRED"
  INVALID_OPERATION = "INVALID_OPERATION"
  INVALID_AMOUNT = "INVALID_AMOUNT"
  INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
  NOT_FOUND = "NOT_FOUND"
  ALREADY_COMPLETED = "ALREADY_COMPLETED"
  TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"
  STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class CreditMeterError(Exception):
  """
  Base exception for all credit metering errors.

  Attributes:
      message: Human-readable error message
      error_code: Application-specific error code for categorization
      details: Additional error context and metadata
      timestamp: When the error occurred
  """

  def __init__(
    self,
    message: str,
    error_code: CreditErrorCode = CreditErrorCode.STORE_UNAVAILABLE,
    details: Optional[Dict[str, Any]] = None,
  ):
    super().__init__(message)
    self.message = message
    self.error_code = error_code
    self.details = details or {}
    self.timestamp = datetime.now(timezone.utc).isoformat()

  def to_dict(self) -> Dict[str, Any]:
    """Convert exception to dictionary for API responses."""
    return {
      "error": self.error_code.value,
      "message": self.message,
      "details": self.details,
      "timestamp": self.timestamp,
    }


# ============================================================================
# Validation Exceptions
# ============================================================================


class AuthRequiredError(CreditMeterError):
  """Raised when an operation needs an authenticated identity and has none."""

  def __init__(self, operation: Optional[str] = None):
    super().__init__(
      "Authentication required",
      error_code=CreditErrorCode.AUTH_REQUIRED,
      details={"operation": operation} if operation else {},
    )


class InvalidOperationError(CreditMeterError):
  """Raised for unknown operation kinds or malformed cost parameters."""

  def __init__(self, message: str, **kwargs):
    super().__init__(
      message,
      error_code=CreditErrorCode.INVALID_OPERATION,
      details=kwargs,
    )


class InvalidAmountError(CreditMeterError):
  """Raised when a credit grant amount is not a positive integer."""

  def __init__(self, amount: Any):
    super().__init__(
      f"Credit amount must be a positive integer, got {amount!r}",
      error_code=CreditErrorCode.INVALID_AMOUNT,
      details={"amount": str(amount)[:100]},
    )


# ============================================================================
# Store Exceptions
# ============================================================================


class TransactionConflictError(CreditMeterError):
  """Raised when an optimistic transaction keeps losing to concurrent writers."""

  def __init__(self, attempts: int, collection: Optional[str] = None):
    details: Dict[str, Any] = {"attempts": attempts}
    if collection:
      details["collection"] = collection
    super().__init__(
      f"Transaction conflict persisted after {attempts} attempt(s)",
      error_code=CreditErrorCode.TRANSACTION_CONFLICT,
      details=details,
    )


class StoreUnavailableError(CreditMeterError):
  """Raised when the backing ledger store cannot be reached."""

  def __init__(self, reason: str):
    super().__init__(
      f"Ledger store unavailable: {reason}",
      error_code=CreditErrorCode.STORE_UNAVAILABLE,
      details={"reason": reason[:500]},
    )
