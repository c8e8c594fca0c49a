"""
Idempotency key derivation for credit reservations.

A key identifies one logical operation attempt. It is a pure function of the
user, the operation kind and the caller-supplied attempt id, so a retried
request maps onto the reservation it already made instead of debiting again,
while a new attempt (new id) is always billed.
"""

import hashlib
import json
from typing import Any

from ...exceptions import InvalidOperationError
from ...models.credits import OperationKind

IDEMPOTENCY_KEY_PREFIX = "use"


def _canonical(value: Any) -> str:
  return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def generate_idempotency_key(
  user_id: str,
  operation_kind: OperationKind | str,
  request_id: str,
) -> str:
  """
  Derive the idempotency key for a reservation.

  Operation parameters are not part of the key: identical
  parameters do not make two attempts the same attempt.

  Raises:
      InvalidOperationError: ``request_id`` is missing or blank
  """
  if not isinstance(request_id, str) or not request_id.strip():
    raise InvalidOperationError(
      "An attempt id is required to reserve credits",
      param="request_id",
    )
  kind = operation_kind.value if isinstance(operation_kind, OperationKind) else str(
    operation_kind
  )
  payload = {"user_id": user_id, "operation_kind": kind, "request_id": request_id}

  digest = hashlib.sha256(_canonical(payload).encode("utf-8")).hexdigest()
  return f"{IDEMPOTENCY_KEY_PREFIX}_{digest[:40]}"
