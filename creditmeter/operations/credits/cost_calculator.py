"""
Credit cost calculation for billable operations.

Costs are a pure function of the operation kind and its parameters and never
consult the ledger. Pricing rules live in ``CreditConfig.OPERATION_COSTS``.
"""

import math
from typing import Any, Mapping

from ...config.credits import CostScaling, CreditConfig
from ...exceptions import InvalidOperationError
from ...models.credits import OperationKind


def parse_operation_kind(operation_kind: OperationKind | str) -> OperationKind:
  """Coerce a raw string to ``OperationKind``, rejecting unknown kinds."""
  if isinstance(operation_kind, OperationKind):
    return operation_kind
  try:
    return OperationKind(operation_kind)
  except ValueError:
    raise InvalidOperationError(
      f"Unknown operation kind: {operation_kind!r}",
      operation_kind=str(operation_kind)[:100],
    ) from None


def _scaling_units(
  kind: OperationKind, param: str, params: Mapping[str, Any]
) -> int:
  if param not in params or params[param] is None:
    return 1
  value = params[param]
  # bool is an int subclass; True is not a count
  if isinstance(value, bool) or not isinstance(value, int) or value < 0:
    raise InvalidOperationError(
      f"Parameter '{param}' for {kind.value} must be a non-negative integer",
      operation_kind=kind.value,
      param=param,
    )
  return value


def get_operation_cost(
  operation_kind: OperationKind | str,
  params: Mapping[str, Any] | None = None,
) -> int:
  """
  Calculate the credit cost of an operation.

  Args:
      operation_kind: Operation being billed
      params: Operation parameters such as ``image_count`` or ``text_length``.
          A missing scaling parameter counts as one unit.

  Returns:
      Non-negative integer credit cost

  Raises:
      InvalidOperationError: Unknown kind or malformed scaling parameter
  """
  kind = parse_operation_kind(operation_kind)
  rule = CreditConfig.get_cost_rule(kind)
  params = params or {}

  if rule.scaling is CostScaling.FIXED:
    return rule.base_cost

  units = _scaling_units(kind, rule.param, params)
  if rule.scaling is CostScaling.PER_UNIT:
    return rule.base_cost * units
  return rule.base_cost * math.ceil(units / rule.unit_size)


def get_cost_table() -> list[dict[str, Any]]:
  """Pricing table for display, in enum order."""
  table = []
  for kind in OperationKind:
    rule = CreditConfig.get_cost_rule(kind)
    table.append(
      {
        "operation_kind": kind.value,
        "base_cost": rule.base_cost,
        "scaling": rule.scaling.value,
        "param": rule.param,
        "unit_size": rule.unit_size,
      }
    )
  return table
