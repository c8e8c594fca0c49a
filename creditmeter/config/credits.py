"""
Centralized credit pricing configuration.

CREDIT MODEL:
=============
Every billable AI operation has a base cost in whole credits. Some operations
scale with their parameters:

- Image generation: 3 credits per image (``image_count``)
- Narration: 1 credit per started block of 100 characters (``text_length``)
- Story, video render, polish and music: fixed cost

Costs are integers; there are no fractional credits. The pricing table is
keyed by the closed ``OperationKind`` enum and must cover every member.
"""

from dataclasses import dataclass
from enum import Enum

from ..exceptions import CreditErrorCode
from ..models.credits import OperationKind


class CostScaling(str, Enum):
  """How an operation's cost grows with its parameters."""

  FIXED = "fixed"  # base_cost
  PER_UNIT = "per_unit"  # base_cost * units
  PER_BLOCK = "per_block"  # base_cost * ceil(units / unit_size)


@dataclass(frozen=True)
class CostRule:
  """Pricing rule for one operation kind."""

  base_cost: int
  scaling: CostScaling = CostScaling.FIXED
  param: str | None = None
  unit_size: int = 1


class CreditConfig:
  """Centralized credit system configuration."""

  OPERATION_COSTS: dict[OperationKind, CostRule] = {
    OperationKind.STORY: CostRule(base_cost=2),
    OperationKind.IMAGE: CostRule(
      base_cost=3, scaling=CostScaling.PER_UNIT, param="image_count"
    ),
    OperationKind.NARRATION: CostRule(
      base_cost=1,
      scaling=CostScaling.PER_BLOCK,
      param="text_length",
      unit_size=100,
    ),
    OperationKind.VIDEO: CostRule(base_cost=5),
    OperationKind.POLISH: CostRule(base_cost=10),
    OperationKind.MUSIC: CostRule(base_cost=2),
  }

  # User-safe messages and the follow-up the client should offer
  ERROR_MESSAGES: dict[CreditErrorCode, tuple[str, str]] = {
    CreditErrorCode.AUTH_REQUIRED: (
      "Please sign in to continue.",
      "sign_in",
    ),
    CreditErrorCode.INSUFFICIENT_CREDITS: (
      "You don't have enough credits. Purchase more credits to continue.",
      "purchase_credits",
    ),
    CreditErrorCode.INVALID_OPERATION: (
      "This operation is not supported.",
      "contact_support",
    ),
    CreditErrorCode.INVALID_AMOUNT: (
      "Credit amount must be a positive whole number.",
      "contact_support",
    ),
  }
  GENERIC_ERROR = ("Something went wrong. Please try again.", "retry")

  @classmethod
  def get_cost_rule(cls, operation_kind: OperationKind) -> CostRule:
    return cls.OPERATION_COSTS[operation_kind]

  @classmethod
  def get_user_message(cls, error_code: CreditErrorCode) -> tuple[str, str]:
    """Return ``(message, action)`` for an error code."""
    return cls.ERROR_MESSAGES.get(error_code, cls.GENERIC_ERROR)


_unpriced = set(OperationKind) - set(CreditConfig.OPERATION_COSTS)
if _unpriced:
  raise RuntimeError(
    f"Missing pricing for operation kinds: {sorted(k.value for k in _unpriced)}"
  )
