"""Tests for account provisioning, bonus and purchase grants."""

import asyncio
from datetime import timedelta

import pytest

from creditmeter.config import env
from creditmeter.exceptions import CreditErrorCode, InvalidAmountError
from creditmeter.models.credits import Collection, CreditTransactionType, OperationKind
from creditmeter.operations.credits.grant_service import (
  CreditGrantService,
  purchase_transaction_id,
)
from creditmeter.operations.credits.reservation_service import CreditReservationService
from tests.conftest import FIXED_NOW, TEST_USER_ID, get_balance, seed_account


@pytest.fixture
def grants(store, identity_provider, clock):
  return CreditGrantService(store, identity_provider, clock=clock)


async def _transactions(store, user_id=TEST_USER_ID):
  return await store.query(Collection.CREDIT_TRANSACTIONS, user_id=user_id)


class TestEnsureAccount:
  @pytest.mark.unit
  async def test_new_account_gets_signup_bonus(self, store, grants):
    account = await grants.ensure_account(TEST_USER_ID)

    assert account.credit_balance == env.SIGNUP_BONUS_CREDITS
    [txn] = await _transactions(store)
    assert txn["type"] == CreditTransactionType.BONUS.value
    assert txn["amount"] == env.SIGNUP_BONUS_CREDITS

  @pytest.mark.unit
  async def test_existing_account_is_untouched(self, store, grants):
    await seed_account(store, balance=3)

    account = await grants.ensure_account(TEST_USER_ID, initial_credits=100)

    assert account.credit_balance == 3
    assert await _transactions(store) == []

  @pytest.mark.unit
  async def test_zero_initial_credits_writes_no_audit_row(self, store, grants):
    account = await grants.ensure_account(TEST_USER_ID, is_privileged=True, initial_credits=0)

    assert account.is_privileged
    assert account.credit_balance == 0
    assert await _transactions(store) == []

  @pytest.mark.unit
  async def test_negative_initial_credits_rejected(self, grants):
    with pytest.raises(InvalidAmountError):
      await grants.ensure_account(TEST_USER_ID, initial_credits=-1)


class TestAddBonusCredits:
  @pytest.mark.unit
  async def test_bonus_increments_balance_and_audits(self, store, grants):
    await seed_account(store, balance=2)

    result = await grants.add_bonus_credits(
      TEST_USER_ID, 25, "Referral reward", metadata={"referrer": "u9"}
    )

    assert result.success
    assert await get_balance(store) == 27
    [txn] = await _transactions(store)
    assert txn["type"] == "bonus"
    assert txn["amount"] == 25
    assert txn["description"] == "Referral reward"
    assert txn["metadata"] == {"referrer": "u9"}
    assert txn["timestamp"] == FIXED_NOW

  @pytest.mark.unit
  @pytest.mark.parametrize("amount", [0, -5, 2.5, True, "10"])
  async def test_invalid_amounts(self, store, grants, amount):
    await seed_account(store, balance=2)

    result = await grants.add_bonus_credits(TEST_USER_ID, amount, "bad")

    assert result.error is CreditErrorCode.INVALID_AMOUNT
    assert await get_balance(store) == 2

  @pytest.mark.unit
  async def test_missing_account(self, grants):
    result = await grants.add_bonus_credits(TEST_USER_ID, 5, "promo")
    assert result.error is CreditErrorCode.NOT_FOUND

  @pytest.mark.unit
  async def test_concurrent_bonus_and_reserve_keep_both_updates(
    self, store, grants, identity_provider
  ):
    await seed_account(store, balance=10)
    reservations = CreditReservationService(store, identity_provider)

    await asyncio.gather(
      grants.add_bonus_credits(TEST_USER_ID, 5, "promo"),
      reservations.reserve_credits(OperationKind.VIDEO, request_id="req-1"),
    )

    assert await get_balance(store) == 10


class TestAddPurchasedCredits:
  @pytest.mark.unit
  async def test_purchase_credits_balance(self, store, grants):
    await seed_account(store, balance=0)

    result = await grants.add_purchased_credits(TEST_USER_ID, 100, "pi_123")

    assert result.success
    assert await get_balance(store) == 100
    [txn] = await _transactions(store)
    assert txn["id"] == purchase_transaction_id("pi_123")
    assert txn["type"] == "purchase"
    assert txn["metadata"]["payment_reference"] == "pi_123"

  @pytest.mark.unit
  async def test_repeated_confirmation_credits_once(self, store, grants):
    await seed_account(store, balance=0)

    await grants.add_purchased_credits(TEST_USER_ID, 100, "pi_123")
    again = await grants.add_purchased_credits(TEST_USER_ID, 100, "pi_123")

    assert again.success
    assert await get_balance(store) == 100
    assert len(await _transactions(store)) == 1

  @pytest.mark.unit
  async def test_concurrent_confirmations_credit_once(self, store, grants):
    await seed_account(store, balance=0)

    await asyncio.gather(
      *(grants.add_purchased_credits(TEST_USER_ID, 50, "pi_dup") for _ in range(3))
    )

    assert await get_balance(store) == 50

  @pytest.mark.unit
  async def test_payment_reference_required(self, store, grants):
    await seed_account(store, balance=0)
    result = await grants.add_purchased_credits(TEST_USER_ID, 10, "")
    assert result.error is CreditErrorCode.INVALID_OPERATION


class TestCreditHistory:
  @pytest.mark.unit
  async def test_history_is_newest_first_and_limited(self, store, identity_provider):
    await seed_account(store, balance=0)
    times = iter(FIXED_NOW + timedelta(minutes=i) for i in range(10))
    grants = CreditGrantService(store, identity_provider, clock=lambda: next(times))

    for amount in (1, 2, 3):
      await grants.add_bonus_credits(TEST_USER_ID, amount, f"bonus {amount}")

    history = await grants.get_credit_history(limit=2)

    assert [t.amount for t in history] == [3, 2]
    assert history[0].type == "bonus"

  @pytest.mark.unit
  async def test_history_includes_usage_and_refund(self, store, grants, identity_provider):
    await seed_account(store, balance=10)
    reservations = CreditReservationService(store, identity_provider)
    reservation = await reservations.reserve_credits(
      OperationKind.STORY, request_id="req-1"
    )
    await reservations.refund_credits(reservation.idempotency_key, "failed")

    history = await grants.get_credit_history()

    assert sorted(t.type for t in history) == ["refund", "usage"]
    assert sum(t.amount for t in history) == 0
