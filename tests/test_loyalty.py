from decimal import Decimal

import pytest
from sqlalchemy import func

from app.api.loyalty import adjustPoints, earnPoints, getAccount, redeemPoints
from app.src import exceptions, loyalty
from app.src.db import LoyaltyAccount, LoyaltyTransaction
from app.src.enums import LoyaltyTier, TransactionType


@pytest.fixture
def account(session):
    earnPoints(session, "customer-001", Decimal("12.00"))
    session.commit()
    return getAccount(session, "customer-001")


def ledgerSum(session, account):
    return (
        session.query(func.sum(LoyaltyTransaction.points))
        .filter(LoyaltyTransaction.account_id == account.id)
        .scalar()
    )


def test_points_and_discount_rules():
    assert loyalty.earnedPoints(Decimal("12.00")) == 120
    assert loyalty.earnedPoints(Decimal("0.09")) == 0
    assert loyalty.discountFor(100) == Decimal("5.00")
    assert loyalty.discountFor(1) == Decimal("0.05")


def test_tiers_follow_lifetime_points_and_never_drop():
    assert loyalty.tierFor(0) == LoyaltyTier.SILVER
    assert loyalty.tierFor(5000) == LoyaltyTier.GOLD
    assert loyalty.tierFor(15000) == LoyaltyTier.PLATINUM
    assert loyalty.tierFor(10, LoyaltyTier.GOLD) == LoyaltyTier.GOLD
    assert loyalty.nextTier(4000, LoyaltyTier.SILVER) == (LoyaltyTier.GOLD, 1000)
    assert loyalty.nextTier(20000, LoyaltyTier.PLATINUM) == (None, 0)


def test_earning_opens_the_account(session, account):
    assert account.total_points == 120
    assert account.lifetime_points == 120
    assert account.tier == LoyaltyTier.SILVER
    entry = session.query(LoyaltyTransaction).one()
    assert entry.type == TransactionType.EARN
    assert entry.points == 120


def test_redemption_over_balance_changes_nothing(session, account):
    with pytest.raises(exceptions.InsufficientPointsError) as error:
        redeemPoints(session, "customer-001", 150)
    session.rollback()

    assert error.value.detail["available_points"] == 120
    assert error.value.detail["requested_points"] == 150
    session.refresh(account)
    assert account.total_points == 120
    assert session.query(LoyaltyTransaction).count() == 1


def test_redemption_within_balance(session, account):
    account, entry, discount = redeemPoints(session, "customer-001", 100)
    session.commit()

    assert discount == Decimal("5.00")
    assert account.total_points == 20
    assert account.lifetime_points == 120
    assert entry.type == TransactionType.REDEEM
    assert entry.points == -100
    assert ledgerSum(session, account) == account.total_points


@pytest.mark.parametrize("points", [0, -5])
def test_non_positive_redemption_is_rejected(session, account, points):
    with pytest.raises(exceptions.InvalidPointsRequest) as error:
        redeemPoints(session, "customer-001", points)
    assert error.value.detail["available_points"] == 120


def test_customer_without_account_has_nothing_to_redeem(session):
    with pytest.raises(exceptions.InsufficientPointsError) as error:
        redeemPoints(session, "nobody", 10)
    assert error.value.detail["available_points"] == 0
    assert error.value.detail["requested_points"] == 10
    assert session.query(LoyaltyAccount).count() == 0
    with pytest.raises(exceptions.InvalidPointsRequest):
        redeemPoints(session, "nobody", 0)


def test_adjustments_keep_the_ledger_balanced(session, account):
    adjustPoints(session, "customer-001", 30, TransactionType.ADJUST, "Goodwill")
    adjustPoints(session, "customer-001", -50, TransactionType.EXPIRE)
    session.commit()
    session.refresh(account)

    assert account.total_points == 100
    assert account.lifetime_points == 120
    assert ledgerSum(session, account) == 100

    with pytest.raises(exceptions.InsufficientPointsError):
        adjustPoints(session, "customer-001", -101, TransactionType.ADJUST)
    with pytest.raises(exceptions.InvalidPointsRequest):
        adjustPoints(session, "customer-001", 10, TransactionType.EXPIRE)
    with pytest.raises(exceptions.ValidationError):
        adjustPoints(session, "customer-001", 10, TransactionType.EARN)


def test_earning_promotes_the_tier(session, account):
    earnPoints(session, "customer-001", Decimal("500.00"))
    session.commit()

    account = session.query(LoyaltyAccount).one()
    assert account.lifetime_points == 5120
    assert account.tier == LoyaltyTier.GOLD
