from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.src.db import LoyaltyAccount, LoyaltyTransaction, sessionMaker
from app.src import exceptions, getters, loyalty
from app.src.loggers import logEvent
from app.src.enums import OrderIn, TransactionType
from app.src.constants import POINTS_PER_CURRENCY_UNIT, REDEMPTION_RATE
from app.src.functions import enumStr, fuseExceptionResponses
from app.src.urls import (
    URL_LOYALTY,
    URL_LOYALTY_ADJUST,
    URL_LOYALTY_REDEEM,
    URL_LOYALTY_TRANSACTION,
)

route_public = APIRouter()
route_operator = APIRouter()


## Output Schema
class AccountSchema(BaseModel):
    id: int
    customer_id: str
    total_points: int
    lifetime_points: int
    tier: int
    next_tier: Optional[int]
    points_to_next_tier: int
    points_per_currency_unit: int
    redemption_rate: Decimal
    updated_on: Optional[datetime]
    created_on: datetime


class TransactionSchema(BaseModel):
    id: int
    account_id: int
    type: int
    points: int
    description: Optional[str]
    booking_id: Optional[int]
    created_on: datetime


class RedeemSchema(BaseModel):
    points_redeemed: int
    discount_amount: Decimal
    remaining_points: int
    transaction_id: int


## Input Forms
class RedeemForm(BaseModel):
    customer_id: str = Field(Form(max_length=64))
    points: int = Field(Form())


class AdjustForm(BaseModel):
    customer_id: str = Field(Form(max_length=64))
    points: int = Field(Form(description="Signed number of points"))
    type: TransactionType = Field(
        Form(
            default=TransactionType.ADJUST,
            description="ADJUST: 3, EXPIRE: 4",
        )
    )
    description: str | None = Field(Form(default=None, max_length=512))


## Query Parameters
class AccountParams(BaseModel):
    customer_id: str = Field(Query(max_length=64))


class TransactionParams(BaseModel):
    customer_id: str = Field(Query(max_length=64))
    type: TransactionType | None = Field(
        Query(default=None, description=enumStr(TransactionType))
    )
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def getAccount(session: Session, customerID: str) -> LoyaltyAccount:
    account = (
        session.query(LoyaltyAccount)
        .filter(LoyaltyAccount.customer_id == customerID)
        .first()
    )
    if account is None:
        raise exceptions.UnknownValue(LoyaltyAccount.customer_id)
    return account


def accountData(account: LoyaltyAccount) -> dict:
    upcoming, missing = loyalty.nextTier(account.lifetime_points, account.tier)
    data = jsonable_encoder(account)
    data["next_tier"] = upcoming
    data["points_to_next_tier"] = missing
    data["points_per_currency_unit"] = POINTS_PER_CURRENCY_UNIT
    data["redemption_rate"] = REDEMPTION_RATE
    return data


def debitPoints(session: Session, account: LoyaltyAccount, points: int) -> None:
    """
    Take points off a balance in one conditional statement.

    Raises:
        exceptions.InsufficientPointsError: The balance is below `points`.
    """
    updated = (
        session.query(LoyaltyAccount)
        .filter(
            LoyaltyAccount.id == account.id,
            LoyaltyAccount.total_points >= points,
        )
        .update(
            {LoyaltyAccount.total_points: LoyaltyAccount.total_points - points},
            synchronize_session=False,
        )
    )
    session.refresh(account)
    if updated == 0:
        raise exceptions.InsufficientPointsError(account.total_points, points)


def earnPoints(
    session: Session,
    customerID: str,
    amount,
    bookingID: Optional[int] = None,
    description: Optional[str] = None,
) -> Optional[LoyaltyTransaction]:
    """
    Credit the points earned for a paid amount.

    Opens the account on the first earning. The tier follows the lifetime
    points and is never demoted. Does not commit.

    Returns:
        The EARN transaction, or None when the amount earns nothing.
    """
    points = loyalty.earnedPoints(amount)
    if points <= 0:
        return None
    account = (
        session.query(LoyaltyAccount)
        .filter(LoyaltyAccount.customer_id == customerID)
        .first()
    )
    if account is None:
        account = LoyaltyAccount(customer_id=customerID, total_points=0, lifetime_points=0)
        session.add(account)
        session.flush()

    session.query(LoyaltyAccount).filter(LoyaltyAccount.id == account.id).update(
        {
            LoyaltyAccount.total_points: LoyaltyAccount.total_points + points,
            LoyaltyAccount.lifetime_points: LoyaltyAccount.lifetime_points + points,
        },
        synchronize_session=False,
    )
    session.refresh(account)
    account.tier = loyalty.tierFor(account.lifetime_points, account.tier)

    transaction = LoyaltyTransaction(
        account_id=account.id,
        type=TransactionType.EARN,
        points=points,
        description=description,
        booking_id=bookingID,
    )
    session.add(transaction)
    session.flush()
    return transaction


def redeemPoints(session: Session, customerID: str, points: int):
    """
    Spend points for a discount, all or nothing.

    The balance check and the decrement are one statement, so two
    concurrent redemptions can never overdraw the account. On failure
    nothing is written. Does not commit.

    Returns:
        tuple: (account, REDEEM transaction, discount amount)

    Raises:
        exceptions.InvalidPointsRequest: `points` is not positive.
        exceptions.InsufficientPointsError: `points` exceeds the balance,
            a customer without an account has a balance of zero.
    """
    account = (
        session.query(LoyaltyAccount)
        .filter(LoyaltyAccount.customer_id == customerID)
        .first()
    )
    available = account.total_points if account else 0
    if points <= 0:
        raise exceptions.InvalidPointsRequest(available, points)
    if account is None:
        raise exceptions.InsufficientPointsError(available, points)
    debitPoints(session, account, points)

    transaction = LoyaltyTransaction(
        account_id=account.id,
        type=TransactionType.REDEEM,
        points=-points,
        description=f"Redeemed {points} points",
    )
    session.add(transaction)
    session.flush()
    return account, transaction, loyalty.discountFor(points)


def adjustPoints(
    session: Session,
    customerID: str,
    points: int,
    transactionType: TransactionType,
    description: Optional[str] = None,
) -> LoyaltyTransaction:
    """
    Record a manual adjustment or an expiry of points.

    Negative values go through the same conditional decrement as a
    redemption. Expiries must be negative. Adjustments never change the
    lifetime points. Does not commit.
    """
    if transactionType not in (TransactionType.ADJUST, TransactionType.EXPIRE):
        raise exceptions.ValidationError("Only ADJUST and EXPIRE entries can be recorded")
    account = getAccount(session, customerID)
    if points == 0 or (transactionType == TransactionType.EXPIRE and points > 0):
        raise exceptions.InvalidPointsRequest(account.total_points, points)

    if points < 0:
        debitPoints(session, account, -points)
    else:
        session.query(LoyaltyAccount).filter(LoyaltyAccount.id == account.id).update(
            {LoyaltyAccount.total_points: LoyaltyAccount.total_points + points},
            synchronize_session=False,
        )
        session.refresh(account)

    transaction = LoyaltyTransaction(
        account_id=account.id,
        type=transactionType,
        points=points,
        description=description,
    )
    session.add(transaction)
    session.flush()
    return transaction


## API endpoints [Public]
@route_public.get(
    URL_LOYALTY,
    tags=["Loyalty"],
    response_model=AccountSchema,
    responses=fuseExceptionResponses(
        [exceptions.UnknownValue(LoyaltyAccount.customer_id)]
    ),
    description="""
    Fetch the loyalty account of a customer with the points missing to the next tier.
    """,
)
async def fetch_account(qParam: AccountParams = Depends()):
    try:
        session = sessionMaker()
        account = getAccount(session, qParam.customer_id)
        return accountData(account)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.get(
    URL_LOYALTY_TRANSACTION,
    tags=["Loyalty"],
    response_model=List[TransactionSchema],
    responses=fuseExceptionResponses(
        [exceptions.UnknownValue(LoyaltyAccount.customer_id)]
    ),
    description="""
    Fetch the ledger entries of a customer, newest first by default.
    """,
)
async def fetch_transaction(qParam: TransactionParams = Depends()):
    try:
        session = sessionMaker()
        account = getAccount(session, qParam.customer_id)
        query = session.query(LoyaltyTransaction).filter(
            LoyaltyTransaction.account_id == account.id
        )
        if qParam.type is not None:
            query = query.filter(LoyaltyTransaction.type == qParam.type)
        if qParam.order_in == OrderIn.ASC:
            query = query.order_by(LoyaltyTransaction.id.asc())
        else:
            query = query.order_by(LoyaltyTransaction.id.desc())
        return query.offset(qParam.offset).limit(qParam.limit).all()
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.post(
    URL_LOYALTY_REDEEM,
    tags=["Loyalty"],
    response_model=RedeemSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidPointsRequest(),
            exceptions.InsufficientPointsError(),
        ]
    ),
    description="""
    Redeem points for a discount, all or nothing.
    The discount is the points times the redemption rate.
    When the balance is too low nothing changes and the error carries the available and requested points.
    Log the redemption activity.
    """,
)
async def redeem_points(
    fParam: RedeemForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        account, transaction, discount = redeemPoints(
            session, fParam.customer_id, fParam.points
        )
        session.commit()

        redeemData = {
            "points_redeemed": fParam.points,
            "discount_amount": discount,
            "remaining_points": account.total_points,
            "transaction_id": transaction.id,
        }
        logEvent(
            request_info,
            jsonable_encoder({"customer_id": account.customer_id, **redeemData}),
        )
        return redeemData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_LOYALTY_ADJUST,
    tags=["Loyalty"],
    response_model=TransactionSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.UnknownValue(LoyaltyAccount.customer_id),
            exceptions.InvalidPointsRequest(),
            exceptions.InsufficientPointsError(),
        ]
    ),
    description="""
    Record a manual ADJUST entry (signed) or an EXPIRE entry (negative) on a loyalty account.
    A balance never goes below zero.
    Log the adjustment activity.
    """,
)
async def adjust_points(
    fParam: AdjustForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        transaction = adjustPoints(
            session,
            fParam.customer_id,
            fParam.points,
            fParam.type,
            fParam.description,
        )
        session.commit()
        session.refresh(transaction)

        transactionData = jsonable_encoder(transaction)
        logEvent(request_info, {"customer_id": fParam.customer_id, **transactionData})
        return transactionData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
