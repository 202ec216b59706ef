"""
Commission ledger operations.

Status changes are single conditional UPDATE statements filtered on the
expected current status, so a replayed webhook or a concurrent request can
never move the same row twice.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import COMMISSION_RATE
from models.commission import Commission, CommissionStatusEnum
from utils import to_money, utcnow


def commission_for(subscription_value, rate: Decimal = COMMISSION_RATE) -> Decimal:
    """Fixed share of the subscription value, rounded half up to cents."""
    return to_money(Decimal(str(subscription_value)) * rate)


async def commission_total(db: AsyncSession, affiliate_id: int, status: CommissionStatusEnum) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Commission.commission_amount), 0))
        .where(Commission.affiliate_id == affiliate_id, Commission.status == status)
    )
    return to_money(result.scalar())


async def earnings_by_status(db: AsyncSession, affiliate_id: int) -> dict:
    result = await db.execute(
        select(Commission.status, func.sum(Commission.commission_amount))
        .where(Commission.affiliate_id == affiliate_id)
        .group_by(Commission.status)
    )
    totals = {status: Decimal("0.00") for status in CommissionStatusEnum}
    for status, amount in result.all():
        totals[status] = to_money(amount)
    return totals


async def create_pending_commission(
    db: AsyncSession,
    affiliate_id: int,
    referred_user_id: int,
    payment_id: str,
    subscription_value,
) -> Commission:
    commission = Commission(
        affiliate_id=affiliate_id,
        referred_user_id=referred_user_id,
        payment_id=payment_id,
        subscription_value=to_money(subscription_value),
        commission_amount=commission_for(subscription_value),
        status=CommissionStatusEnum.pending,
    )
    db.add(commission)
    await db.flush()
    logger.info(
        f"Pending commission {commission.commission_amount} for affiliate {affiliate_id} "
        f"(payment {payment_id})"
    )
    return commission


async def _transition(
    db: AsyncSession,
    payment_id: str,
    new_status: CommissionStatusEnum,
    **values,
) -> int:
    result = await db.execute(
        update(Commission)
        .where(
            Commission.payment_id == payment_id,
            Commission.status == CommissionStatusEnum.pending,
        )
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def confirm_payment(db: AsyncSession, payment_id: str, now: datetime | None = None) -> int:
    """Mark the pending commissions of a payment as paid. Returns rows moved."""
    moved = await _transition(db, payment_id, CommissionStatusEnum.paid, paid_at=now or utcnow())
    if moved:
        logger.info(f"Payment {payment_id} confirmed, {moved} commission(s) credited")
    else:
        logger.debug(f"Payment {payment_id} had no pending commission to credit")
    return moved


async def fail_payment(db: AsyncSession, payment_id: str) -> int:
    moved = await _transition(db, payment_id, CommissionStatusEnum.failed)
    if moved:
        logger.info(f"Payment {payment_id} failed, {moved} commission(s) voided")
    return moved


async def claim_paid_commissions(db: AsyncSession, affiliate_id: int, now: datetime | None = None):
    """
    Move every paid commission of an affiliate to withdrawn inside the
    current transaction and return (ids, amount).

    Returns ([], 0) when another request claimed the same rows first. The
    caller commits only after the payout succeeded.
    """
    result = await db.execute(
        select(Commission.id, Commission.commission_amount)
        .where(
            Commission.affiliate_id == affiliate_id,
            Commission.status == CommissionStatusEnum.paid,
        )
    )
    rows = result.all()
    if not rows:
        return [], Decimal("0.00")

    ids = [row.id for row in rows]
    claimed = await db.execute(
        update(Commission)
        .where(Commission.id.in_(ids), Commission.status == CommissionStatusEnum.paid)
        .values(status=CommissionStatusEnum.withdrawn, withdrawn_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    if (claimed.rowcount or 0) != len(ids):
        return [], Decimal("0.00")

    return ids, to_money(sum((Decimal(str(row.commission_amount)) for row in rows), Decimal("0")))
