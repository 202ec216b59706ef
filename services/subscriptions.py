"""
Trial, access and subscription payments.
"""

import math
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import BASE_URL, SUBSCRIPTION_DAYS, SUBSCRIPTION_PRICE, TRIAL_HOURS
from models.affiliates import Affiliates
from models.user import User
from services import commissions
from services.errors import NotFoundError, ValidationError
from services.pushinpay import PushinPayClient
from utils import utcnow

PAID_STATUSES = {"paid", "approved"}
FAILED_STATUSES = {"failed", "canceled", "cancelled", "expired"}


def start_trial(user: User, now: datetime | None = None) -> datetime:
    now = now or utcnow()
    user.trial_start_date = now
    user.trial_end_date = now + timedelta(hours=TRIAL_HOURS)
    user.is_trial_active = True
    return user.trial_end_date


def trial_running(user: User, now: datetime | None = None) -> bool:
    if not user.trial_start_date or not user.trial_end_date:
        return False
    return (now or utcnow()) <= user.trial_end_date


def trial_info(user: User, now: datetime | None = None) -> dict | None:
    if user.is_paid or not user.is_trial_active or not user.trial_end_date:
        return None
    now = now or utcnow()
    hours_left = max(0, math.ceil((user.trial_end_date - now).total_seconds() / 3600))
    if hours_left == 0:
        return None
    return {"hours_left": hours_left, "trial_end": user.trial_end_date}


async def has_access(db: AsyncSession, user: User, now: datetime | None = None) -> bool:
    """Paid users and users inside their trial window have access."""
    if user.is_paid:
        return True
    if user.is_trial_active and trial_running(user, now):
        return True
    if user.is_trial_active:
        user.is_trial_active = False
        await db.commit()
        logger.info(f"Trial expired for user {user.id}")
    return False


async def expire_trials(db: AsyncSession, now: datetime | None = None) -> int:
    result = await db.execute(
        update(User)
        .where(
            User.is_trial_active.is_(True),
            User.is_paid.is_(False),
            User.trial_end_date < (now or utcnow()),
        )
        .values(is_trial_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    expired = result.rowcount or 0
    if expired:
        logger.info(f"Deactivated {expired} expired trial(s)")
    return expired


async def create_subscription(db: AsyncSession, user_id: int, pushinpay: PushinPayClient) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.is_paid:
        raise ValidationError("User already has an active subscription")

    affiliate = None
    if user.referred_by:
        result = await db.execute(select(Affiliates).where(Affiliates.affiliate_code == user.referred_by))
        affiliate = result.scalars().first()

    payment = await pushinpay.create_pix_payment(
        SUBSCRIPTION_PRICE,
        f"{BASE_URL}/api/webhook/pushinpay",
        f"Driver expense tracker subscription - {SUBSCRIPTION_DAYS} days",
    )
    payment_id = str(payment.get("id") or payment.get("txid"))

    user.payment_id = payment_id
    user.payment_status = "pending"
    if affiliate is not None:
        await commissions.create_pending_commission(db, affiliate.id, user.id, payment_id, SUBSCRIPTION_PRICE)
    await db.commit()

    return {
        "payment_id": payment_id,
        "qr_code": payment.get("qr_code"),
        "qr_code_base64": payment.get("qr_code_base64"),
        "value": float(SUBSCRIPTION_PRICE),
        "has_affiliate": affiliate is not None,
    }


async def handle_payment_event(db: AsyncSession, event: dict, now: datetime | None = None) -> bool:
    """
    Apply a provider webhook event. Returns False when the payment is unknown.

    Confirmation goes through the conditional commission update, so a
    repeated delivery of the same event credits the affiliate only once.
    """
    payment_id = event.get("id") or event.get("txid")
    if not payment_id:
        return False
    payment_id = str(payment_id)
    status = str(event.get("status", "")).lower()

    result = await db.execute(select(User).where(User.payment_id == payment_id))
    user = result.scalars().first()
    if user is None:
        logger.warning(f"Webhook for unknown payment {payment_id} ({status})")
        return False

    user.payment_status = status
    if status in PAID_STATUSES:
        user.is_paid = True
        user.is_trial_active = False
        await commissions.confirm_payment(db, payment_id, now)
    elif status in FAILED_STATUSES:
        await commissions.fail_payment(db, payment_id)

    await db.commit()
    logger.info(f"User {user.username} payment {payment_id} -> {status}")
    return True
