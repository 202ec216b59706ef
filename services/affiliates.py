"""
Affiliate profiles: creation, referral bookkeeping, links and payouts.
"""

import re
from datetime import datetime
from urllib.parse import quote

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import BASE_URL, MIN_WITHDRAWAL
from models.affiliates import Affiliates
from models.commission import CommissionStatusEnum
from models.user import User
from models.withdraw import Withdraw
from services import commissions
from services.errors import ConflictError, NotFoundError, ValidationError
from services.pushinpay import PushinPayClient
from services.streak import record_referral_activity
from utils import generate_affiliate_code, to_money, utcnow

MAX_CODE_ATTEMPTS = 5
SLUG_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")


async def get_by_user(db: AsyncSession, user_id: int) -> Affiliates | None:
    result = await db.execute(select(Affiliates).where(Affiliates.user_id == user_id))
    return result.scalars().first()


async def get_by_code(db: AsyncSession, affiliate_code: str) -> Affiliates | None:
    result = await db.execute(select(Affiliates).where(Affiliates.affiliate_code == affiliate_code))
    return result.scalars().first()


async def create_affiliate(db: AsyncSession, user: User) -> Affiliates:
    """
    Create the affiliate profile of a user with a fresh unique code.

    Codes are random, so a collision is regenerated a few times before the
    request gives up with a ConflictError.
    """
    # Plain values, the instance is expired by a rollback
    user_id, username = user.id, user.username
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        code = generate_affiliate_code(username)
        if await get_by_code(db, code) is not None:
            logger.debug(f"Affiliate code {code} taken, regenerating (attempt {attempt})")
            continue

        affiliate = Affiliates(
            user_id=user_id,
            affiliate_code=code,
            total_referrals=0,
            affiliate_level=1,
            experience=0,
            streak=0,
            badges=[],
        )
        db.add(affiliate)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            existing = await get_by_user(db, user_id)
            if existing is not None:
                return existing
            logger.warning(f"Affiliate code {code} collided on insert (attempt {attempt})")
            continue

        logger.info(f"Affiliate profile {code} created for user {user_id}")
        return affiliate

    raise ConflictError("Could not generate a unique affiliate code")


async def get_or_create_affiliate(db: AsyncSession, user_id: int) -> Affiliates:
    affiliate = await get_by_user(db, user_id)
    if affiliate is not None:
        return affiliate

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return await create_affiliate(db, user)


async def register_referral(db: AsyncSession, affiliate_code: str, now: datetime | None = None) -> Affiliates | None:
    """Count a new referred signup for the affiliate and advance its streak."""
    affiliate = await get_by_code(db, affiliate_code)
    if affiliate is None:
        logger.warning(f"Referral code {affiliate_code} has no affiliate profile")
        return None

    await db.execute(
        update(Affiliates)
        .where(Affiliates.id == affiliate.id)
        .values(
            total_referrals=Affiliates.total_referrals + 1,
            version=Affiliates.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await record_referral_activity(db, affiliate.id, now)
    return affiliate


def referral_link(affiliate: Affiliates) -> str:
    return f"{BASE_URL}?ref={affiliate.affiliate_code}"


def custom_link(affiliate: Affiliates) -> str | None:
    if not affiliate.custom_slug:
        return None
    return f"{BASE_URL}/{affiliate.custom_slug}"


async def affiliate_stats(db: AsyncSession, user_id: int) -> dict:
    affiliate = await get_or_create_affiliate(db, user_id)
    totals = await commissions.earnings_by_status(db, affiliate.id)

    return {
        "affiliate_code": affiliate.affiliate_code,
        "total_referrals": affiliate.total_referrals,
        "total_earnings": float(totals[CommissionStatusEnum.paid]),
        "pending_earnings": float(totals[CommissionStatusEnum.pending]),
        "withdrawal_key": affiliate.withdrawal_key,
        "affiliate_link": referral_link(affiliate),
        "custom_link": custom_link(affiliate),
    }


async def set_withdrawal_key(db: AsyncSession, user_id: int, withdrawal_key: str) -> Affiliates:
    withdrawal_key = (withdrawal_key or "").strip()
    if not withdrawal_key:
        raise ValidationError("A PIX key is required")

    affiliate = await get_or_create_affiliate(db, user_id)
    affiliate.withdrawal_key = withdrawal_key
    await db.commit()
    return affiliate


async def set_custom_slug(db: AsyncSession, user_id: int, custom_slug: str) -> Affiliates:
    if not custom_slug or not SLUG_PATTERN.match(custom_slug):
        raise ValidationError("Slug may only contain letters, numbers and hyphens")

    slug = custom_slug.lower()
    affiliate = await get_or_create_affiliate(db, user_id)

    result = await db.execute(select(Affiliates).where(Affiliates.custom_slug == slug))
    owner = result.scalars().first()
    if owner is not None and owner.id != affiliate.id:
        raise ConflictError("This slug is already taken")

    affiliate.custom_slug = slug
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("This slug is already taken")
    return affiliate


def sharing_links(affiliate: Affiliates) -> dict:
    automatic = referral_link(affiliate)
    custom = custom_link(affiliate)
    main_link = quote(custom or automatic, safe="")

    return {
        "automatic": automatic,
        "custom": custom,
        "whatsapp": (
            "https://wa.me/?text="
            + quote("Track every ride, expense and fine in one place. 48h free trial: ")
            + main_link
        ),
        "telegram": (
            f"https://t.me/share/url?url={main_link}&text="
            + quote("Expense tracking for drivers, 48h free trial")
        ),
    }


async def withdraw_earnings(
    db: AsyncSession,
    user_id: int,
    pushinpay: PushinPayClient,
    now: datetime | None = None,
) -> Withdraw:
    """
    Pay out every paid commission of the affiliate to its PIX key.

    The commissions are claimed inside the open transaction and committed
    only after the provider accepted the cash-out; any failure rolls the
    claim back.
    """
    affiliate = await get_by_user(db, user_id)
    if affiliate is None:
        raise NotFoundError("Affiliate profile not found")
    if not affiliate.withdrawal_key:
        raise ValidationError("Set a PIX key before requesting a withdrawal")

    available = await commissions.commission_total(db, affiliate.id, CommissionStatusEnum.paid)
    if available < MIN_WITHDRAWAL:
        raise ValidationError(
            f"Minimum withdrawal is {MIN_WITHDRAWAL:.2f}, available {available:.2f}"
        )

    now = now or utcnow()
    ids, amount = await commissions.claim_paid_commissions(db, affiliate.id, now)
    if not ids:
        await db.rollback()
        raise ConflictError("Another withdrawal is already in progress")

    try:
        payout = await pushinpay.create_pix_withdrawal(
            amount,
            affiliate.withdrawal_key,
            f"Commission withdrawal - {affiliate.affiliate_code}",
        )
    except Exception:
        await db.rollback()
        raise

    withdraw = Withdraw(
        affiliate_id=affiliate.id,
        amount=to_money(amount),
        pix_key=affiliate.withdrawal_key,
        transaction_id=payout.get("id") or payout.get("txid"),
        status="completed",
        created_at=now,
    )
    db.add(withdraw)
    await db.commit()

    logger.info(
        f"Affiliate {affiliate.affiliate_code} withdrew {amount} "
        f"({len(ids)} commissions, transaction {withdraw.transaction_id})"
    )
    return withdraw
