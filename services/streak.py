"""
Consecutive-day referral streaks.

The day delta is the number of whole 24 hour intervals elapsed since the last
referral, not the difference between calendar dates.
"""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models.affiliates import Affiliates
from services.errors import ConflictError, NotFoundError
from utils import utcnow

ONE_DAY = timedelta(days=1)


def day_delta(last_referral_date: datetime, now: datetime) -> int:
    return (now - last_referral_date) // ONE_DAY


def next_streak(streak: int, last_referral_date: datetime | None, now: datetime) -> int:
    if last_referral_date is None:
        return 1

    days = day_delta(last_referral_date, now)
    if days == 0:
        return streak
    if days == 1:
        return streak + 1
    # A gap of two or more days, or a clock that went backwards
    return 1


async def record_referral_activity(db: AsyncSession, affiliate_id: int, now: datetime | None = None) -> None:
    now = now or utcnow()
    affiliate = await db.get(Affiliates, affiliate_id, populate_existing=True)
    if affiliate is None:
        raise NotFoundError("Affiliate profile not found")

    previous = affiliate.streak or 0
    affiliate.streak = next_streak(previous, affiliate.last_referral_date, now)
    affiliate.last_referral_date = now

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Affiliate was modified concurrently, try again")

    logger.debug(f"Affiliate {affiliate_id} streak {previous} -> {affiliate.streak}")
