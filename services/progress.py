"""
Gamification progress for affiliates.

Experience, level and badges are derived from the affiliate counters and the
sum of paid commissions. The pure helpers below hold the rules; compute_progress
loads the affiliate, applies them and persists the result.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models.affiliates import Affiliates
from models.commission import CommissionStatusEnum
from services.commissions import commission_total
from services.errors import ConflictError, NotFoundError

MAX_LEVEL = 10

LEVEL_REQUIREMENTS = {
    1: 0, 2: 100, 3: 250, 4: 500, 5: 1000,
    6: 2000, 7: 4000, 8: 8000, 9: 15000, 10: 30000,
}

XP_PER_REFERRAL = 50
XP_PER_EARNED_UNIT = 2
XP_PER_STREAK_DAY = 25

BADGES = {
    "first_referral": {"name": "First Referral", "icon": "🎯", "description": "Your first successful referral"},
    "streak_3": {"name": "3-Day Streak", "icon": "🔥", "description": "Referrals on 3 consecutive days"},
    "streak_7": {"name": "Perfect Week", "icon": "⚡", "description": "Referrals on 7 consecutive days"},
    "level_5": {"name": "Seasoned Affiliate", "icon": "⭐", "description": "Reached level 5"},
    "level_10": {"name": "Master Affiliate", "icon": "👑", "description": "Reached the maximum level"},
    "referrals_10": {"name": "Recruiter", "icon": "👥", "description": "10 total referrals"},
    "referrals_50": {"name": "Influencer", "icon": "🌟", "description": "50 total referrals"},
    "earnings_100": {"name": "First Hundred", "icon": "💰", "description": "100 in commissions"},
    "earnings_500": {"name": "Entrepreneur", "icon": "💎", "description": "500 in commissions"},
}

# Evaluated in order; each rule is (badge id, metric, threshold)
BADGE_RULES = [
    ("first_referral", "referrals", 1),
    ("streak_3", "streak", 3),
    ("streak_7", "streak", 7),
    ("level_5", "level", 5),
    ("level_10", "level", 10),
    ("referrals_10", "referrals", 10),
    ("referrals_50", "referrals", 50),
    ("earnings_100", "earnings", 100),
    ("earnings_500", "earnings", 500),
]


@dataclass
class ProgressSnapshot:
    level: int
    experience: int
    next_level_xp: int
    progress_percent: int
    badges: list = field(default_factory=list)
    new_badges: list = field(default_factory=list)
    streak: int = 0
    total_earnings: Decimal = Decimal("0")

    def as_dict(self) -> dict:
        return {
            "level": self.level,
            "experience": self.experience,
            "next_level_xp": self.next_level_xp,
            "progress_percent": self.progress_percent,
            "badges": list(self.badges),
            "new_badges": list(self.new_badges),
            "streak": self.streak,
            "total_earnings": float(self.total_earnings),
        }


def calculate_experience(total_referrals: int, streak: int, total_earnings) -> int:
    earnings_xp = math.floor(Decimal(str(total_earnings or 0)) * XP_PER_EARNED_UNIT)
    return total_referrals * XP_PER_REFERRAL + earnings_xp + streak * XP_PER_STREAK_DAY


def level_for_experience(experience: int) -> int:
    for level in range(MAX_LEVEL, 0, -1):
        if experience >= LEVEL_REQUIREMENTS[level]:
            return level
    return 1


def next_level_xp(level: int) -> int:
    return LEVEL_REQUIREMENTS[min(level + 1, MAX_LEVEL)]


def progress_percent(experience: int, level: int) -> int:
    if level >= MAX_LEVEL:
        return 100
    floor_xp = LEVEL_REQUIREMENTS[level]
    span = LEVEL_REQUIREMENTS[level + 1] - floor_xp
    return math.floor((experience - floor_xp) * 100 / span)


def evaluate_badges(total_referrals: int, streak: int, level: int, total_earnings, current_badges) -> list:
    """Return the badge ids newly earned, in rule order, skipping those already held."""
    held = set(current_badges or [])
    metrics = {
        "referrals": total_referrals,
        "streak": streak,
        "level": level,
        "earnings": Decimal(str(total_earnings or 0)),
    }
    new_badges = []
    for badge_id, metric, threshold in BADGE_RULES:
        if badge_id not in held and metrics[metric] >= threshold:
            new_badges.append(badge_id)
    return new_badges


def calculate_progress(
    total_referrals: int,
    streak: int,
    total_earnings,
    current_badges=None,
    stored_experience: int = 0,
) -> ProgressSnapshot:
    """
    Derive the full progress state.

    Experience never goes below the stored value, so a broken streak or a
    withdrawal cannot move the level back down.
    """
    experience = max(calculate_experience(total_referrals, streak, total_earnings), stored_experience or 0)
    level = level_for_experience(experience)
    current_badges = list(current_badges or [])
    new_badges = evaluate_badges(total_referrals, streak, level, total_earnings, current_badges)

    return ProgressSnapshot(
        level=level,
        experience=experience,
        next_level_xp=next_level_xp(level),
        progress_percent=progress_percent(experience, level),
        badges=list(dict.fromkeys(current_badges + new_badges)),
        new_badges=new_badges,
        streak=streak,
        total_earnings=Decimal(str(total_earnings or 0)),
    )


async def compute_progress(db: AsyncSession, affiliate_id: int) -> dict:
    affiliate = await db.get(Affiliates, affiliate_id, populate_existing=True)
    if affiliate is None:
        raise NotFoundError("Affiliate profile not found")

    total_earnings = await commission_total(db, affiliate_id, CommissionStatusEnum.paid)
    snapshot = calculate_progress(
        affiliate.total_referrals or 0,
        affiliate.streak or 0,
        total_earnings,
        affiliate.badges,
        affiliate.experience,
    )

    # Unchanged values emit no UPDATE, so reruns are no-ops
    affiliate.affiliate_level = snapshot.level
    affiliate.experience = snapshot.experience
    if snapshot.new_badges:
        affiliate.badges = snapshot.badges

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning(f"Concurrent progress update for affiliate {affiliate_id}")
        raise ConflictError("Affiliate was modified concurrently, try again")

    if snapshot.new_badges:
        logger.info(f"Affiliate {affiliate_id} earned badges {snapshot.new_badges}")
    return snapshot.as_dict()


def badge_catalog(earned_badges) -> dict:
    earned = set(earned_badges or [])
    badges = [
        {"id": badge_id, **badge, "earned": badge_id in earned}
        for badge_id, badge in BADGES.items()
    ]
    return {
        "badges": badges,
        "earned_count": len(earned),
        "total_count": len(BADGES),
    }
