"""
Referral network reconstruction.

Starting from a root affiliate code, each level of the tree is loaded with a
fixed number of batched queries: the referred users that own an affiliate
profile, their direct referral counts and their paid earnings. A visited set
keeps every affiliate to a single node even if the referral data loops.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import NETWORK_MAX_DEPTH
from models.affiliates import Affiliates
from models.commission import Commission, CommissionStatusEnum
from models.user import User
from utils import to_money, utcnow

GROWTH_WINDOW = timedelta(days=7)


def empty_network() -> dict:
    return {
        "nodes": [],
        "edges": [],
        "stats": {
            "network_size": 0,
            "network_levels": 0,
            "network_earnings": 0.0,
            "network_growth": 0,
        },
    }


def node_id(affiliate_id: int) -> str:
    return f"node_{affiliate_id}"


async def _referral_counts(db: AsyncSession, codes: list) -> dict:
    result = await db.execute(
        select(User.referred_by, func.count(User.id))
        .where(User.referred_by.in_(codes))
        .group_by(User.referred_by)
    )
    return dict(result.all())


async def _paid_earnings(db: AsyncSession, affiliate_ids: list) -> dict:
    result = await db.execute(
        select(Commission.affiliate_id, func.sum(Commission.commission_amount))
        .where(
            Commission.affiliate_id.in_(affiliate_ids),
            Commission.status == CommissionStatusEnum.paid,
        )
        .group_by(Commission.affiliate_id)
    )
    return {affiliate_id: to_money(amount) for affiliate_id, amount in result.all()}


async def _children_of(db: AsyncSession, codes: list) -> list:
    # (affiliate, user) pairs for users referred by one of the codes
    result = await db.execute(
        select(Affiliates, User)
        .join(User, Affiliates.user_id == User.id)
        .where(User.referred_by.in_(codes))
        .order_by(User.created_at, Affiliates.id)
    )
    return result.all()


def network_stats(nodes: list, now: datetime) -> dict:
    if not nodes:
        return empty_network()["stats"]

    since = now - GROWTH_WINDOW
    return {
        "network_size": len(nodes),
        "network_levels": max(node["level"] for node in nodes) + 1,
        "network_earnings": float(sum((Decimal(str(node["earnings"])) for node in nodes), Decimal("0"))),
        "network_growth": sum(
            1 for node in nodes if node["join_date"] is not None and node["join_date"] >= since
        ),
    }


async def build_network(
    db: AsyncSession,
    root_code: str,
    max_depth: int = NETWORK_MAX_DEPTH,
    now: datetime | None = None,
) -> dict:
    now = now or utcnow()

    result = await db.execute(
        select(Affiliates, User)
        .join(User, Affiliates.user_id == User.id)
        .where(Affiliates.affiliate_code == root_code)
    )
    root = result.first()
    if root is None:
        return empty_network()

    nodes = []
    edges = []
    visited = set()

    # Each frontier entry is (affiliate, user, parent node id)
    frontier = [(root[0], root[1], None)]
    level = 0
    while frontier and level <= max_depth:
        current = []
        for affiliate, user, parent_id in frontier:
            if affiliate.affiliate_code in visited:
                continue
            visited.add(affiliate.affiliate_code)
            current.append((affiliate, user, parent_id))
        if not current:
            break

        codes = [affiliate.affiliate_code for affiliate, _, _ in current]
        counts = await _referral_counts(db, codes)
        earnings = await _paid_earnings(db, [affiliate.id for affiliate, _, _ in current])

        by_code = {}
        for affiliate, user, parent_id in current:
            node_earnings = earnings.get(affiliate.id, Decimal("0.00"))
            node = {
                "id": node_id(affiliate.id),
                "affiliate_code": affiliate.affiliate_code,
                "username": user.username if user else "Unknown",
                "level": level,
                "earnings": float(node_earnings),
                "referral_count": counts.get(affiliate.affiliate_code, 0),
                "join_date": user.created_at if user else None,
                "is_root": level == 0,
            }
            nodes.append(node)
            by_code[affiliate.affiliate_code] = node["id"]
            if parent_id is not None:
                edges.append({"source": parent_id, "target": node["id"], "earnings": node["earnings"]})

        level += 1
        if level > max_depth:
            break
        frontier = [
            (affiliate, user, by_code[user.referred_by])
            for affiliate, user in await _children_of(db, codes)
            if affiliate.affiliate_code not in visited
        ]

    logger.debug(f"Built network for {root_code}: {len(nodes)} nodes, {len(edges)} edges")
    return {"nodes": nodes, "edges": edges, "stats": network_stats(nodes, now)}
