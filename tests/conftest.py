"""Pytest configuration and shared fixtures for all tests."""

import os

# Minimal environment for the settings module, set before any project import
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("PUSHINPAY_TOKEN", "test-pushinpay-token")
os.environ.setdefault("BASE_URL", "http://testserver")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.database import Base
from models.affiliates import Affiliates
from models.commission import Commission, CommissionStatusEnum
from models.fine import Fine  # noqa: F401
from models.maintenance import Maintenance  # noqa: F401
from models.record import Record  # noqa: F401
from models.user import User
from models.withdraw import Withdraw  # noqa: F401
from services.pushinpay import PushinPayClient
from utils import get_hashed_password

NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user(db):
    """Insert a user; trial, payment and referral fields can be overridden."""
    counter = {"n": 0}

    async def _make_user(username=None, referred_by=None, created_at=None, password="secret123", **fields):
        counter["n"] += 1
        user = User(
            username=username or f"driver{counter['n']}",
            phone=fields.pop("phone", f"1199999{counter['n']:04d}"),
            password=get_hashed_password(password),
            referred_by=referred_by,
            created_at=created_at or NOW,
            **fields,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_affiliate(db):
    async def _make_affiliate(user, code, **fields):
        affiliate = Affiliates(
            user_id=user.id,
            affiliate_code=code,
            total_referrals=fields.pop("total_referrals", 0),
            affiliate_level=fields.pop("affiliate_level", 1),
            experience=fields.pop("experience", 0),
            streak=fields.pop("streak", 0),
            badges=fields.pop("badges", []),
            **fields,
        )
        db.add(affiliate)
        await db.commit()
        return affiliate

    return _make_affiliate


@pytest.fixture
def make_commission(db):
    async def _make_commission(affiliate, referred_user, amount, status=CommissionStatusEnum.paid, payment_id="pay-1"):
        commission = Commission(
            affiliate_id=affiliate.id,
            referred_user_id=referred_user.id,
            payment_id=payment_id,
            commission_amount=Decimal(str(amount)),
            subscription_value=Decimal("29.90"),
            status=status,
        )
        db.add(commission)
        await db.commit()
        return commission

    return _make_commission


@pytest.fixture
def mock_pushinpay():
    """PushinPay client with both PIX calls mocked."""
    client = PushinPayClient(token="test-token", base_url="https://pushinpay.test/api")
    client.create_pix_payment = AsyncMock(
        return_value={"id": "pix-123", "qr_code": "000201PIX", "qr_code_base64": "aW1n"}
    )
    client.create_pix_withdrawal = AsyncMock(return_value={"id": "out-456", "status": "created"})
    return client
