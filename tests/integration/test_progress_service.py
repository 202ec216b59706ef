"""Integration tests for progress and streak persistence."""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from models.affiliates import Affiliates
from models.commission import CommissionStatusEnum
from services import progress as progress_service
from services.errors import ConflictError, NotFoundError
from services.progress import compute_progress
from services.streak import record_referral_activity


async def bump_version(session_factory, affiliate_id):
    """Commit a change to the affiliate row from a second session."""
    async with session_factory() as other:
        await other.execute(
            update(Affiliates)
            .where(Affiliates.id == affiliate_id)
            .values(version=Affiliates.version + 1)
        )
        await other.commit()


class TestComputeProgress:
    @pytest.mark.asyncio
    async def test_progress_is_derived_and_persisted(self, db, make_user, make_affiliate, make_commission):
        owner = await make_user("ana")
        referred = await make_user("bruno")
        affiliate = await make_affiliate(owner, "ANA00001", total_referrals=3, streak=1)
        await make_commission(affiliate, referred, "13.46")

        progress = await compute_progress(db, affiliate.id)

        # 3 * 50 + floor(13.46 * 2) + 1 * 25
        assert progress["experience"] == 201
        assert progress["level"] == 2
        assert progress["total_earnings"] == 13.46
        assert progress["new_badges"] == ["first_referral"]

        row = (await db.execute(
            select(Affiliates.experience, Affiliates.affiliate_level, Affiliates.badges)
            .where(Affiliates.id == affiliate.id)
        )).one()
        assert row.experience == 201
        assert row.affiliate_level == 2
        assert row.badges == ["first_referral"]

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, db, make_user, make_affiliate):
        owner = await make_user("ana")
        affiliate = await make_affiliate(owner, "ANA00001", total_referrals=12, streak=3)

        first = await compute_progress(db, affiliate.id)
        version = (await db.execute(
            select(Affiliates.version).where(Affiliates.id == affiliate.id)
        )).scalar()
        second = await compute_progress(db, affiliate.id)

        assert second["new_badges"] == []
        assert second["badges"] == first["badges"]
        assert second["level"] == first["level"]
        assert (await db.execute(
            select(Affiliates.version).where(Affiliates.id == affiliate.id)
        )).scalar() == version

    @pytest.mark.asyncio
    async def test_level_never_drops(self, db, make_user, make_affiliate):
        """Stored experience above the derived value is kept."""
        owner = await make_user("ana")
        affiliate = await make_affiliate(
            owner, "ANA00001", total_referrals=1, streak=0, experience=1500, affiliate_level=5
        )

        progress = await compute_progress(db, affiliate.id)

        assert progress["experience"] == 1500
        assert progress["level"] == 5
        stored = (await db.execute(
            select(Affiliates.affiliate_level).where(Affiliates.id == affiliate.id)
        )).scalar()
        assert stored == progress["level"]

    @pytest.mark.asyncio
    async def test_concurrent_change_is_a_conflict(self, db, session_factory, make_user, make_affiliate, monkeypatch):
        owner = await make_user("ana")
        affiliate = await make_affiliate(owner, "ANA00001", total_referrals=3)
        commission_total = progress_service.commission_total

        async def total_then_concurrent_write(session, affiliate_id, status):
            total = await commission_total(session, affiliate_id, status)
            await bump_version(session_factory, affiliate_id)
            return total

        monkeypatch.setattr(progress_service, "commission_total", total_then_concurrent_write)

        with pytest.raises(ConflictError):
            await compute_progress(db, affiliate.id)

    @pytest.mark.asyncio
    async def test_unknown_affiliate(self, db):
        with pytest.raises(NotFoundError):
            await compute_progress(db, 999)


class TestRecordReferralActivity:
    @pytest.mark.asyncio
    async def test_streak_moves_with_referrals(self, db, make_user, make_affiliate, now):
        owner = await make_user("ana")
        affiliate = await make_affiliate(owner, "ANA00001")

        await record_referral_activity(db, affiliate.id, now)
        await record_referral_activity(db, affiliate.id, now + timedelta(hours=3))
        await record_referral_activity(db, affiliate.id, now + timedelta(days=1, hours=4))

        row = (await db.execute(
            select(Affiliates.streak, Affiliates.last_referral_date).where(Affiliates.id == affiliate.id)
        )).one()
        assert row.streak == 2
        assert row.last_referral_date == now + timedelta(days=1, hours=4)

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db, make_user, make_affiliate, now):
        owner = await make_user("ana")
        affiliate = await make_affiliate(owner, "ANA00001", streak=5, last_referral_date=now - timedelta(days=3))

        await record_referral_activity(db, affiliate.id, now)

        assert (await db.execute(
            select(Affiliates.streak).where(Affiliates.id == affiliate.id)
        )).scalar() == 1

    @pytest.mark.asyncio
    async def test_unknown_affiliate(self, db, now):
        with pytest.raises(NotFoundError):
            await record_referral_activity(db, 999, now)

    @pytest.mark.asyncio
    async def test_earnings_count_only_paid_commissions(self, db, make_user, make_affiliate, make_commission):
        owner = await make_user("ana")
        referred = await make_user("bruno")
        affiliate = await make_affiliate(owner, "ANA00001")
        await make_commission(affiliate, referred, "100.00", CommissionStatusEnum.pending, "pix-p")
        await make_commission(affiliate, referred, "50.00", CommissionStatusEnum.paid, "pix-q")

        progress = await compute_progress(db, affiliate.id)

        assert progress["total_earnings"] == 50.0
        assert "earnings_100" not in progress["badges"]
        assert progress["experience"] == 100

    @pytest.mark.asyncio
    async def test_concurrent_change_is_a_conflict(self, db, session_factory, make_user, make_affiliate, monkeypatch, now):
        owner = await make_user("ana")
        affiliate = await make_affiliate(owner, "ANA00001", streak=2, last_referral_date=now - timedelta(days=1))
        affiliate_id, version = affiliate.id, affiliate.version
        commit = db.commit

        async def concurrent_write_then_commit():
            await bump_version(session_factory, affiliate_id)
            await commit()

        monkeypatch.setattr(db, "commit", concurrent_write_then_commit)

        with pytest.raises(ConflictError):
            await record_referral_activity(db, affiliate_id, now)

        monkeypatch.undo()
        row = (await db.execute(
            select(Affiliates.streak, Affiliates.version).where(Affiliates.id == affiliate_id)
        )).one()
        assert row.streak == 2
        assert row.version == version + 1
