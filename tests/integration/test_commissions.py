"""Integration tests for the commission ledger and payment webhooks."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from models.commission import Commission, CommissionStatusEnum
from models.user import User
from services import commissions, subscriptions
from services.errors import ValidationError


class TestEarnings:
    @pytest.mark.asyncio
    async def test_sums_by_status(self, db, make_user, make_affiliate, make_commission):
        owner = await make_user("ana")
        referred = await make_user("bruno")
        affiliate = await make_affiliate(owner, "ANA00001")
        await make_commission(affiliate, referred, "10", CommissionStatusEnum.paid, "p1")
        await make_commission(affiliate, referred, "20", CommissionStatusEnum.pending, "p2")
        await make_commission(affiliate, referred, "30", CommissionStatusEnum.paid, "p3")

        totals = await commissions.earnings_by_status(db, affiliate.id)

        assert totals[CommissionStatusEnum.paid] == Decimal("40.00")
        assert totals[CommissionStatusEnum.pending] == Decimal("20.00")
        assert totals[CommissionStatusEnum.withdrawn] == Decimal("0.00")
        assert await commissions.commission_total(db, affiliate.id, CommissionStatusEnum.paid) == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_no_commissions(self, db, make_user, make_affiliate):
        affiliate = await make_affiliate(await make_user("ana"), "ANA00001")

        assert await commissions.commission_total(db, affiliate.id, CommissionStatusEnum.paid) == Decimal("0.00")


class TestPaymentTransitions:
    @pytest.mark.asyncio
    async def test_replayed_confirmation_credits_once(self, db, make_user, make_affiliate, now):
        owner = await make_user("ana")
        referred = await make_user("bruno")
        affiliate = await make_affiliate(owner, "ANA00001")
        commission = await commissions.create_pending_commission(db, affiliate.id, referred.id, "pix-1", Decimal("29.90"))
        await db.commit()

        assert commission.commission_amount == Decimal("13.46")
        assert await commissions.confirm_payment(db, "pix-1", now) == 1
        assert await commissions.confirm_payment(db, "pix-1", now) == 0
        await db.commit()

        assert await commissions.commission_total(db, affiliate.id, CommissionStatusEnum.paid) == Decimal("13.46")

    @pytest.mark.asyncio
    async def test_failed_payment_is_terminal(self, db, make_user, make_affiliate, make_commission):
        owner = await make_user("ana")
        referred = await make_user("bruno")
        affiliate = await make_affiliate(owner, "ANA00001")
        await make_commission(affiliate, referred, "13.46", CommissionStatusEnum.pending, "pix-1")

        assert await commissions.fail_payment(db, "pix-1") == 1
        assert await commissions.confirm_payment(db, "pix-1") == 0
        await db.commit()

        status = (await db.execute(select(Commission.status).where(Commission.payment_id == "pix-1"))).scalar()
        assert status == CommissionStatusEnum.failed


class TestSubscriptionPayments:
    @pytest.mark.asyncio
    async def test_referred_subscription_creates_pending_commission(
        self, db, make_user, make_affiliate, mock_pushinpay
    ):
        affiliate = await make_affiliate(await make_user("ana"), "ANA00001")
        payer = await make_user("bruno", referred_by="ANA00001")

        payment = await subscriptions.create_subscription(db, payer.id, mock_pushinpay)

        assert payment["payment_id"] == "pix-123"
        assert payment["has_affiliate"] is True
        assert payment["value"] == 29.90
        mock_pushinpay.create_pix_payment.assert_awaited_once()

        row = (await db.execute(
            select(Commission.affiliate_id, Commission.commission_amount, Commission.status)
            .where(Commission.payment_id == "pix-123")
        )).one()
        assert row.affiliate_id == affiliate.id
        assert row.commission_amount == Decimal("13.46")
        assert row.status == CommissionStatusEnum.pending

    @pytest.mark.asyncio
    async def test_unreferred_subscription_has_no_commission(self, db, make_user, mock_pushinpay):
        payer = await make_user("bruno")

        payment = await subscriptions.create_subscription(db, payer.id, mock_pushinpay)

        assert payment["has_affiliate"] is False
        assert (await db.execute(select(Commission.id))).first() is None

    @pytest.mark.asyncio
    async def test_paid_user_cannot_subscribe_again(self, db, make_user, mock_pushinpay):
        payer = await make_user("bruno", is_paid=True)

        with pytest.raises(ValidationError):
            await subscriptions.create_subscription(db, payer.id, mock_pushinpay)
        mock_pushinpay.create_pix_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_webhook_replay_credits_once(self, db, make_user, make_affiliate, mock_pushinpay, now):
        affiliate = await make_affiliate(await make_user("ana"), "ANA00001")
        payer = await make_user("bruno", referred_by="ANA00001")
        await subscriptions.create_subscription(db, payer.id, mock_pushinpay)

        event = {"id": "pix-123", "status": "paid"}
        assert await subscriptions.handle_payment_event(db, event, now) is True
        assert await subscriptions.handle_payment_event(db, event, now) is True

        user = (await db.execute(
            select(User.is_paid, User.payment_status).where(User.id == payer.id)
        )).one()
        assert user.is_paid is True
        assert user.payment_status == "paid"
        assert await commissions.commission_total(db, affiliate.id, CommissionStatusEnum.paid) == Decimal("13.46")

    @pytest.mark.asyncio
    async def test_webhook_failure_voids_commission(self, db, make_user, make_affiliate, mock_pushinpay):
        await make_affiliate(await make_user("ana"), "ANA00001")
        payer = await make_user("bruno", referred_by="ANA00001")
        await subscriptions.create_subscription(db, payer.id, mock_pushinpay)

        await subscriptions.handle_payment_event(db, {"txid": "pix-123", "status": "expired"})

        status = (await db.execute(select(Commission.status).where(Commission.payment_id == "pix-123"))).scalar()
        assert status == CommissionStatusEnum.failed
        assert (await db.execute(select(User.is_paid).where(User.id == payer.id))).scalar() is False

    @pytest.mark.asyncio
    async def test_webhook_for_unknown_payment(self, db):
        assert await subscriptions.handle_payment_event(db, {"id": "nope", "status": "paid"}) is False
        assert await subscriptions.handle_payment_event(db, {"status": "paid"}) is False
