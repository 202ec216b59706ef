"""Tests for money rounding, affiliate codes, commissions and tokens."""

import re
from decimal import Decimal

import pytest
from fastapi import HTTPException

from services.commissions import commission_for
from utils import (
    generate_affiliate_code,
    get_hashed_password,
    to_money,
    validate_token,
    verify_password,
    write_token,
)


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money(Decimal("13.455")) == Decimal("13.46")
        assert to_money(Decimal("13.454")) == Decimal("13.45")
        assert to_money(None) == Decimal("0.00")
        assert to_money(40.0) == Decimal("40.00")

    def test_commission_of_a_subscription(self):
        assert commission_for(Decimal("29.90")) == Decimal("13.46")

    def test_commission_with_custom_rate(self):
        assert commission_for("100", Decimal("0.10")) == Decimal("10.00")


class TestAffiliateCode:
    def test_code_format(self):
        code = generate_affiliate_code("marcos")

        assert re.fullmatch(r"MARC[A-Z0-9]{4}", code)

    def test_short_username(self):
        assert re.fullmatch(r"JO[A-Z0-9]{4}", generate_affiliate_code("jo"))


class TestSecurity:
    def test_password_hash_roundtrip(self):
        hashed = get_hashed_password("secret123")

        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("wrong", hashed)

    def test_token_payload(self):
        token = write_token({"user_id": 7, "username": "driver"})

        payload = validate_token(token, output=True)

        assert payload["user_id"] == 7
        assert validate_token(token) is None

    def test_invalid_token_raises_401(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_token("not-a-token", output=True)

        assert exc_info.value.status_code == 401
