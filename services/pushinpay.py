"""
Minimal PushinPay PIX client: cash-in for subscriptions, cash-out for
affiliate withdrawals.
"""

import time
from decimal import Decimal

from httpx import AsyncClient, HTTPError
from loguru import logger

from config.settings import PUSHINPAY_API_URL, PUSHINPAY_TIMEOUT, PUSHINPAY_TOKEN
from services.errors import UpstreamFailureError


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


class PushinPayClient:
    def __init__(
        self,
        token: str = PUSHINPAY_TOKEN,
        base_url: str = PUSHINPAY_API_URL,
        timeout: float = PUSHINPAY_TIMEOUT,
        transport=None,
    ):
        self.token = token
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.configured:
            raise UpstreamFailureError("Payment provider is not configured")

        try:
            async with AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(path, json=payload, headers=self._headers())
            response.raise_for_status()
            return response.json()
        except HTTPError as error:
            logger.error(f"PushinPay {path} failed: {error}")
            raise UpstreamFailureError("Payment provider request failed") from error
        except ValueError as error:
            logger.error(f"PushinPay {path} returned a non JSON body: {error}")
            raise UpstreamFailureError("Payment provider returned an invalid response") from error

    async def create_pix_payment(self, value, webhook_url: str, description: str) -> dict:
        payload = {
            "value": to_cents(value),
            "webhook_url": webhook_url,
            "external_reference": f"SUB_{int(time.time() * 1000)}",
            "description": description,
            "expires_in": 3600,
        }
        data = await self._post("/pix/cashIn", payload)
        logger.info(f"PIX payment {data.get('id') or data.get('txid')} created for {value}")
        return data

    async def create_pix_withdrawal(self, amount, pix_key: str, description: str) -> dict:
        payload = {
            "value": to_cents(amount),
            "pix_key": pix_key,
            "description": description,
            "external_reference": f"WITHDRAW_{int(time.time() * 1000)}",
        }
        data = await self._post("/pix/cashOut", payload)
        logger.info(f"PIX withdrawal {data.get('id') or data.get('txid')} sent for {amount}")
        return data


def get_pushinpay() -> PushinPayClient:
    return PushinPayClient()
