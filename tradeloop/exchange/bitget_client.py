"""Bitget spot REST API async client.

Handles all communication with Bitget: candle fetching, balance queries,
and order placement. Requests are signed with HMAC-SHA256 over
``timestamp + METHOD + path + query + body``.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging
import time
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

import httpx

from tradeloop.config import Config
from tradeloop.exchange.exceptions import GatewayError, GatewayUnavailable, OrderRejected
from tradeloop.exchange.models import Balance, Candle, OrderResult

logger = logging.getLogger("tradeloop.exchange")

# Retry settings (reads only; order submission is retried by the caller)
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {500, 502, 503, 504, 429}

_SUCCESS_CODE = "00000"
_QUOTE_COIN = "USDT"

_GRANULARITIES: dict[str, str] = {
    "1m": "1min",
    "5m": "5min",
    "15m": "15min",
    "30m": "30min",
    "1h": "1h",
    "4h": "4h",
    "6h": "6h",
    "12h": "12h",
    "1d": "1day",
    "3d": "3day",
    "1w": "1week",
}


def to_granularity(timeframe: str) -> str:
    """Map an account timeframe (``"15m"``, ``"1h"``, ``"1d"``) to Bitget's."""
    return _GRANULARITIES.get(timeframe, timeframe)


class BitgetClient:
    """Async client wrapping the Bitget v2 spot REST API."""

    def __init__(self, config: Config, retry_base_delay: float = _RETRY_BASE_DELAY) -> None:
        self._config = config
        self._base_url = config.bitget_base_url.rstrip("/")
        self._api_key = config.bitget_api_key
        self._api_secret = config.bitget_api_secret
        self._passphrase = config.bitget_api_passphrase
        self._retry_base_delay = retry_base_delay

    # ── Signing ──────────────────────────────────────────────────────────

    def _sign(self, timestamp: str, method: str, request_path: str, body: str) -> str:
        prehash = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(
            self._api_secret.encode("utf-8"),
            prehash.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def _headers(self, method: str, request_path: str, body: str) -> dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        return {
            "ACCESS-KEY": self._api_key,
            "ACCESS-SIGN": self._sign(timestamp, method, request_path, body),
            "ACCESS-TIMESTAMP": timestamp,
            "ACCESS-PASSPHRASE": self._passphrase,
            "Content-Type": "application/json",
            "locale": "en-US",
        }

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> dict:
        """Execute a signed request and return the ``data`` field.

        GET requests are retried with exponential backoff on transient
        server errors (500, 502, 503, 504) and rate limits (429). POST requests
        make a single attempt. Exhausted or transient failures raise
        ``GatewayUnavailable``.
        """
        request_path = path
        if params:
            request_path = f"{path}?{urlencode(params)}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        url = f"{self._base_url}{request_path}"
        attempts = _MAX_RETRIES if method == "get" else 1
        last_exc: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.request(
                        method.upper(),
                        url,
                        headers=self._headers(method, request_path, body),
                        content=body or None,
                        timeout=self._config.gateway_timeout_seconds,
                    )
            except httpx.TransportError as exc:
                last_exc = exc
                logger.warning(
                    "Bitget %s %s transport error (%s) — attempt %d/%d",
                    method.upper(), path, exc, attempt + 1, attempts,
                )
            else:
                if resp.status_code not in _RETRYABLE_STATUS_CODES:
                    return self._unwrap(method, path, resp)
                last_exc = GatewayUnavailable(
                    f"Bitget {method.upper()} {path} returned {resp.status_code}"
                )
                logger.warning(
                    "Bitget %s %s returned %d — attempt %d/%d",
                    method.upper(), path, resp.status_code, attempt + 1, attempts,
                )

            if attempt + 1 < attempts:
                await asyncio.sleep(self._retry_base_delay * (2 ** attempt))

        raise GatewayUnavailable(str(last_exc)) from last_exc

    @staticmethod
    def _unwrap(method: str, path: str, resp: httpx.Response) -> dict:
        """Check HTTP status and Bitget's envelope, return ``data``."""
        try:
            envelope = resp.json()
        except ValueError:
            envelope = {}

        if resp.is_error or envelope.get("code") != _SUCCESS_CODE:
            message = (
                f"Bitget {method.upper()} {path} failed "
                f"({resp.status_code}, code={envelope.get('code')}): "
                f"{envelope.get('msg', resp.text)}"
            )
            if method == "post":
                raise OrderRejected(message)
            raise GatewayError(message)
        return envelope.get("data")

    # ── Candle data ──────────────────────────────────────────────────────

    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch candlestick data from Bitget.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            timeframe: account timeframe, e.g. ``"15m"``, ``"1h"``, ``"1d"``
            limit: number of candles to request (max 1000)

        Returns:
            List of ``Candle`` objects ordered oldest-first.
        """
        data = await self._request(
            "get",
            "/api/v2/spot/market/candles",
            params={
                "symbol": symbol,
                "granularity": to_granularity(timeframe),
                "limit": str(limit),
            },
        )
        candles = [
            Candle(
                time=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in data or []
        ]
        candles.sort(key=lambda c: c.time)
        return candles

    # ── Account ──────────────────────────────────────────────────────────

    async def get_balance(self) -> Balance:
        """Return the USDT balance of the spot account."""
        data = await self._request("get", "/api/v2/spot/account/assets")

        available = Decimal("0")
        frozen = Decimal("0")
        for asset in data or []:
            if asset.get("coin") != _QUOTE_COIN:
                continue
            available += Decimal(asset.get("available") or "0")
            frozen += Decimal(asset.get("frozen") or "0")
            frozen += Decimal(asset.get("locked") or "0")
        return Balance(available=available, total=available + frozen, frozen=frozen)

    # ── Orders ───────────────────────────────────────────────────────────

    async def submit_order(
        self,
        symbol: str,
        side: str,
        size: Decimal,
        order_type: str = "market",
    ) -> OrderResult:
        """Place a spot order.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            side: ``"buy"`` or ``"sell"``
            size: order quantity
            order_type: ``"market"`` or ``"limit"``

        Returns:
            ``OrderResult`` with the venue order id.
        """
        data = await self._request(
            "post",
            "/api/v2/spot/trade/place-order",
            payload={
                "symbol": symbol,
                "side": side,
                "orderType": order_type,
                "force": "gtc",
                "size": str(size),
            },
        )
        return OrderResult(
            order_id=str(data["orderId"]),
            status="NEW",
            client_order_id=str(data.get("clientOid") or ""),
        )
