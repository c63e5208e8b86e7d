# signals_trader/broker/bitunix.py
import hashlib
import json
import logging
import secrets
import time
from typing import Dict, Optional

import httpx

from ..models import OrderRequest
from .base import JSON, BrokerBase, BrokerError

log = logging.getLogger(__name__)

BITUNIX_API_BASE = "https://fapi.bitunix.com"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


class BitunixBroker(BrokerBase):
    """
    Клиент Bitunix Futures (USDT-M) под ключи конкретного пользователя.
    - подпись: digest = sha256(nonce + ts + key + query + body), sign = sha256(digest + secret)
    - retCode != 0 не исключение: ответ возвращается как есть
    - без ретраев: повтор заявки решает пользователь
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        base_url: str = BITUNIX_API_BASE,
        timeout_sec: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key or not api_secret:
            raise ValueError("API key and secret must be provided.")
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_sec, connect=timeout_sec),
        )

    # ---------- signing ----------

    def _sign(self, nonce: str, timestamp: str, query: str, body: str) -> str:
        digest = _sha256(nonce + timestamp + self.api_key + query + body)
        return _sha256(digest + self.api_secret)

    def _signed_headers(self, query: str, body: str) -> Dict[str, str]:
        nonce = secrets.token_hex(16)
        ts = str(_now_ms())
        return {
            "api-key": self.api_key,
            "nonce": nonce,
            "timestamp": ts,
            "sign": self._sign(nonce, ts, query, body),
            "language": "en-US",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _query_string(query: Optional[JSON]) -> str:
        # Bitunix подписывает параметры как отсортированные key+value без разделителей
        if not query:
            return ""
        items = sorted((k, str(v)) for k, v in query.items() if v is not None)
        return "".join(f"{k}{v}" for k, v in items)

    # ---------- core request ----------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: Optional[JSON] = None,
        body: Optional[JSON] = None,
        auth: bool = True,
        opname: str = "",
    ) -> JSON:
        payload = json.dumps(body, separators=(",", ":")) if body is not None else ""
        headers = self._signed_headers(self._query_string(query), payload) if auth else None
        try:
            if method.upper() == "GET":
                resp = await self._client.get(path, params=query, headers=headers)
            else:
                resp = await self._client.post(path, params=query, content=payload, headers=headers)
        except httpx.HTTPError as e:
            raise BrokerError(f"HTTP error {opname or path}: {e}") from e

        try:
            j = resp.json()
        except ValueError as e:
            raise BrokerError(f"HTTP {resp.status_code} on {opname or path}: non-JSON response") from e
        if not isinstance(j, dict):
            raise BrokerError(f"Unexpected payload on {opname or path}: {j!r}")

        if j.get("code") != 0:
            log.error("Bitunix %s failed: code=%s msg=%s", opname or path, j.get("code"), j.get("msg"))
        return j

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------- market ----------

    async def get_ticker_price(self, symbol: str) -> Optional[float]:
        try:
            j = await self._request(
                "GET",
                "/api/v1/futures/market/tickers",
                query={"symbols": symbol},
                auth=False,
                opname="tickers",
            )
        except BrokerError as e:
            log.warning("Bitunix: ticker %s unavailable: %s", symbol, e)
            return None
        if j.get("code") != 0:
            return None
        for row in j.get("data") or []:
            if row.get("symbol") == symbol:
                try:
                    return float(row.get("lastPrice"))
                except (TypeError, ValueError):
                    return None
        return None

    # ---------- account ----------

    async def get_balance(self) -> JSON:
        return await self._request(
            "GET",
            "/api/v1/futures/account/balance",
            opname="balance",
        )

    async def set_leverage(self, symbol: str, leverage: int) -> JSON:
        return await self._request(
            "POST",
            "/api/v1/futures/account/change_leverage",
            body={"symbol": symbol, "leverage": leverage, "marginCoin": "USDT"},
            opname="set_leverage",
        )

    # ---------- trading ----------

    async def place_order(self, order: OrderRequest) -> JSON:
        return await self._request(
            "POST",
            "/api/v1/futures/trade/place_order",
            body=order.to_payload(),
            opname="place_order",
        )
