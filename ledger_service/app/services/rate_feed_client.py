from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import httpx


logger = logging.getLogger(__name__)


RATE_FEED_USER_AGENT = "nsl-ledger/rate-feed"


class RateFeedClient:
    """USD 기준 환율 피드 HTTP 클라이언트.

    응답은 `{"rates": {"NGN": 1650.0, ...}}` 형태(1 USD 당 단위 수)를 기대한다.
    transport 는 테스트에서 httpx.MockTransport 를 주입하기 위한 것이다.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
            headers={"User-Agent": RATE_FEED_USER_AGENT, "Accept": "application/json"},
        )

    def fetch_rates(self) -> dict[str, Decimal]:
        """피드에서 통화 코드 -> rate_to_usd 맵을 가져온다. 실패 시 RuntimeError."""

        client = self._build_client()
        try:
            resp = client.get(self._url)
        except httpx.RequestError as exc:  # noqa: BLE001
            raise RuntimeError(f"failed to fetch rate feed: {exc}") from exc
        finally:
            client.close()

        if resp.status_code != 200:
            raise RuntimeError(f"rate feed returned status {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise RuntimeError("rate feed returned invalid JSON") from exc

        raw_rates = body.get("rates") if isinstance(body, dict) else None
        if not isinstance(raw_rates, dict):
            raise RuntimeError("rate feed response has no 'rates' object")

        rates: dict[str, Decimal] = {}
        for code, raw in raw_rates.items():
            try:
                value = Decimal(str(raw))
            except InvalidOperation:
                logger.warning("skipping invalid feed rate code=%s value=%r", code, raw)
                continue
            if not value.is_finite() or value <= 0:
                logger.warning("skipping non-positive feed rate code=%s value=%r", code, raw)
                continue
            rates[str(code).upper()] = value
        return rates
