import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional

import httpx
import structlog

from config.settings import settings
from .errors import (
    CalculatorError,
    InvalidCurrency,
    NetworkError,
    NetworkTimeout,
    UpstreamError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def round_half_up(value: float, places: int = 4) -> float:
    """Decimal rounding on the shortest repr of value, so 2.00005 -> 2.0001."""
    if not math.isfinite(value):
        raise ValueError(f"cannot round non-finite value {value!r}")
    exact = Decimal(str(value))
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        # enough digits for every integer digit plus the requested places
        ctx.prec = max(ctx.prec, exact.adjusted() + places + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def normalize_code(code: Optional[str], side: str) -> str:
    if code is None or not str(code).strip():
        raise InvalidCurrency(f"{side} currency code cannot be null or empty")
    return str(code).strip().upper()


@dataclass(frozen=True)
class ExchangeQuote:
    source: str
    target: str
    rate: float
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def same_currency(self) -> bool:
        return self.source == self.target


@dataclass(frozen=True)
class Conversion:
    amount: float
    source: str
    target: str
    converted: float
    rate: float


class RateResolver:
    """Exchange rates from an open.er-api.com style service.

    One GET per lookup, bounded by the connect and read timeouts; no retry.
    Pass ``client`` to share a pooled httpx.AsyncClient (or a mock transport in tests).
    """

    def __init__(
        self,
        base_url: str = "https://open.er-api.com/v6/latest",
        *,
        connect_timeout_ms: int = 20000,
        read_timeout_ms: int = 25000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(
            connect=connect_timeout_ms / 1000.0,
            read=read_timeout_ms / 1000.0,
            write=read_timeout_ms / 1000.0,
            pool=connect_timeout_ms / 1000.0,
        )
        self._client = client

    @classmethod
    def from_settings(cls, client: Optional[httpx.AsyncClient] = None) -> "RateResolver":
        return cls(
            settings.EXCHANGE_API_BASE_URL,
            connect_timeout_ms=settings.CONNECT_TIMEOUT_MS,
            read_timeout_ms=settings.READ_TIMEOUT_MS,
            client=client,
        )

    async def resolve(self, source: str, target: str) -> ExchangeQuote:
        src = normalize_code(source, "Source")
        dst = normalize_code(target, "Target")
        if src == dst:
            return ExchangeQuote(src, dst, 1.0)
        rate = await self._fetch_rate(src, dst)
        return ExchangeQuote(src, dst, round_half_up(rate))

    async def convert(self, amount: float, source: str, target: str) -> Conversion:
        if not math.isfinite(amount):
            raise ValidationError("Amount must be a finite number")
        if amount < 0:
            raise ValidationError("Amount cannot be negative")
        src = normalize_code(source, "Source")
        dst = normalize_code(target, "Target")
        if src == dst:
            log.info("currency_conversion", amount=amount, source=src, target=dst, same_currency=True)
            return Conversion(amount, src, dst, amount, 1.0)

        rate = await self._fetch_rate(src, dst)
        if not math.isfinite(amount * rate):
            raise ValidationError("Converted amount is out of range")
        converted = round_half_up(amount * rate)
        log.info("currency_conversion", amount=amount, source=src, target=dst, converted=converted, rate=rate)
        return Conversion(amount, src, dst, converted, round_half_up(rate))

    async def describe(self, source: str, target: str) -> str:
        """Human-readable rate line for prompts; failures are folded into the text."""
        try:
            quote = await self.resolve(source, target)
        except CalculatorError as e:
            log.error("exchange_rate_lookup_failed", source=source, target=target, error=str(e))
            return f"Exchange rate lookup failed: {e}"
        if quote.same_currency:
            return f"1 {quote.source} = 1 {quote.target} (same currency)"
        return f"1 {quote.source} = {quote.rate:.4f} {quote.target}"

    async def _fetch_rate(self, src: str, dst: str) -> float:
        url = f"{self.base_url}/{src}"
        log.debug("fetching_exchange_rates", url=url)
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url)
        except httpx.TimeoutException as e:
            log.error("exchange_rate_timeout", source=src, target=dst, error=repr(e))
            raise NetworkTimeout(
                "Currency conversion failed due to network timeout. Please try again later."
            ) from e
        except httpx.TransportError as e:
            log.error("exchange_rate_network_error", source=src, target=dst, error=repr(e))
            raise NetworkError(
                "Currency conversion failed due to connection error. Please try again later."
            ) from e

        if not resp.is_success:
            log.error("exchange_rate_http_error", source=src, target=dst, status=resp.status_code)
            raise UpstreamError(f"HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamError("malformed JSON response") from e
        if not isinstance(body, dict):
            raise UpstreamError("malformed JSON response")

        if body.get("result") != "success":
            error_type = body.get("error-type") or "unknown error"
            log.error("exchange_rate_api_error", source=src, error_type=error_type)
            raise UpstreamError(str(error_type))

        rates = body.get("rates")
        if not isinstance(rates, dict):
            raise UpstreamError("response has no rate table")
        if dst not in rates:
            log.error("unsupported_target_currency", target=dst)
            raise InvalidCurrency(f"Unsupported target currency code: {dst}")

        rate = rates[dst]
        # bool is an int subclass; NaN and Infinity parse as floats
        value = math.nan
        if isinstance(rate, (int, float)) and not isinstance(rate, bool):
            try:
                value = float(rate)
            except OverflowError:
                value = math.inf
        if not math.isfinite(value) or value <= 0:
            log.error("invalid_exchange_rate", target=dst, rate=rate)
            raise UpstreamError(f"invalid exchange rate for {dst}: {rate!r}")
        return value
