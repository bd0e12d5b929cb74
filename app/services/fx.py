from __future__ import annotations

import logging
import threading
import time
from typing import Sequence

import httpx

from app.core.config import Settings
from app.reference.models import FxQuote, FxTable
from app.reference.provider import FxRateSource

from .errors import FxUnavailableError
from .provenance import LookupLedger

logger = logging.getLogger(__name__)

LIVE_FX_MODEL_VERSION = "FX-LIVE-1.0"


class BundledFxSource:
    """Cross rates derived from the bundled USD-per-unit snapshot."""

    def __init__(self, table: FxTable) -> None:
        self._table = table

    @property
    def currencies(self) -> frozenset[str]:
        return frozenset(self._table.usd_per_unit)

    def get_quote(self, base: str, quote: str, ledger: LookupLedger) -> FxQuote | None:
        base_usd = self._table.usd_per_unit.get(base)
        quote_usd = self._table.usd_per_unit.get(quote)
        if base_usd is None or quote_usd is None:
            ledger.miss(f"fx:{base}-{quote}:{self._table.as_of}")
            return None
        ledger.hit(f"fx:{base}-{quote}:{self._table.as_of}")
        return FxQuote(
            base=base,
            quote=quote,
            rate=base_usd / quote_usd,
            as_of_date=self._table.as_of,
            source_name=f"{self._table.source} {self._table.version}",
            source_type="cache",
            model_version=self._table.version,
        )


class FrankfurterFxSource:
    """Live ECB reference rates from a Frankfurter-compatible endpoint, cached per process."""

    def __init__(self, base_url: str, *, timeout_seconds: float, cache_ttl_seconds: int) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache: dict[tuple[str, str], tuple[float, FxQuote]] = {}
        self._lock = threading.Lock()

    def _cached(self, base: str, quote: str) -> FxQuote | None:
        with self._lock:
            entry = self._cache.get((base, quote))
            if entry is None:
                return None
            expires_at, cached = entry
            if expires_at < time.monotonic():
                del self._cache[(base, quote)]
                return None
            return cached

    def _store(self, quote: FxQuote) -> None:
        with self._lock:
            self._cache[(quote.base, quote.quote)] = (time.monotonic() + self._cache_ttl_seconds, quote)

    def get_quote(self, base: str, quote: str, ledger: LookupLedger) -> FxQuote | None:
        cached = self._cached(base, quote)
        if cached is not None:
            ledger.hit(f"fx:{base}-{quote}:{cached.as_of_date}")
            return cached

        if not ledger.try_consume_tool_call(f"FX {base}->{quote}"):
            return None

        url = f"{self._base_url}/latest"
        try:
            with httpx.Client(timeout=self._timeout_seconds, follow_redirects=True) as client:
                response = client.get(url, params={"from": base, "to": quote})
            if response.status_code >= 400:
                logger.warning("fx_live_fetch_failed base=%s quote=%s status=%s", base, quote, response.status_code)
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("fx_live_fetch_failed base=%s quote=%s: %s", base, quote, exc)
            return None

        rates = payload.get("rates") if isinstance(payload, dict) else None
        rate = rates.get(quote) if isinstance(rates, dict) else None
        as_of = payload.get("date") if isinstance(payload, dict) else None
        if not isinstance(rate, (int, float)) or rate <= 0 or not isinstance(as_of, str):
            logger.warning("fx_live_fetch_failed base=%s quote=%s: malformed payload", base, quote)
            return None

        fetched = FxQuote(
            base=base,
            quote=quote,
            rate=float(rate),
            as_of_date=as_of,
            source_name=url,
            source_type="api",
            model_version=LIVE_FX_MODEL_VERSION,
        )
        ledger.miss(f"fx:{base}-{quote}:{as_of}")
        self._store(fetched)
        return fetched


class FxConverter:
    """Walks the configured rate sources in order; the first quote wins."""

    def __init__(self, sources: Sequence[FxRateSource], supported: frozenset[str]) -> None:
        if not sources:
            raise ValueError("FxConverter needs at least one rate source")
        self._sources = tuple(sources)
        self._supported = supported

    def supports(self, code: str | None) -> bool:
        return bool(code) and code.upper() in self._supported

    def quote(self, base: str, quote: str, ledger: LookupLedger) -> FxQuote:
        base, quote = base.upper(), quote.upper()
        for source in self._sources:
            found = source.get_quote(base, quote, ledger)
            if found is None:
                continue
            ledger.record_fx(found)
            ledger.record_source("fx_rate", found.source_type, found.source_name, found.as_of_date)
            ledger.note(f"FX {base}->{quote} at {found.rate:.6g} ({found.as_of_date})")
            return found
        raise FxUnavailableError(base, quote)

    def convert(self, amount: float, base: str, quote: str, ledger: LookupLedger) -> float:
        if base.upper() == quote.upper():
            return amount
        return amount * self.quote(base, quote, ledger).rate


def build_fx_converter(table: FxTable, settings: Settings) -> FxConverter:
    bundled = BundledFxSource(table)
    sources: list[FxRateSource] = [bundled]
    if settings.fx_live_enabled:
        live = FrankfurterFxSource(
            settings.fx_live_url,
            timeout_seconds=settings.fx_timeout_seconds,
            cache_ttl_seconds=settings.fx_cache_ttl_seconds,
        )
        sources = [live, bundled]
    return FxConverter(sources, bundled.currencies)
