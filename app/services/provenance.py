from __future__ import annotations

from app.reference.models import FxQuote
from app.schemas.salary import CacheMeta, Confidence, NormalizedRole, ProvenanceEntry, ResolvedLocation


def as_of_timestamp(as_of: str) -> str:
    """Table snapshots carry a date; provenance wants a full UTC timestamp."""
    value = (as_of or "").strip()
    if not value:
        return "1970-01-01T00:00:00Z"
    if "T" in value:
        return value if value.endswith("Z") else f"{value}Z"
    return f"{value}T00:00:00Z"


def _append_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


class LookupLedger:
    """Per-request record of every table/API lookup, its cache status and the live-call budget."""

    def __init__(self, tool_call_limit: int, *, early_stop: bool = True) -> None:
        self.tool_call_limit = tool_call_limit
        self.early_stop = early_stop
        self.tool_calls_used = 0
        self.notes: list[str] = []
        self.fx_quotes: list[FxQuote] = []
        self._sources: list[ProvenanceEntry] = []
        self._seen_sources: set[tuple[str, str]] = set()
        self._hits: list[str] = []
        self._misses: list[str] = []

    def record_source(self, field: str, source_type: str, url_or_name: str, as_of: str) -> None:
        key = (field, url_or_name)
        if key in self._seen_sources:
            return
        self._seen_sources.add(key)
        self._sources.append(
            ProvenanceEntry(
                field=field,
                source_type=source_type,
                url_or_name=url_or_name,
                retrieved_at=as_of_timestamp(as_of),
            )
        )

    def hit(self, key: str) -> None:
        _append_unique(self._hits, key)

    def miss(self, key: str) -> None:
        _append_unique(self._misses, key)

    def note(self, text: str) -> None:
        _append_unique(self.notes, text)

    def try_consume_tool_call(self, purpose: str) -> bool:
        if self.tool_calls_used >= self.tool_call_limit:
            self.note(f"tool call budget <={self.tool_call_limit} exhausted; {purpose} served from bundled tables")
            return False
        self.tool_calls_used += 1
        return True

    def record_fx(self, quote: FxQuote) -> None:
        if quote not in self.fx_quotes:
            self.fx_quotes.append(quote)

    @property
    def sources(self) -> list[ProvenanceEntry]:
        return list(self._sources)

    @property
    def cache_meta(self) -> CacheMeta:
        return CacheMeta(cache_hits=list(self._hits), cache_misses=list(self._misses))

    @property
    def fx_used(self) -> bool:
        return bool(self.fx_quotes)

    @property
    def fx_rate_date(self) -> str | None:
        if not self.fx_quotes:
            return None
        return max(quote.as_of_date for quote in self.fx_quotes)

    def fx_model_version(self, default: str) -> str:
        if not self.fx_quotes:
            return default
        return self.fx_quotes[-1].model_version


def assess_confidence(
    *,
    listed_salary_present: bool,
    location: ResolvedLocation,
    role: NormalizedRole,
    experience_years: float | None,
    location_threshold: float,
    fallback_reasons: list[str] | None = None,
) -> Confidence:
    reasons: list[str] = []
    signals = 0

    if listed_salary_present:
        signals += 1
        reasons.append("Listed salary parsed from the posting")
    else:
        reasons.append("No usable listed salary; affordability could not be computed")

    if location.confidence >= location_threshold:
        signals += 1
        reasons.append(f"Location resolved with confidence {location.confidence:.2f}")
    else:
        reasons.append(f"Location resolution is uncertain (confidence {location.confidence:.2f})")

    if experience_years is not None or role.level_source == "title":
        signals += 1
        if role.level_source == "title":
            reasons.append(f"Seniority '{role.level}' stated in the job title")
        else:
            reasons.append(f"Experience of {experience_years:g} years provided")
    elif role.level_source == "default":
        reasons.append(f"Seniority defaulted to '{role.level}'; no title keyword or experience given")
    else:
        reasons.append("Role not recognised; seniority unknown")

    for reason in fallback_reasons or []:
        if reason not in reasons:
            reasons.append(reason)

    if signals >= 3:
        level = "high"
    elif signals == 2:
        level = "medium"
    else:
        level = "low"
    return Confidence(level=level, reasons=reasons)
