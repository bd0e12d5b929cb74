from __future__ import annotations

import re
from difflib import SequenceMatcher

from app.core.config.methodology import get_methodology
from app.reference import get_reference_data
from app.reference.models import CountryInfo, GeoTable, MajorCity
from app.schemas.salary import ResolvedLocation

from .utils import contains_any, normalize_key, normalize_line

GLOBAL_COUNTRY = "Global"
UNKNOWN_COUNTRY = "Unknown"
NO_ISO = "XX"

CONFIDENCE_MAJOR_CITY = 0.9
CONFIDENCE_CITY_SCAN = 0.8
CONFIDENCE_DEFAULT_CITY = 0.75
CONFIDENCE_COUNTRY = 0.7
CONFIDENCE_REMOTE = 0.5
CONFIDENCE_UNRESOLVED = 0.4
CONFIDENCE_EMPTY = 0.3

_REMOTE_MARKERS = (
    "remote",
    "anywhere",
    "worldwide",
    "work from",
    "wfh",
    "distributed",
    "home based",
    "telecommute",
)
_WORK_MODE_NOTES = ("hybrid", "remote", "onsite", "on site", "in office", "office", "flexible", "wfh")
_REMOTE_STRIP_RE = re.compile(
    r"\b(?:fully\s+remote|remote|anywhere|worldwide|wfh|work\s+from\s+(?:home|anywhere)|distributed|telecommute)\b",
    re.IGNORECASE,
)
_PAREN_RE = re.compile(r"\(([^)]*)\)")
_SEGMENT_SPLIT_RE = re.compile(r"[,;|/]")
_FUZZY_MIN_LENGTH = 4


def _expand_parentheticals(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        inner = match.group(1)
        if not inner.strip() or contains_any(normalize_key(inner), _WORK_MODE_NOTES):
            return " "
        return f", {inner}"

    return _PAREN_RE.sub(_replace, text)


def _segments(text: str) -> list[str]:
    parts = [normalize_line(part) for part in _SEGMENT_SPLIT_RE.split(text)]
    return [part for part in parts if normalize_key(part)]


class LocationResolver:
    def __init__(self, geo: GeoTable, fuzzy_ratio: float = 0.85) -> None:
        self._geo = geo
        self._fuzzy_ratio = fuzzy_ratio

    def resolve(self, raw: str | None, work_mode: str | None = None) -> ResolvedLocation:
        text = normalize_line(raw or "")
        if work_mode == "remote_global":
            return self._global(CONFIDENCE_REMOTE, "remote")
        if work_mode == "remote_country":
            text = normalize_line(_REMOTE_STRIP_RE.sub(" ", text))
            if not normalize_key(text):
                return self._global(CONFIDENCE_REMOTE, "remote") if raw and raw.strip() else self._global(CONFIDENCE_EMPTY, "empty")
        elif text and contains_any(normalize_key(text), _REMOTE_MARKERS):
            return self._global(CONFIDENCE_REMOTE, "remote")

        segments = _segments(_expand_parentheticals(text))
        if not segments:
            return self._global(CONFIDENCE_EMPTY, "empty")
        if len(segments) == 1:
            return self._resolve_single(segments[0])
        return self._resolve_segments(segments)

    def match_country(self, key: str) -> CountryInfo | None:
        if not key:
            return None
        for country in self._geo.countries:
            if country.matches(key):
                return country
        if len(key) < _FUZZY_MIN_LENGTH:
            return None

        best: CountryInfo | None = None
        best_ratio = 0.0
        for country in self._geo.countries:
            candidates = [normalize_key(country.name), *country.aliases]
            for candidate in candidates:
                if len(candidate) < _FUZZY_MIN_LENGTH:
                    continue
                ratio = SequenceMatcher(None, key, candidate).ratio()
                if ratio > best_ratio:
                    best, best_ratio = country, ratio
        return best if best_ratio >= self._fuzzy_ratio else None

    def match_admin_area(self, key: str) -> tuple[CountryInfo, str] | None:
        if not key:
            return None
        for country in self._geo.countries:
            area = country.find_admin_area(key)
            if area is not None:
                return country, area
        return None

    def scan_city(self, key: str) -> tuple[CountryInfo, MajorCity] | None:
        if not key:
            return None
        for country in self._geo.countries:
            city = country.find_city(key)
            if city is not None:
                return country, city
        return None

    def _resolve_single(self, segment: str) -> ResolvedLocation:
        key = normalize_key(segment)
        country = self.match_country(key)
        if country is not None:
            return ResolvedLocation(
                country=country.name,
                iso_country_code=country.iso,
                confidence=CONFIDENCE_COUNTRY,
                resolved_by="country",
            )
        hit = self.scan_city(key)
        if hit is not None:
            country, city = hit
            return self._city(country, city, city.admin_area, CONFIDENCE_CITY_SCAN, "city_scan")
        return ResolvedLocation(
            country=UNKNOWN_COUNTRY,
            iso_country_code=NO_ISO,
            confidence=CONFIDENCE_UNRESOLVED,
            resolved_by="unresolved",
        )

    def _resolve_segments(self, segments: list[str]) -> ResolvedLocation:
        last_key = normalize_key(segments[-1])
        leading_key = normalize_key(segments[0])
        admin_area: str | None = None
        country = self.match_country(last_key)
        area_hit = self.match_admin_area(last_key)

        # Two-letter codes such as "CA" or "IN" name both a country and a region.
        if country is not None and area_hit is not None and area_hit[0] is not country:
            if area_hit[0].find_city(leading_key) is not None and country.find_city(leading_key) is None:
                country = None

        if country is None:
            if area_hit is None:
                return self._resolve_single(segments[0])
            country, admin_area = area_hit
            if country.find_city(leading_key) is None:
                elsewhere = self.scan_city(leading_key)
                if elsewhere is not None and elsewhere[0] is not country:
                    other, city = elsewhere
                    return self._city(other, city, city.admin_area, CONFIDENCE_CITY_SCAN, "city_scan")
        elif len(segments) >= 3:
            middle = ", ".join(segments[1:-1])
            admin_area = country.find_admin_area(normalize_key(middle)) or middle

        city = country.find_city(leading_key)
        if city is not None:
            return self._city(country, city, admin_area or city.admin_area, CONFIDENCE_MAJOR_CITY, "major_city")

        leading_area = country.find_admin_area(leading_key)
        if leading_area is not None:
            return ResolvedLocation(
                admin_area=leading_area,
                country=country.name,
                iso_country_code=country.iso,
                confidence=CONFIDENCE_DEFAULT_CITY,
                resolved_by="admin_area",
            )

        default_city = country.find_city(normalize_key(country.default_city))
        if default_city is None:
            return ResolvedLocation(
                admin_area=admin_area,
                country=country.name,
                iso_country_code=country.iso,
                confidence=CONFIDENCE_DEFAULT_CITY,
                resolved_by="country",
            )
        return self._city(country, default_city, admin_area, CONFIDENCE_DEFAULT_CITY, "default_city")

    @staticmethod
    def _city(
        country: CountryInfo,
        city: MajorCity,
        admin_area: str | None,
        confidence: float,
        resolved_by: str,
    ) -> ResolvedLocation:
        return ResolvedLocation(
            city=city.name,
            admin_area=admin_area,
            country=country.name,
            iso_country_code=country.iso,
            lat=city.lat,
            lng=city.lng,
            confidence=confidence,
            resolved_by=resolved_by,
        )

    @staticmethod
    def _global(confidence: float, resolved_by: str) -> ResolvedLocation:
        return ResolvedLocation(
            country=GLOBAL_COUNTRY,
            iso_country_code=NO_ISO,
            confidence=confidence,
            resolved_by=resolved_by,
        )


def resolve_location(raw: str | None, work_mode: str | None = None) -> ResolvedLocation:
    resolver = LocationResolver(get_reference_data().geo, get_methodology().fuzzy_match_ratio)
    return resolver.resolve(raw, work_mode)
