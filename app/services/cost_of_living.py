from __future__ import annotations

from app.normalize.utils import normalize_key
from app.reference.models import ColEntry, ColTable, GeoTable
from app.reference.provider import CostOfLivingSource
from app.schemas.salary import ColResult, ResolvedLocation

from .fx import FxConverter
from .provenance import LookupLedger


class TableCostOfLivingSource:
    """Serves the bundled cost-of-living snapshot."""

    def __init__(self, table: ColTable) -> None:
        self._table = table
        self.version = table.version
        self.as_of = table.as_of

    def lookup_city(self, iso: str, city: str) -> ColEntry | None:
        return self._table.cities.get(iso.upper(), {}).get(normalize_key(city))

    def lookup_admin_area(self, iso: str, admin_area: str) -> ColEntry | None:
        return self._table.admin_areas.get(iso.upper(), {}).get(normalize_key(admin_area))

    def lookup_country(self, iso: str) -> ColEntry | None:
        return self._table.countries.get(iso.upper())


class CostOfLivingCalculator:
    def __init__(
        self,
        source: CostOfLivingSource,
        table: ColTable,
        geo: GeoTable,
        fx: FxConverter,
        *,
        additional_member_factor: float = 0.7,
    ) -> None:
        self._source = source
        self._table = table
        self._geo = geo
        self._fx = fx
        self._additional_member_factor = additional_member_factor

    def household_factor(self, household_size: int) -> float:
        return 1 + self._additional_member_factor * (max(1, household_size) - 1)

    def _lookup(self, location: ResolvedLocation, ledger: LookupLedger) -> ColEntry | None:
        iso = location.iso_country_code
        version = self._source.version

        candidates: list[tuple[str, str | None]] = []
        if location.city and location.resolved_by != "default_city":
            candidates.append(("city", location.city))
        if location.admin_area:
            candidates.append(("admin_area", location.admin_area))
        if iso != "XX":
            candidates.append(("country", None))

        for level, name in candidates:
            if level == "city":
                entry = self._source.lookup_city(iso, name)
            elif level == "admin_area":
                entry = self._source.lookup_admin_area(iso, name)
            else:
                entry = self._source.lookup_country(iso)
            key = f"col:{level}:{name or iso}:{version}"
            if entry is None:
                ledger.miss(key)
                continue
            ledger.hit(key)
            return entry
        return None

    def _inferred(self, location: ResolvedLocation, ledger: LookupLedger) -> ColEntry:
        country = self._geo.by_iso(location.iso_country_code)
        if country is None:
            multiplier = 1.0
            ledger.note(f"cost of living for {location.country}: world baseline")
        else:
            multiplier = self._table.tier_multipliers.get(country.col_tier, 1.0)
            ledger.note(
                f"cost of living for {country.name}: world baseline x {multiplier:g} ({country.col_tier} tier)"
            )
        return ColEntry(
            level="inference",
            name=location.country,
            categories={name: amount * multiplier for name, amount in self._table.world_baseline.items()},
        )

    def monthly_core_expenses(
        self,
        location: ResolvedLocation,
        currency: str,
        ledger: LookupLedger,
        household_size: int = 1,
    ) -> ColResult:
        entry = self._lookup(location, ledger)
        if entry is None:
            entry = self._inferred(location, ledger)
            source_type = "inference"
        else:
            source_type = "cache"
            ledger.note(f"cost of living from {entry.level} entry '{entry.name}' ({self._source.version})")

        factor = self.household_factor(household_size)
        if factor != 1:
            ledger.note(f"household of {household_size}: expenses x {factor:g}")

        rate = 1.0
        if currency.upper() != self._table.currency:
            rate = self._fx.quote(self._table.currency, currency, ledger).rate

        categories = {
            name: round(entry.categories.get(name, 0.0) * factor * rate)
            for name in self._table.categories
        }
        total = round(entry.total * factor * rate)

        ledger.record_source(
            "monthly_core_expenses",
            source_type,
            f"{self._table.source} {self._source.version}",
            self._source.as_of,
        )
        return ColResult(
            monthly_core_expenses=total,
            model_version=self._source.version,
            method=entry.level,
            currency=currency.upper(),
            categories=categories,
        )
