from __future__ import annotations

from app.core.config.methodology import Methodology
from app.normalize.utils import normalize_key
from app.reference.models import GeoTable, RoleTable
from app.schemas.salary import NormalizedRole, ResolvedLocation, SalaryFigure

from .fx import FxConverter
from .provenance import LookupLedger

_CITY_PREMIUM_MODES = ("onsite", "hybrid")


class CompensationModel:
    """Expected annual gross range from role base pay, seniority and location."""

    def __init__(self, roles: RoleTable, geo: GeoTable, fx: FxConverter, methodology: Methodology) -> None:
        self._roles = roles
        self._geo = geo
        self._fx = fx
        self._methodology = methodology

    def location_index(self, location: ResolvedLocation, work_mode: str) -> tuple[float, list[str]]:
        m = self._methodology
        if location.country == "Global":
            return m.remote_global_index, [f"remote-global index {m.remote_global_index:g}"]

        country = self._geo.by_iso(location.iso_country_code)
        if country is None:
            return m.unresolved_index, [f"unresolved-location index {m.unresolved_index:g}"]

        index = country.pay_index
        factors = [f"{country.name} pay index {country.pay_index:g}"]
        if (
            location.city
            and location.resolved_by in ("major_city", "city_scan")
            and work_mode in _CITY_PREMIUM_MODES
        ):
            city = country.find_city(normalize_key(location.city))
            if city is not None and city.premium != 1:
                index *= city.premium
                factors.append(f"{city.name} premium {city.premium:g}")
        if work_mode == "remote_country":
            index *= m.remote_country_factor
            factors.append(f"remote-country factor {m.remote_country_factor:g}")
        return index, factors

    def _data_quality(self, role: NormalizedRole, location: ResolvedLocation) -> float:
        resolved = int(role.level != "unknown") + int(location.iso_country_code != "XX")
        if resolved == 2:
            return 0.6
        if resolved == 1:
            return 0.5
        return 0.4

    def _round(self, value: float) -> float:
        step = self._methodology.range_rounding
        if step <= 0:
            return round(value)
        return round(value / step) * step

    def expected_range(
        self,
        role: NormalizedRole,
        location: ResolvedLocation,
        work_mode: str,
        currency: str,
        ledger: LookupLedger,
    ) -> SalaryFigure:
        m = self._methodology
        family = self._roles.family(role.slug)
        if family is None:
            base = m.unknown_role_base_usd
            factors = [f"unrecognised role base {base:,.0f} USD"]
        else:
            base = family.base_usd
            factors = [f"{family.name} base {base:,.0f} USD"]

        level_multiplier = m.level_multipliers.get(role.level, 1.0)
        factors.append(f"{role.level} multiplier {level_multiplier:g}")

        index, location_factors = self.location_index(location, work_mode)
        factors.extend(location_factors)

        midpoint = base * level_multiplier * index
        low = self._fx.convert(midpoint * m.range_spread_min, "USD", currency, ledger)
        high = self._fx.convert(midpoint * m.range_spread_max, "USD", currency, ledger)

        ledger.record_source(
            "expected_salary_range",
            "inference",
            f"compensation-model {self._roles.version} / {self._geo.version}",
            self._roles.as_of,
        )
        return SalaryFigure(
            min=self._round(low),
            max=self._round(high),
            currency=currency,
            period="year",
            basis="gross",
            data_quality=self._data_quality(role, location),
            inference_basis="; ".join(factors),
        )
