from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from app.normalize.utils import normalize_key


@dataclass(frozen=True)
class RoleFamily:
    slug: str
    name: str
    base_usd: float
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class SeniorityRule:
    level: str
    rank: int
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class RoleTable:
    version: str
    as_of: str
    families: tuple[RoleFamily, ...]
    seniority: tuple[SeniorityRule, ...]

    def family(self, slug: str) -> RoleFamily | None:
        for family in self.families:
            if family.slug == slug:
                return family
        return None


@dataclass(frozen=True)
class MajorCity:
    name: str
    admin_area: str | None
    lat: float
    lng: float
    premium: float
    aliases: tuple[str, ...] = ()

    def matches(self, key: str) -> bool:
        return key == normalize_key(self.name) or key in self.aliases


@dataclass(frozen=True)
class CountryInfo:
    iso: str
    name: str
    currency: str
    pay_index: float
    col_tier: str
    aliases: tuple[str, ...]
    default_city: str
    admin_areas: Mapping[str, tuple[str, ...]]
    major_cities: tuple[MajorCity, ...]

    def matches(self, key: str) -> bool:
        return key == normalize_key(self.name) or key == self.iso.lower() or key in self.aliases

    def find_city(self, key: str) -> MajorCity | None:
        for city in self.major_cities:
            if city.matches(key):
                return city
        return None

    def find_admin_area(self, key: str) -> str | None:
        for canonical, aliases in self.admin_areas.items():
            if key == normalize_key(canonical) or key in aliases:
                return canonical
        return None


@dataclass(frozen=True)
class GeoTable:
    version: str
    as_of: str
    countries: tuple[CountryInfo, ...]

    def by_iso(self, iso: str) -> CountryInfo | None:
        code = (iso or "").upper()
        for country in self.countries:
            if country.iso == code:
                return country
        return None


@dataclass(frozen=True)
class ContributionBand:
    name: str
    rate: float
    floor: float = 0.0
    cap: float | None = None

    def amount(self, gross: float) -> float:
        upper = gross if self.cap is None else min(gross, self.cap)
        return max(0.0, upper - self.floor) * self.rate


@dataclass(frozen=True)
class TaxModel:
    country_code: str
    version: str
    currency: str
    name: str
    allowance: float
    brackets: tuple[tuple[float | None, float], ...]
    contributions: tuple[ContributionBand, ...] = ()
    allowance_taper_threshold: float | None = None
    allowance_taper_rate: float = 0.0
    deduct_contributions: bool = False
    abatement_rate: float = 0.0
    tax_credit: float = 0.0
    zero_tax_threshold: float | None = None
    surcharge_rate: float = 0.0
    local_rate: float = 0.0
    regional_rates: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ApproxTaxRate:
    country_code: str
    version: str
    effective_rate: float


@dataclass(frozen=True)
class TaxTable:
    as_of: str
    default_country: str
    models: Mapping[str, TaxModel]
    approx: Mapping[str, ApproxTaxRate]


@dataclass(frozen=True)
class ColEntry:
    level: str
    name: str
    categories: Mapping[str, float]

    @property
    def total(self) -> float:
        return float(sum(self.categories.values()))


@dataclass(frozen=True)
class ColTable:
    version: str
    as_of: str
    currency: str
    source: str
    categories: tuple[str, ...]
    world_baseline: Mapping[str, float]
    tier_multipliers: Mapping[str, float]
    cities: Mapping[str, Mapping[str, ColEntry]]
    admin_areas: Mapping[str, Mapping[str, ColEntry]]
    countries: Mapping[str, ColEntry]


@dataclass(frozen=True)
class FxTable:
    version: str
    as_of: str
    source: str
    usd_per_unit: Mapping[str, float]


@dataclass(frozen=True)
class FxQuote:
    base: str
    quote: str
    rate: float
    as_of_date: str
    source_name: str
    source_type: str
    model_version: str


@dataclass(frozen=True)
class ReferenceData:
    roles: RoleTable
    geo: GeoTable
    tax: TaxTable
    col: ColTable
    fx: FxTable
