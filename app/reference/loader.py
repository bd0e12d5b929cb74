from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from app.normalize.utils import normalize_key

from .models import (
    ApproxTaxRate,
    ColEntry,
    ColTable,
    ContributionBand,
    CountryInfo,
    FxTable,
    GeoTable,
    MajorCity,
    ReferenceData,
    RoleFamily,
    RoleTable,
    SeniorityRule,
    TaxModel,
    TaxTable,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).with_name("data")


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise RuntimeError(f"Reference table not found at '{path}'.")
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except OSError as exc:
        raise RuntimeError(f"Failed to read reference table '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Invalid JSON in reference table '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise RuntimeError(f"Invalid reference table '{path}': expected a top-level object.")
    return raw


def _require(raw: Mapping[str, Any], key: str, source: str) -> Any:
    if key not in raw or raw[key] is None:
        raise RuntimeError(f"Reference table '{source}' is missing required key '{key}'.")
    return raw[key]


def _keys(values: Any) -> tuple[str, ...]:
    return tuple(key for key in (normalize_key(str(value)) for value in values or []) if key)


def _load_roles(raw: dict[str, Any]) -> RoleTable:
    families = tuple(
        RoleFamily(
            slug=str(_require(item, "slug", "roles.json")),
            name=str(_require(item, "name", "roles.json")),
            base_usd=float(_require(item, "base_usd", "roles.json")),
            keywords=_keys(item.get("keywords")),
        )
        for item in _require(raw, "families", "roles.json")
    )
    seniority = tuple(
        SeniorityRule(
            level=str(_require(item, "level", "roles.json")),
            rank=int(_require(item, "rank", "roles.json")),
            keywords=_keys(item.get("keywords")),
        )
        for item in _require(raw, "seniority", "roles.json")
    )
    return RoleTable(
        version=str(_require(raw, "version", "roles.json")),
        as_of=str(_require(raw, "as_of", "roles.json")),
        families=families,
        seniority=seniority,
    )


def _load_country(item: dict[str, Any]) -> CountryInfo:
    cities = tuple(
        MajorCity(
            name=str(city["name"]),
            admin_area=city.get("admin_area"),
            lat=float(city["lat"]),
            lng=float(city["lng"]),
            premium=float(city.get("premium", 1.0)),
            aliases=_keys(city.get("aliases")),
        )
        for city in item.get("major_cities", [])
    )
    admin_areas = {
        str(name): _keys(aliases) for name, aliases in (item.get("admin_areas") or {}).items()
    }
    country = CountryInfo(
        iso=str(_require(item, "iso", "countries.json")).upper(),
        name=str(_require(item, "name", "countries.json")),
        currency=str(_require(item, "currency", "countries.json")).upper(),
        pay_index=float(item.get("pay_index", 1.0)),
        col_tier=str(item.get("col_tier", "upper_middle")),
        aliases=_keys(item.get("aliases")),
        default_city=str(_require(item, "default_city", "countries.json")),
        admin_areas=MappingProxyType(admin_areas),
        major_cities=cities,
    )
    if country.find_city(normalize_key(country.default_city)) is None:
        raise RuntimeError(
            f"Reference table 'countries.json': default city '{country.default_city}' "
            f"is not a major city of {country.iso}."
        )
    return country


def _load_geo(raw: dict[str, Any]) -> GeoTable:
    return GeoTable(
        version=str(_require(raw, "version", "countries.json")),
        as_of=str(_require(raw, "as_of", "countries.json")),
        countries=tuple(_load_country(item) for item in _require(raw, "countries", "countries.json")),
    )


def _load_brackets(raw: list[Any], source: str) -> tuple[tuple[float | None, float], ...]:
    brackets: list[tuple[float | None, float]] = []
    for pair in raw:
        upper, rate = pair
        brackets.append((None if upper is None else float(upper), float(rate)))
    if not brackets or brackets[-1][0] is not None:
        raise RuntimeError(f"Tax model '{source}' must end with an open-ended bracket.")
    return tuple(brackets)


def _load_tax(raw: dict[str, Any]) -> TaxTable:
    models: dict[str, TaxModel] = {}
    for code, item in _require(raw, "models", "tax.json").items():
        taper = item.get("allowance_taper") or {}
        models[code.upper()] = TaxModel(
            country_code=code.upper(),
            version=str(_require(item, "version", "tax.json")),
            currency=str(_require(item, "currency", "tax.json")).upper(),
            name=str(item.get("name", code)),
            allowance=float(item.get("allowance", 0.0)),
            brackets=_load_brackets(_require(item, "brackets", "tax.json"), code),
            contributions=tuple(
                ContributionBand(
                    name=str(band["name"]),
                    rate=float(band["rate"]),
                    floor=float(band.get("floor", 0.0)),
                    cap=None if band.get("cap") is None else float(band["cap"]),
                )
                for band in item.get("contributions", [])
            ),
            allowance_taper_threshold=None if not taper else float(taper["threshold"]),
            allowance_taper_rate=float(taper.get("rate", 0.0)) if taper else 0.0,
            deduct_contributions=bool(item.get("deduct_contributions", False)),
            abatement_rate=float(item.get("abatement_rate", 0.0)),
            tax_credit=float(item.get("tax_credit", 0.0)),
            zero_tax_threshold=None if item.get("zero_tax_threshold") is None else float(item["zero_tax_threshold"]),
            surcharge_rate=float(item.get("surcharge_rate", 0.0)),
            local_rate=float(item.get("local_rate", 0.0)),
            regional_rates=MappingProxyType(
                {normalize_key(name): float(rate) for name, rate in (item.get("regional_rates") or {}).items()}
            ),
        )
    approx = {
        code.upper(): ApproxTaxRate(
            country_code=code.upper(),
            version=str(_require(item, "version", "tax.json")),
            effective_rate=float(_require(item, "effective_rate", "tax.json")),
        )
        for code, item in (raw.get("approx") or {}).items()
    }
    default_country = str(_require(raw, "default_country", "tax.json")).upper()
    if default_country not in models:
        raise RuntimeError(f"Reference table 'tax.json': default country '{default_country}' has no full model.")
    return TaxTable(
        as_of=str(_require(raw, "as_of", "tax.json")),
        default_country=default_country,
        models=MappingProxyType(models),
        approx=MappingProxyType(approx),
    )


def _col_entries(level: str, raw: Mapping[str, Any]) -> Mapping[str, ColEntry]:
    return MappingProxyType(
        {
            normalize_key(name): ColEntry(
                level=level,
                name=name,
                categories=MappingProxyType({str(k): float(v) for k, v in categories.items()}),
            )
            for name, categories in raw.items()
        }
    )


def _load_col(raw: dict[str, Any]) -> ColTable:
    return ColTable(
        version=str(_require(raw, "version", "cost_of_living.json")),
        as_of=str(_require(raw, "as_of", "cost_of_living.json")),
        currency=str(raw.get("currency", "USD")).upper(),
        source=str(raw.get("source", "bundled-col-table")),
        categories=tuple(_require(raw, "categories", "cost_of_living.json")),
        world_baseline=MappingProxyType(
            {str(k): float(v) for k, v in _require(raw, "world_baseline", "cost_of_living.json").items()}
        ),
        tier_multipliers=MappingProxyType(
            {str(k): float(v) for k, v in _require(raw, "tier_multipliers", "cost_of_living.json").items()}
        ),
        cities=MappingProxyType(
            {iso.upper(): _col_entries("city", entries) for iso, entries in (raw.get("cities") or {}).items()}
        ),
        admin_areas=MappingProxyType(
            {iso.upper(): _col_entries("admin_area", entries) for iso, entries in (raw.get("admin_areas") or {}).items()}
        ),
        countries=MappingProxyType(
            {
                iso.upper(): ColEntry(
                    level="country",
                    name=iso.upper(),
                    categories=MappingProxyType({str(k): float(v) for k, v in categories.items()}),
                )
                for iso, categories in (raw.get("countries") or {}).items()
            }
        ),
    )


def _load_fx(raw: dict[str, Any]) -> FxTable:
    rates = {str(code).upper(): float(rate) for code, rate in _require(raw, "usd_per_unit", "fx.json").items()}
    if rates.get("USD") != 1.0:
        raise RuntimeError("Reference table 'fx.json' must quote USD at exactly 1.0.")
    if any(rate <= 0 for rate in rates.values()):
        raise RuntimeError("Reference table 'fx.json' contains a non-positive rate.")
    return FxTable(
        version=str(_require(raw, "version", "fx.json")),
        as_of=str(_require(raw, "as_of", "fx.json")),
        source=str(raw.get("source", "bundled-fx-snapshot")),
        usd_per_unit=MappingProxyType(rates),
    )


def load_reference_data(data_dir: str | Path | None = None) -> ReferenceData:
    base = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    reference = ReferenceData(
        roles=_load_roles(_read_json(base / "roles.json")),
        geo=_load_geo(_read_json(base / "countries.json")),
        tax=_load_tax(_read_json(base / "tax.json")),
        col=_load_col(_read_json(base / "cost_of_living.json")),
        fx=_load_fx(_read_json(base / "fx.json")),
    )
    logger.info(
        "reference_tables_loaded roles=%s geo=%s col=%s fx=%s tax_models=%s",
        reference.roles.version,
        reference.geo.version,
        reference.col.version,
        reference.fx.version,
        len(reference.tax.models),
    )
    return reference
