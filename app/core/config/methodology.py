from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .settings import settings

SCHEMA_VERSION = "1.0.0"
METHODOLOGY_VERSION = "2025-09-01.a"

_METHODOLOGY_CONFIG_CACHE: dict[str, Any] | None = None
_DEFAULT_METHODOLOGY_CONFIG_PATH = Path(__file__).resolve().parents[3] / "config" / "methodology.yaml"


def _config_path() -> Path:
    if settings.methodology_config_path:
        return Path(settings.methodology_config_path)
    return _DEFAULT_METHODOLOGY_CONFIG_PATH


def get_methodology_config() -> dict[str, Any]:
    """Load methodology config from repo-level config/methodology.yaml and cache it."""
    global _METHODOLOGY_CONFIG_CACHE

    if _METHODOLOGY_CONFIG_CACHE is not None:
        return _METHODOLOGY_CONFIG_CACHE

    path = _config_path()
    if not path.exists():
        raise RuntimeError(
            f"Methodology config not found at '{path}'. "
            "Expected file: config/methodology.yaml"
        )

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Failed to read methodology config '{path}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in methodology config '{path}': {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(f"Invalid methodology config '{path}': expected a top-level mapping.")

    declared = str(parsed.get("methodology_version", ""))
    if declared != METHODOLOGY_VERSION:
        raise RuntimeError(
            f"Methodology config '{path}' declares version '{declared}', "
            f"but this build implements '{METHODOLOGY_VERSION}'."
        )

    _METHODOLOGY_CONFIG_CACHE = parsed
    return _METHODOLOGY_CONFIG_CACHE


def get_methodology_value(path: str, default: Any = None) -> Any:
    """Get nested config value using dot path notation, e.g. 'affordability.tight_max'."""
    if not path:
        return default

    current: Any = get_methodology_config()
    for key in path.split("."):
        if not isinstance(current, dict):
            return default
        if key not in current:
            return default
        current = current[key]
    return current


@dataclass(frozen=True)
class Methodology:
    version: str
    hours_per_year: float
    days_per_year: float
    months_per_year: float
    experience_buckets: tuple[tuple[float, str], ...]
    above_last_bucket: str
    default_level: str
    fuzzy_match_ratio: float
    location_confidence_threshold: float
    data_quality_buckets: tuple[tuple[float, float], ...]
    data_quality_default: float
    score_min: float
    score_max: float
    tight_max: float
    comfortable_max: float
    level_multipliers: Mapping[str, float]
    range_spread_min: float
    range_spread_max: float
    remote_global_index: float
    remote_country_factor: float
    unresolved_index: float
    unknown_role_base_usd: float
    range_rounding: int
    additional_member_factor: float
    assumptions: Mapping[str, Any]
    default_budget: Mapping[str, Any]
    max_tool_calls: int


def _pairs(value: Any, path: str) -> list[tuple[Any, Any]]:
    if not isinstance(value, list) or not all(isinstance(item, list) and len(item) == 2 for item in value):
        raise RuntimeError(f"Methodology config key '{path}' must be a list of [threshold, value] pairs.")
    return [(item[0], item[1]) for item in value]


def _required(path: str) -> Any:
    value = get_methodology_value(path)
    if value is None:
        raise RuntimeError(f"Methodology config is missing required key '{path}'.")
    return value


@lru_cache(maxsize=1)
def get_methodology() -> Methodology:
    buckets = sorted(
        ((float(limit), str(level)) for limit, level in _pairs(_required("seniority.experience_buckets"), "seniority.experience_buckets")),
        key=lambda item: item[0],
    )
    quality = sorted(
        ((float(threshold), float(score)) for threshold, score in _pairs(_required("salary.data_quality"), "salary.data_quality")),
        key=lambda item: item[0],
        reverse=True,
    )
    multipliers = _required("compensation.level_multipliers")
    if not isinstance(multipliers, dict):
        raise RuntimeError("Methodology config key 'compensation.level_multipliers' must be a mapping.")
    assumptions = _required("assumptions")
    default_budget = _required("computation_budget.default")

    return Methodology(
        version=METHODOLOGY_VERSION,
        hours_per_year=float(get_methodology_value("annualization.hours_per_year", 2080)),
        days_per_year=float(get_methodology_value("annualization.days_per_year", 260)),
        months_per_year=float(get_methodology_value("annualization.months_per_year", 12)),
        experience_buckets=tuple(buckets),
        above_last_bucket=str(get_methodology_value("seniority.above_last_bucket", "lead")),
        default_level=str(get_methodology_value("seniority.default_level", "mid")),
        fuzzy_match_ratio=float(get_methodology_value("location.fuzzy_match_ratio", 0.85)),
        location_confidence_threshold=float(get_methodology_value("location.confidence_threshold", 0.7)),
        data_quality_buckets=tuple(quality),
        data_quality_default=float(get_methodology_value("salary.data_quality_default", 0.8)),
        score_min=float(get_methodology_value("affordability.score_min", -1.0)),
        score_max=float(get_methodology_value("affordability.score_max", 3.0)),
        tight_max=float(get_methodology_value("affordability.tight_max", 0.2)),
        comfortable_max=float(get_methodology_value("affordability.comfortable_max", 0.6)),
        level_multipliers=MappingProxyType({str(k): float(v) for k, v in multipliers.items()}),
        range_spread_min=float(get_methodology_value("compensation.range_spread.min", 0.9)),
        range_spread_max=float(get_methodology_value("compensation.range_spread.max", 1.15)),
        remote_global_index=float(get_methodology_value("compensation.remote_global_index", 0.85)),
        remote_country_factor=float(get_methodology_value("compensation.remote_country_factor", 0.95)),
        unresolved_index=float(get_methodology_value("compensation.unresolved_index", 0.8)),
        unknown_role_base_usd=float(get_methodology_value("compensation.unknown_role_base_usd", 70000)),
        range_rounding=int(get_methodology_value("compensation.rounding", 100)),
        additional_member_factor=float(get_methodology_value("household.additional_member_factor", 0.7)),
        assumptions=MappingProxyType(dict(assumptions)),
        default_budget=MappingProxyType(dict(default_budget)),
        max_tool_calls=int(get_methodology_value("computation_budget.max_tool_calls", 10)),
    )
