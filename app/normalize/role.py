from __future__ import annotations

from app.core.config.methodology import Methodology, get_methodology
from app.reference import get_reference_data
from app.reference.models import RoleFamily, RoleTable, SeniorityRule
from app.schemas.salary import NormalizedRole

from .utils import contains_any, normalize_key, normalize_line, slugify

UNKNOWN_LEVEL = "unknown"
UNKNOWN_RANK = -1


def level_from_experience(years: float, methodology: Methodology) -> str:
    for upper_bound, level in methodology.experience_buckets:
        if years < upper_bound:
            return level
    return methodology.above_last_bucket


class RoleNormalizer:
    def __init__(self, table: RoleTable, methodology: Methodology) -> None:
        self._table = table
        self._methodology = methodology
        self._ranks = {rule.level: rule.rank for rule in table.seniority}

    def match_family(self, key: str) -> RoleFamily | None:
        for family in self._table.families:
            if contains_any(key, family.keywords):
                return family
        return None

    def match_seniority(self, key: str) -> SeniorityRule | None:
        for rule in self._table.seniority:
            if contains_any(key, rule.keywords):
                return rule
        return None

    def normalize(self, title: str | None, experience_years: float | None = None) -> NormalizedRole:
        raw_title = normalize_line(title or "")
        key = normalize_key(raw_title)
        family = self.match_family(key) if key else None

        if family is None:
            return NormalizedRole(
                name=raw_title or "Unknown Role",
                slug=slugify(raw_title),
                level_rank=UNKNOWN_RANK,
                level=UNKNOWN_LEVEL,
                level_source="none",
            )

        rule = self.match_seniority(key)
        if rule is not None:
            level, source = rule.level, "title"
        elif experience_years is not None:
            level, source = level_from_experience(experience_years, self._methodology), "experience"
        else:
            level, source = self._methodology.default_level, "default"

        return NormalizedRole(
            name=family.name,
            slug=family.slug,
            level_rank=self._ranks.get(level, UNKNOWN_RANK),
            level=level,
            level_source=source,
        )


def normalize_role(title: str | None, experience_years: float | None = None) -> NormalizedRole:
    normalizer = RoleNormalizer(get_reference_data().roles, get_methodology())
    return normalizer.normalize(title, experience_years)
