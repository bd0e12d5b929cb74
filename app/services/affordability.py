from __future__ import annotations

from app.core.config.methodology import Methodology
from app.schemas.salary import AffordabilityResult


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def label_for_score(score: float, methodology: Methodology) -> str:
    if score < 0:
        return "unaffordable"
    if score <= methodology.tight_max:
        return "tight"
    if score <= methodology.comfortable_max:
        return "comfortable"
    return "very_comfortable"


def score_affordability(
    monthly_net_income: float | None,
    monthly_core_expenses: float | None,
    methodology: Methodology,
) -> AffordabilityResult:
    """Headroom of net income over core expenses, as a fraction of expenses."""
    if monthly_net_income is None or monthly_core_expenses is None or monthly_core_expenses <= 0:
        return AffordabilityResult(score=None, label="unaffordable")

    raw = (monthly_net_income - monthly_core_expenses) / monthly_core_expenses
    clamped = _clamp(raw, methodology.score_min, methodology.score_max)
    # adding 0.0 turns a rounded -0.0 into 0.0
    return AffordabilityResult(score=round(clamped, 2) + 0.0, label=label_for_score(clamped, methodology))
