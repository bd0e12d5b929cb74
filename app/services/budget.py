from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import ValidationError

from app.core.config.methodology import Methodology, get_methodology
from app.schemas.salary import ComputationBudget

from .errors import SalaryRequestError

_TOOL_CALLS_RE = re.compile(r"^\s*<=\s*(\d+)\s*$")


def default_budget(methodology: Methodology | None = None) -> ComputationBudget:
    methodology = methodology or get_methodology()
    return ComputationBudget.model_validate(dict(methodology.default_budget))


def tool_call_limit(budget: ComputationBudget) -> int:
    match = _TOOL_CALLS_RE.match(budget.tool_calls)
    if match is None:
        raise SalaryRequestError("tool_calls must be in the form '<=N'")
    return int(match.group(1))


def validate_computation_budget(
    raw: ComputationBudget | Mapping[str, Any] | None,
    methodology: Methodology | None = None,
) -> ComputationBudget:
    methodology = methodology or get_methodology()
    if raw is None:
        return default_budget(methodology)

    if isinstance(raw, ComputationBudget):
        budget = raw
    else:
        if not isinstance(raw, Mapping):
            raise SalaryRequestError("computation_budget must be an object")
        try:
            budget = ComputationBudget.model_validate(dict(raw))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "computation_budget"
            raise SalaryRequestError(f"Invalid computation budget field '{field}': {first.get('msg')}") from exc

    if budget.llm_calls != 1:
        raise SalaryRequestError("llm_calls must be exactly 1")

    limit = tool_call_limit(budget)
    if limit > methodology.max_tool_calls:
        raise SalaryRequestError(f"tool_calls cannot exceed <={methodology.max_tool_calls}")
    if limit < 1:
        raise SalaryRequestError("tool_calls must be at least <=1")
    return budget
