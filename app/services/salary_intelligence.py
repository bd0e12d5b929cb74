from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from app.core.config import settings
from app.core.config.methodology import METHODOLOGY_VERSION, SCHEMA_VERSION, Methodology, get_methodology
from app.normalize.location import LocationResolver
from app.normalize.role import RoleNormalizer
from app.normalize.salary import SalaryParser
from app.reference import get_reference_data
from app.reference.models import ReferenceData
from app.reference.provider import CostOfLivingSource
from app.schemas.salary import (
    AffordabilityResult,
    Assumptions,
    ColResult,
    ComputationBudget,
    Confidence,
    CostOfLivingResponse,
    NetIncomeResponse,
    NormalizedRole,
    ResolvedLocation,
    SalaryFigure,
    SalaryIntelligenceRequest,
    SalaryIntelligenceResult,
    TaxResult,
)

from .affordability import score_affordability
from .budget import default_budget, tool_call_limit, validate_computation_budget
from .compensation import CompensationModel
from .cost_of_living import CostOfLivingCalculator, TableCostOfLivingSource
from .errors import SalaryRequestError
from .fx import FxConverter, build_fx_converter
from .provenance import LookupLedger, assess_confidence
from .tax import TaxCalculator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

BLANK_TITLE_ERROR = "jobTitle is required and cannot be empty"
_LISTING_AS_OF = METHODOLOGY_VERSION[:10]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso_millis(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _short_hash(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


def _first_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "request"
    return f"Invalid request field '{field}': {first.get('msg')}"


@dataclass
class _PipelineState:
    role: NormalizedRole | None = None
    location: ResolvedLocation | None = None
    work_mode: str | None = None
    currency: str | None = None
    listed: SalaryFigure | None = None
    expected: SalaryFigure | None = None
    tax: TaxResult | None = None
    tax_version: str | None = None
    tax_method: str | None = None
    col: ColResult | None = None
    affordability: AffordabilityResult | None = None


class SalaryIntelligenceEngine:
    """Deterministic pipeline from raw posting fields to a SalaryIntelligenceResult."""

    def __init__(
        self,
        reference: ReferenceData,
        methodology: Methodology,
        fx: FxConverter,
        *,
        col_source: CostOfLivingSource | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._reference = reference
        self._methodology = methodology
        self._fx = fx
        self._clock = clock or _utc_now
        self.roles = RoleNormalizer(reference.roles, methodology)
        self.locations = LocationResolver(reference.geo, methodology.fuzzy_match_ratio)
        self.salaries = SalaryParser(reference.fx.usd_per_unit.keys(), methodology)
        self.tax = TaxCalculator(reference.tax, fx)
        self.cost_of_living = CostOfLivingCalculator(
            col_source or TableCostOfLivingSource(reference.col),
            reference.col,
            reference.geo,
            fx,
            additional_member_factor=methodology.additional_member_factor,
        )
        self.compensation = CompensationModel(reference.roles, reference.geo, fx, methodology)

    @property
    def methodology(self) -> Methodology:
        return self._methodology

    def run(self, request: SalaryIntelligenceRequest, budget: ComputationBudget) -> SalaryIntelligenceResult:
        started_at = time.perf_counter()
        generated_at = _iso_millis(self._clock())
        ledger = LookupLedger(tool_call_limit(budget), early_stop=budget.early_stop)
        state = _PipelineState()

        try:
            self._run_stages(request, state, ledger)
            result = self._build(request, budget, state, ledger, generated_at)
        except Exception as exc:
            logger.exception(
                json.dumps(
                    {
                        "event": "salary_intelligence_failed",
                        "title_hash": _short_hash(request.job_title),
                        "error": str(exc),
                        "duration_ms": int((time.perf_counter() - started_at) * 1000),
                    }
                )
            )
            return self._failure(request, budget, state, ledger, generated_at, exc)

        logger.info(
            json.dumps(
                {
                    "event": "salary_intelligence_complete",
                    "title_hash": _short_hash(request.job_title),
                    "role_slug": result.normalized_role_slug,
                    "iso_country_code": result.location.iso_country_code if result.location else None,
                    "listed_salary": result.listed_salary is not None,
                    "tax_method": result.tax_method,
                    "col_method": result.col_method,
                    "confidence": result.confidence.level,
                    "tool_calls_used": ledger.tool_calls_used,
                    "duration_ms": int((time.perf_counter() - started_at) * 1000),
                }
            )
        )
        return result

    def _result_currency(self, request_currency: str | None, location: ResolvedLocation, ledger: LookupLedger) -> str:
        if request_currency and self._fx.supports(request_currency):
            return request_currency
        if request_currency:
            ledger.note(f"requested currency {request_currency} has no FX coverage; ignored")
        country = self._reference.geo.by_iso(location.iso_country_code)
        if country is not None and self._fx.supports(country.currency):
            return country.currency
        return "USD"

    def _annualize(self, figure: SalaryFigure, ledger: LookupLedger) -> float:
        m = self._methodology
        midpoint = (figure.min + figure.max) / 2
        if figure.period == "hour":
            ledger.note(f"hourly pay annualized at {m.hours_per_year:g} hours per year")
            return midpoint * m.hours_per_year
        if figure.period == "day":
            ledger.note(f"daily pay annualized at {m.days_per_year:g} days per year")
            return midpoint * m.days_per_year
        if figure.period == "month":
            ledger.note(f"monthly pay annualized at {m.months_per_year:g} months per year")
            return midpoint * m.months_per_year
        return midpoint

    def _run_stages(self, request: SalaryIntelligenceRequest, state: _PipelineState, ledger: LookupLedger) -> None:
        m = self._methodology

        state.role = self.roles.normalize(request.job_title, request.experience_years)
        state.location = self.locations.resolve(request.location, request.work_mode)
        if request.work_mode:
            state.work_mode = request.work_mode
        elif state.location.resolved_by == "remote":
            state.work_mode = "remote_global"
        else:
            state.work_mode = "onsite"

        hint = self._result_currency(request.currency, state.location, ledger)
        state.listed = self.salaries.parse(request.salary_info, hint)
        if request.salary_info and state.listed is None:
            ledger.note("salary text carried no usable figure")
        if state.listed is not None and self._fx.supports(state.listed.currency):
            state.currency = state.listed.currency
        else:
            state.currency = hint
        if state.listed is not None:
            ledger.record_source("listed_salary", "scrape", "job posting salary text", _LISTING_AS_OF)
            if state.listed.inference_basis:
                ledger.note(state.listed.inference_basis)

        state.expected = self.compensation.expected_range(
            state.role, state.location, state.work_mode, state.currency, ledger
        )

        if state.listed is not None:
            annual = self._annualize(state.listed, ledger)
            annual = self._fx.convert(annual, state.listed.currency, state.currency, ledger)
            state.tax = self.tax.monthly_net(
                annual,
                state.currency,
                state.location,
                ledger,
                basis=state.listed.basis,
                months_per_year=m.months_per_year,
            )
            state.tax_version, state.tax_method = state.tax.model_version, state.tax.method
        else:
            selection = self.tax.select(state.location.iso_country_code, ledger)
            state.tax_version, state.tax_method = selection.model_version, selection.method

        household_size = int(m.assumptions.get("household_size", 1))
        state.col = self.cost_of_living.monthly_core_expenses(state.location, state.currency, ledger, household_size)

        state.affordability = score_affordability(
            state.tax.monthly_net_income if state.tax else None,
            state.col.monthly_core_expenses,
            m,
        )

    def _fallback_reasons(self, state: _PipelineState) -> list[str]:
        reasons: list[str] = []
        if state.listed is not None and state.listed.inference_basis:
            reasons.append(f"Listed salary {state.listed.inference_basis}")
        if state.tax_method == "inference":
            reasons.append(f"Tax estimated with the default model {state.tax_version}")
        elif state.tax_method == "approx_table":
            reasons.append(f"Tax approximated with a flat effective rate ({state.tax_version})")
        if state.col is not None and state.col.method == "inference":
            reasons.append("Cost of living inferred from the world baseline")
        if state.location is not None and state.location.resolved_by == "default_city":
            reasons.append(f"City not recognised; {state.location.city} used as the country's reference city")
        return reasons

    def _explanations(self, state: _PipelineState) -> list[str]:
        lines: list[str] = []
        role, location = state.role, state.location
        if role is not None:
            if role.level == "unknown":
                lines.append(f"Role '{role.name}' did not match a known role family")
            else:
                lines.append(f"Role normalized to {role.name} at {role.level} level (from {role.level_source})")
        if location is not None:
            place = ", ".join(part for part in (location.city, location.admin_area, location.country) if part)
            lines.append(f"Location resolved to {place} by {location.resolved_by} (confidence {location.confidence:.2f})")
        if state.listed is not None:
            listed = state.listed
            lines.append(
                f"Listed salary {listed.min:,.0f}-{listed.max:,.0f} {listed.currency} per {listed.period} ({listed.basis})"
            )
        else:
            lines.append("No listed salary found; net income and affordability were not computed")
        if state.expected is not None:
            lines.append(
                f"Expected range {state.expected.min:,.0f}-{state.expected.max:,.0f} {state.expected.currency} per year"
            )
        if state.tax is not None:
            lines.append(
                f"Monthly net income {state.tax.monthly_net_income:,.0f} {state.tax.currency} "
                f"via {state.tax.method} tax model {state.tax.model_version}"
            )
        if state.col is not None:
            lines.append(
                f"Monthly core expenses {state.col.monthly_core_expenses:,.0f} {state.col.currency} "
                f"from {state.col.method}-level cost of living {state.col.model_version}"
            )
        if state.affordability is not None and state.affordability.score is not None:
            lines.append(f"Affordability {state.affordability.label} (score {state.affordability.score:.2f})")
        return lines

    def _assumptions(self) -> Assumptions:
        return Assumptions.model_validate(dict(self._methodology.assumptions))

    def _build(
        self,
        request: SalaryIntelligenceRequest,
        budget: ComputationBudget,
        state: _PipelineState,
        ledger: LookupLedger,
        generated_at: str,
    ) -> SalaryIntelligenceResult:
        role, location = state.role, state.location
        confidence = assess_confidence(
            listed_salary_present=state.listed is not None,
            location=location,
            role=role,
            experience_years=request.experience_years,
            location_threshold=self._methodology.location_confidence_threshold,
            fallback_reasons=self._fallback_reasons(state),
        )
        affordability = state.affordability
        return SalaryIntelligenceResult(
            schema_version=SCHEMA_VERSION,
            methodology_version=METHODOLOGY_VERSION,
            generated_at_utc=generated_at,
            schema_valid=True,
            normalized_role=role.name,
            normalized_role_slug=role.slug,
            normalized_level_rank=role.level_rank,
            level=role.level,
            experience_years=request.experience_years,
            location=location,
            job_location_mode=state.work_mode,
            currency=state.currency,
            fx_used=ledger.fx_used,
            fx_rate_date=ledger.fx_rate_date,
            listed_salary=state.listed,
            expected_salary_range=state.expected,
            monthly_net_income=state.tax.monthly_net_income if state.tax else None,
            monthly_core_expenses=state.col.monthly_core_expenses,
            affordability_score=affordability.score,
            affordability_label=affordability.label,
            explanations=self._explanations(state),
            confidence=confidence,
            sources=ledger.sources,
            cache_meta=ledger.cache_meta,
            country_tax_model_version=state.tax_version,
            tax_method=state.tax_method,
            col_model_version=state.col.model_version,
            col_method=state.col.method,
            fx_model_version=ledger.fx_model_version(self._reference.fx.version),
            assumptions=self._assumptions(),
            computation_budget=budget,
            calc_notes=list(ledger.notes),
            validation_errors=[],
        )

    def _failure(
        self,
        request: SalaryIntelligenceRequest,
        budget: ComputationBudget,
        state: _PipelineState,
        ledger: LookupLedger,
        generated_at: str,
        exc: Exception,
    ) -> SalaryIntelligenceResult:
        role, location, affordability = state.role, state.location, state.affordability
        return SalaryIntelligenceResult(
            schema_version=SCHEMA_VERSION,
            methodology_version=METHODOLOGY_VERSION,
            generated_at_utc=generated_at,
            schema_valid=False,
            normalized_role=role.name if role else None,
            normalized_role_slug=role.slug if role else None,
            normalized_level_rank=role.level_rank if role else None,
            level=role.level if role else None,
            experience_years=request.experience_years,
            location=location,
            job_location_mode=state.work_mode,
            currency=state.currency,
            fx_used=ledger.fx_used,
            fx_rate_date=ledger.fx_rate_date,
            listed_salary=state.listed,
            expected_salary_range=state.expected,
            monthly_net_income=state.tax.monthly_net_income if state.tax else None,
            monthly_core_expenses=state.col.monthly_core_expenses if state.col else None,
            affordability_score=affordability.score if affordability else None,
            affordability_label=affordability.label if affordability else None,
            explanations=self._explanations(state),
            confidence=Confidence(level="low", reasons=["Processing stopped before all stages completed"]),
            sources=ledger.sources,
            cache_meta=ledger.cache_meta,
            country_tax_model_version=state.tax_version,
            tax_method=state.tax_method,
            col_model_version=state.col.model_version if state.col else None,
            col_method=state.col.method if state.col else None,
            fx_model_version=ledger.fx_model_version(self._reference.fx.version),
            assumptions=self._assumptions(),
            computation_budget=budget,
            calc_notes=list(ledger.notes),
            validation_errors=[f"Processing error: {exc}"],
        )

    def _ledger(self) -> LookupLedger:
        return LookupLedger(tool_call_limit(default_budget(self._methodology)))

    def _currency_for(self, requested: str | None, location: ResolvedLocation, ledger: LookupLedger) -> str:
        if requested and not self._fx.supports(requested):
            raise SalaryRequestError(f"Unsupported currency '{requested}'")
        return self._result_currency(requested, location, ledger)

    def net_income(self, gross_annual: float, currency: str | None, location: str | None) -> NetIncomeResponse:
        ledger = self._ledger()
        resolved = self.locations.resolve(location)
        code = self._currency_for(currency.upper() if currency else None, resolved, ledger)
        tax = self.tax.monthly_net(
            gross_annual, code, resolved, ledger, months_per_year=self._methodology.months_per_year
        )
        return NetIncomeResponse(gross_annual=gross_annual, location=resolved, tax=tax, calc_notes=list(ledger.notes))

    def cost_of_living_for(
        self, location: str | None, currency: str | None, household_size: int = 1
    ) -> CostOfLivingResponse:
        ledger = self._ledger()
        resolved = self.locations.resolve(location)
        code = self._currency_for(currency.upper() if currency else None, resolved, ledger)
        col = self.cost_of_living.monthly_core_expenses(resolved, code, ledger, household_size)
        return CostOfLivingResponse(
            location=resolved,
            household_size=household_size,
            cost_of_living=col,
            calc_notes=list(ledger.notes),
        )


def build_default_engine(clock: Clock | None = None) -> SalaryIntelligenceEngine:
    reference = get_reference_data()
    return SalaryIntelligenceEngine(
        reference,
        get_methodology(),
        build_fx_converter(reference.fx, settings),
        clock=clock,
    )


@lru_cache(maxsize=1)
def get_default_engine() -> SalaryIntelligenceEngine:
    return build_default_engine()


def _coerce_request(request: SalaryIntelligenceRequest | Mapping[str, Any]) -> SalaryIntelligenceRequest:
    if isinstance(request, SalaryIntelligenceRequest):
        parsed = request
    elif isinstance(request, Mapping):
        try:
            parsed = SalaryIntelligenceRequest.model_validate(dict(request))
        except ValidationError as exc:
            raise SalaryRequestError(_first_error(exc)) from exc
    else:
        raise SalaryRequestError("request must be a JSON object")

    if not parsed.job_title:
        raise SalaryRequestError(BLANK_TITLE_ERROR)
    return parsed


def generate_salary_intelligence(
    request: SalaryIntelligenceRequest | Mapping[str, Any],
    computation_budget: ComputationBudget | Mapping[str, Any] | None = None,
    *,
    engine: SalaryIntelligenceEngine | None = None,
) -> SalaryIntelligenceResult:
    """Validate the request and budget, then run the pipeline.

    Request-tier problems raise SalaryRequestError; anything that goes wrong inside the
    pipeline comes back as a result with schema_valid=False.
    """
    engine = engine or get_default_engine()
    parsed = _coerce_request(request)
    budget = validate_computation_budget(computation_budget, engine.methodology)
    return engine.run(parsed, budget)
