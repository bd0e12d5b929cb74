from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

WorkMode = Literal["onsite", "hybrid", "remote_country", "remote_global"]
SeniorityLevel = Literal["intern", "junior", "mid", "senior", "lead", "staff", "principal", "unknown"]
LevelSource = Literal["title", "experience", "default", "none"]
PayPeriod = Literal["year", "month", "day", "hour"]
PayBasis = Literal["gross", "net"]
TaxMethod = Literal["model", "approx_table", "inference"]
ColMethod = Literal["city", "admin_area", "country", "inference"]
AffordabilityLabel = Literal["unaffordable", "tight", "comfortable", "very_comfortable"]
ConfidenceLevel = Literal["high", "medium", "low"]
SourceType = Literal["api", "cache", "scrape", "inference"]
ResolvedBy = Literal[
    "remote", "major_city", "default_city", "admin_area", "country", "city_scan", "unresolved", "empty"
]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())


class NormalizedRole(_Frozen):
    name: str
    slug: str
    level_rank: int = Field(ge=-1, le=6)
    level: SeniorityLevel
    level_source: LevelSource


class ResolvedLocation(_Frozen):
    city: str | None = None
    admin_area: str | None = None
    country: str
    iso_country_code: str = Field(min_length=2, max_length=2)
    lat: float | None = None
    lng: float | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    resolved_by: ResolvedBy


class SalaryFigure(_Frozen):
    min: float = Field(ge=0)
    max: float = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    period: PayPeriod = "year"
    basis: PayBasis = "gross"
    data_quality: float = Field(ge=0.0, le=1.0)
    inference_basis: str | None = None

    @model_validator(mode="after")
    def _ordered(self) -> "SalaryFigure":
        if self.min > self.max:
            raise ValueError("min must not exceed max")
        return self


class TaxResult(_Frozen):
    monthly_net_income: float
    model_version: str
    method: TaxMethod
    currency: str
    country_code: str


class ColResult(_Frozen):
    monthly_core_expenses: float = Field(ge=0)
    model_version: str
    method: ColMethod
    currency: str
    categories: dict[str, float] = Field(default_factory=dict)


class AffordabilityResult(_Frozen):
    score: float | None = None
    label: AffordabilityLabel


class ProvenanceEntry(_Frozen):
    field: str
    source_type: SourceType
    url_or_name: str
    retrieved_at: str


class CacheMeta(_Frozen):
    cache_hits: list[str] = Field(default_factory=list)
    cache_misses: list[str] = Field(default_factory=list)


class Confidence(_Frozen):
    level: ConfidenceLevel
    reasons: list[str] = Field(default_factory=list)


class Assumptions(_Frozen):
    tax_filing_status: str = "single"
    dependents: int = 0
    housing_type: str = "1br"
    household_size: int = 1


class ComputationBudget(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    llm_calls: int = Field(default=1, validation_alias=AliasChoices("llm_calls", "llmCalls"))
    tool_calls: str = Field(default="<=4", validation_alias=AliasChoices("tool_calls", "toolCalls"))
    early_stop: bool = Field(default=True, validation_alias=AliasChoices("early_stop", "earlyStop"))

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _tool_calls_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return f"<={value}"
        return value


class SalaryIntelligenceRequest(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_title: str | None = Field(default=None, validation_alias=AliasChoices("job_title", "jobTitle"))
    location: str | None = None
    experience_years: float | None = Field(
        default=None, ge=0, le=70, validation_alias=AliasChoices("experience_years", "experienceYears")
    )
    salary_info: str | None = Field(default=None, validation_alias=AliasChoices("salary_info", "salaryInfo"))
    currency: str | None = None
    work_mode: WorkMode | None = Field(default=None, validation_alias=AliasChoices("work_mode", "workMode"))

    @field_validator("job_title", "location", "salary_info", "currency", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            return value
        cleaned = value.strip()
        return cleaned or None

    @field_validator("work_mode", mode="before")
    @classmethod
    def _work_mode_key(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().lower().replace("-", "_")
            return cleaned or None
        return value

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = value.upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("currency must be a 3-letter ISO-4217 code")
        return code


class SalaryIntelligenceEnvelope(SalaryIntelligenceRequest):
    computation_budget: ComputationBudget | None = Field(
        default=None, validation_alias=AliasChoices("computation_budget", "computationBudget")
    )

    def to_request(self) -> SalaryIntelligenceRequest:
        return SalaryIntelligenceRequest.model_validate(self.model_dump(exclude={"computation_budget"}))


class SalaryIntelligenceResult(_Frozen):
    schema_version: str
    methodology_version: str
    generated_at_utc: str
    schema_valid: bool
    normalized_role: str | None = None
    normalized_role_slug: str | None = None
    normalized_level_rank: int | None = None
    level: SeniorityLevel | None = None
    experience_years: float | None = None
    location: ResolvedLocation | None = None
    job_location_mode: WorkMode | None = None
    currency: str | None = None
    fx_used: bool = False
    fx_rate_date: str | None = None
    listed_salary: SalaryFigure | None = None
    expected_salary_range: SalaryFigure | None = None
    monthly_net_income: float | None = None
    monthly_core_expenses: float | None = None
    affordability_score: float | None = Field(default=None, ge=-1.0, le=3.0)
    affordability_label: AffordabilityLabel | None = None
    explanations: list[str] = Field(default_factory=list)
    confidence: Confidence
    sources: list[ProvenanceEntry] = Field(default_factory=list)
    cache_meta: CacheMeta = Field(default_factory=CacheMeta)
    country_tax_model_version: str | None = None
    tax_method: TaxMethod | None = None
    col_model_version: str | None = None
    col_method: ColMethod | None = None
    fx_model_version: str | None = None
    assumptions: Assumptions = Field(default_factory=Assumptions)
    computation_budget: ComputationBudget
    calc_notes: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)


class NetIncomeRequest(_Frozen):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    gross_annual: float = Field(gt=0, validation_alias=AliasChoices("gross_annual", "grossAnnual"))
    currency: str | None = None
    location: str | None = None

    @field_validator("currency", "location", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value


class NetIncomeResponse(_Frozen):
    gross_annual: float
    location: ResolvedLocation
    tax: TaxResult
    calc_notes: list[str] = Field(default_factory=list)


class CostOfLivingResponse(_Frozen):
    location: ResolvedLocation
    household_size: int
    cost_of_living: ColResult
    calc_notes: list[str] = Field(default_factory=list)
