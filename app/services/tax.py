from __future__ import annotations

from dataclasses import dataclass

from app.normalize.utils import normalize_key
from app.reference.models import ApproxTaxRate, TaxModel, TaxTable
from app.schemas.salary import ResolvedLocation, TaxResult

from .fx import FxConverter
from .provenance import LookupLedger


@dataclass(frozen=True)
class TaxSelection:
    country_code: str
    method: str
    model_version: str
    model: TaxModel | None = None
    approx: ApproxTaxRate | None = None


@dataclass(frozen=True)
class TaxBreakdown:
    gross: float
    contributions: float
    income_tax: float
    local_tax: float

    @property
    def net(self) -> float:
        return self.gross - self.contributions - self.income_tax - self.local_tax

    @property
    def effective_rate(self) -> float:
        if self.gross <= 0:
            return 0.0
        return 1 - self.net / self.gross


def progressive_tax(brackets: tuple[tuple[float | None, float], ...], taxable: float) -> float:
    tax = 0.0
    lower = 0.0
    for upper, rate in brackets:
        if taxable <= lower:
            break
        top = taxable if upper is None else min(taxable, upper)
        tax += (top - lower) * rate
        if upper is None:
            break
        lower = upper
    return tax


def _allowance(model: TaxModel, gross: float) -> float:
    allowance = model.allowance
    if model.allowance_taper_threshold is not None and gross > model.allowance_taper_threshold:
        allowance -= (gross - model.allowance_taper_threshold) * model.allowance_taper_rate
    return max(0.0, allowance)


def compute_annual_tax(model: TaxModel, gross: float, admin_area: str | None = None) -> TaxBreakdown:
    """Annual deductions for a single filer with no dependents, in the model's own currency."""
    gross = max(0.0, gross)
    contributions = sum(band.amount(gross) for band in model.contributions)

    base = gross - contributions if model.deduct_contributions else gross
    base *= 1 - model.abatement_rate
    taxable = max(0.0, base - _allowance(model, gross))

    income_tax = progressive_tax(model.brackets, taxable)
    income_tax = max(0.0, income_tax - model.tax_credit)
    if model.zero_tax_threshold is not None and taxable <= model.zero_tax_threshold:
        income_tax = 0.0
    income_tax *= 1 + model.surcharge_rate

    regional_rate = model.regional_rates.get(normalize_key(admin_area), model.local_rate) if admin_area else model.local_rate
    local_tax = taxable * regional_rate

    return TaxBreakdown(gross=gross, contributions=contributions, income_tax=income_tax, local_tax=local_tax)


class TaxCalculator:
    def __init__(self, table: TaxTable, fx: FxConverter) -> None:
        self._table = table
        self._fx = fx

    def select(self, iso_code: str | None, ledger: LookupLedger | None = None) -> TaxSelection:
        code = (iso_code or "").upper()
        model = self._table.models.get(code)
        if model is not None:
            if ledger is not None:
                ledger.hit(f"tax:model:{model.version}")
            return TaxSelection(country_code=code, method="model", model_version=model.version, model=model)
        if ledger is not None:
            ledger.miss(f"tax:model:{code or 'XX'}")

        approx = self._table.approx.get(code)
        if approx is not None:
            if ledger is not None:
                ledger.hit(f"tax:approx:{approx.version}")
            return TaxSelection(country_code=code, method="approx_table", model_version=approx.version, approx=approx)

        fallback = self._table.models[self._table.default_country]
        if ledger is not None:
            ledger.miss(f"tax:approx:{code or 'XX'}")
            ledger.hit(f"tax:model:{fallback.version}")
        return TaxSelection(
            country_code=fallback.country_code,
            method="inference",
            model_version=fallback.version,
            model=fallback,
        )

    def monthly_net(
        self,
        annual_amount: float,
        currency: str,
        location: ResolvedLocation,
        ledger: LookupLedger,
        *,
        basis: str = "gross",
        months_per_year: float = 12,
    ) -> TaxResult:
        selection = self.select(location.iso_country_code, ledger)

        if basis == "net":
            net_annual = annual_amount
            ledger.note("salary stated as net; tax deductions not applied")
        elif selection.model is not None:
            model = selection.model
            gross_native = self._fx.convert(annual_amount, currency, model.currency, ledger)
            admin_area = location.admin_area if selection.method == "model" else None
            breakdown = compute_annual_tax(model, gross_native, admin_area)
            net_annual = self._fx.convert(breakdown.net, model.currency, currency, ledger)
            ledger.note(
                f"tax {model.version}: effective rate {breakdown.effective_rate:.1%} on "
                f"{breakdown.gross:,.0f} {model.currency} gross"
            )
            if selection.method == "inference":
                ledger.note(
                    f"no tax table for {location.iso_country_code}; applied default {model.country_code} model"
                )
        elif selection.approx is not None:
            approx = selection.approx
            net_annual = annual_amount * (1 - approx.effective_rate)
            ledger.note(f"tax {approx.version}: flat effective rate {approx.effective_rate:.1%}")
        else:
            raise ValueError(f"Tax selection for {selection.country_code} carries neither a model nor a rate.")

        ledger.record_source(
            "monthly_net_income",
            "inference" if selection.method == "inference" else "cache",
            f"tax-table {selection.model_version}",
            self._table.as_of,
        )
        return TaxResult(
            monthly_net_income=round(net_annual / months_per_year),
            model_version=selection.model_version,
            method=selection.method,
            currency=currency,
            country_code=selection.country_code,
        )
