import sys
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.reference import get_reference_data  # noqa: E402
from app.schemas.salary import ResolvedLocation  # noqa: E402
from app.services.fx import BundledFxSource, FxConverter  # noqa: E402
from app.services.provenance import LookupLedger  # noqa: E402
from app.services.tax import TaxCalculator, TaxSelection, compute_annual_tax, progressive_tax  # noqa: E402


def _location(iso: str, country: str, admin_area: str | None = None) -> ResolvedLocation:
    return ResolvedLocation(
        admin_area=admin_area,
        country=country,
        iso_country_code=iso,
        confidence=0.7,
        resolved_by="country",
    )


class TaxArithmeticTests(unittest.TestCase):
    def setUp(self):
        self.models = get_reference_data().tax.models

    def test_progressive_brackets(self):
        brackets = ((10000.0, 0.1), (None, 0.2))
        self.assertEqual(progressive_tax(brackets, 0), 0)
        self.assertAlmostEqual(progressive_tax(brackets, 5000), 500)
        self.assertAlmostEqual(progressive_tax(brackets, 15000), 2000)

    def test_us_federal_fica_and_state(self):
        breakdown = compute_annual_tax(self.models["US"], 120000, "Texas")
        self.assertAlmostEqual(breakdown.contributions, 9180)
        self.assertAlmostEqual(breakdown.income_tax, 18047)
        self.assertEqual(breakdown.local_tax, 0)
        self.assertAlmostEqual(breakdown.net, 92773)

        california = compute_annual_tax(self.models["US"], 120000, "California")
        self.assertAlmostEqual(california.local_tax, 105000 * 0.065)

        unknown_state = compute_annual_tax(self.models["US"], 120000, None)
        self.assertAlmostEqual(unknown_state.local_tax, 105000 * 0.04)

    def test_uk_allowance_taper(self):
        breakdown = compute_annual_tax(self.models["GB"], 125140)
        self.assertAlmostEqual(breakdown.income_tax, 37700 * 0.2 + (125140 - 37700) * 0.4)
        self.assertAlmostEqual(breakdown.contributions, (50270 - 12570) * 0.08 + (125140 - 50270) * 0.02)

    def test_zero_income(self):
        breakdown = compute_annual_tax(self.models["DE"], 0)
        self.assertEqual(breakdown.net, 0)
        self.assertEqual(breakdown.effective_rate, 0.0)


class TaxCalculatorTests(unittest.TestCase):
    def setUp(self):
        reference = get_reference_data()
        bundled = BundledFxSource(reference.fx)
        self.calculator = TaxCalculator(reference.tax, FxConverter([bundled], bundled.currencies))

    def test_method_selection_chain(self):
        self.assertEqual(self.calculator.select("US").method, "model")
        approx = self.calculator.select("ES")
        self.assertEqual((approx.method, approx.model_version), ("approx_table", "ES-2025.1-approx"))

        for code in ("CN", "XX", None):
            inferred = self.calculator.select(code)
            self.assertEqual(inferred.method, "inference")
            self.assertEqual(inferred.model_version, "US-2025.1")
            self.assertEqual(inferred.country_code, "US")

    def test_monthly_net_in_model_currency(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_net(120000, "USD", _location("US", "United States", "Texas"), ledger)
        self.assertEqual(result.monthly_net_income, 7731)
        self.assertEqual((result.method, result.model_version, result.currency), ("model", "US-2025.1", "USD"))
        self.assertIn("tax:model:US-2025.1", ledger.cache_meta.cache_hits)
        self.assertEqual(ledger.sources[-1].field, "monthly_net_income")
        self.assertFalse(ledger.fx_used)

    def test_foreign_currency_round_trips_through_fx(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_net(100000, "USD", _location("DE", "Germany"), ledger)
        self.assertEqual(result.currency, "USD")
        self.assertEqual(result.model_version, "DE-2025.1")
        self.assertTrue(ledger.fx_used)
        self.assertLess(result.monthly_net_income, 100000 / 12)

    def test_approx_table_rate(self):
        result = self.calculator.monthly_net(60000, "EUR", _location("ES", "Spain"), LookupLedger(4))
        self.assertEqual(result.monthly_net_income, 3500)
        self.assertEqual(result.method, "approx_table")

    def test_inference_uses_default_model(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_net(120000, "USD", _location("XX", "Unknown"), ledger)
        self.assertEqual((result.method, result.country_code), ("inference", "US"))
        self.assertEqual(ledger.sources[-1].source_type, "inference")
        self.assertEqual(result.monthly_net_income, round((120000 - 9180 - 18047 - 105000 * 0.04) / 12))

    def test_net_basis_skips_deductions(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_net(60000, "USD", _location("US", "United States"), ledger, basis="net")
        self.assertEqual(result.monthly_net_income, 5000)
        self.assertEqual(result.model_version, "US-2025.1")
        self.assertTrue(any("net" in note for note in ledger.notes))

    def test_selection_without_model_or_rate_is_rejected(self):
        empty = TaxSelection(country_code="ES", method="approx_table", model_version="ES-approx")
        with patch.object(TaxCalculator, "select", return_value=empty):
            with self.assertRaises(ValueError):
                self.calculator.monthly_net(60000, "EUR", _location("ES", "Spain"), LookupLedger(4))


if __name__ == "__main__":
    unittest.main()
