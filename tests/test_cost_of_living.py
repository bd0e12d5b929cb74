import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.normalize.location import resolve_location  # noqa: E402
from app.reference import get_reference_data  # noqa: E402
from app.services.cost_of_living import CostOfLivingCalculator, TableCostOfLivingSource  # noqa: E402
from app.services.fx import BundledFxSource, FxConverter  # noqa: E402
from app.services.provenance import LookupLedger  # noqa: E402


class CostOfLivingTests(unittest.TestCase):
    def setUp(self):
        reference = get_reference_data()
        bundled = BundledFxSource(reference.fx)
        self.fx_table = reference.fx
        self.calculator = CostOfLivingCalculator(
            TableCostOfLivingSource(reference.col),
            reference.col,
            reference.geo,
            FxConverter([bundled], bundled.currencies),
            additional_member_factor=0.7,
        )

    def test_city_level_entry(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_core_expenses(resolve_location("Austin, Texas, USA"), "USD", ledger)
        self.assertEqual((result.method, result.monthly_core_expenses), ("city", 3050))
        self.assertEqual(result.model_version, "COL-2025.08")
        self.assertEqual(result.categories["housing"], 1700)
        self.assertIn("col:city:Austin:COL-2025.08", ledger.cache_meta.cache_hits)
        self.assertEqual(ledger.sources[-1].retrieved_at, "2025-08-01T00:00:00Z")

    def test_default_city_skips_city_level(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_core_expenses(resolve_location("Springfield, USA"), "USD", ledger)
        self.assertEqual((result.method, result.monthly_core_expenses), ("country", 2780))
        self.assertNotIn("col:city:New York:COL-2025.08", ledger.cache_meta.cache_hits)

    def test_country_level_for_country_only_location(self):
        result = self.calculator.monthly_core_expenses(resolve_location("Germany"), "USD", LookupLedger(4))
        self.assertEqual((result.method, result.monthly_core_expenses), ("country", 2103))

    def test_inference_for_global_and_uncovered_country(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_core_expenses(resolve_location("Remote"), "USD", ledger)
        self.assertEqual((result.method, result.monthly_core_expenses), ("inference", 1580))
        self.assertEqual(ledger.sources[-1].source_type, "inference")

        brazil = self.calculator.monthly_core_expenses(resolve_location("Brazil"), "USD", LookupLedger(4))
        self.assertEqual(brazil.method, "inference")
        self.assertEqual(brazil.monthly_core_expenses, round(1580 * 0.55))

    def test_household_scaling(self):
        single = self.calculator.monthly_core_expenses(resolve_location("Germany"), "USD", LookupLedger(4))
        couple = self.calculator.monthly_core_expenses(resolve_location("Germany"), "USD", LookupLedger(4), 2)
        self.assertEqual(couple.monthly_core_expenses, round(single.monthly_core_expenses * 1.7))

    def test_converts_into_result_currency(self):
        ledger = LookupLedger(4)
        result = self.calculator.monthly_core_expenses(resolve_location("Berlin"), "EUR", ledger)
        self.assertEqual(result.currency, "EUR")
        self.assertEqual(result.monthly_core_expenses, round(2463 / self.fx_table.usd_per_unit["EUR"]))
        self.assertTrue(ledger.fx_used)


if __name__ == "__main__":
    unittest.main()
