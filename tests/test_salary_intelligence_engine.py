import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.schemas.salary import SalaryIntelligenceResult  # noqa: E402
from app.services.errors import SalaryRequestError  # noqa: E402
from app.services.salary_intelligence import build_default_engine, generate_salary_intelligence  # noqa: E402


def _fixed_clock() -> datetime:
    return datetime(2025, 9, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


class SalaryIntelligenceEngineTests(unittest.TestCase):
    def setUp(self):
        self.engine = build_default_engine(clock=_fixed_clock)

    def generate(self, request, budget=None):
        return generate_salary_intelligence(request, budget, engine=self.engine)

    def test_full_pipeline_for_listed_salary(self):
        result = self.generate(
            {
                "jobTitle": "Senior Software Engineer",
                "location": "Austin, Texas, USA",
                "experienceYears": 7,
                "salaryInfo": "$120,000",
            }
        )
        self.assertTrue(result.schema_valid)
        self.assertEqual(result.validation_errors, [])
        self.assertEqual(result.generated_at_utc, "2025-09-01T12:30:45.123Z")
        self.assertEqual((result.schema_version, result.methodology_version), ("1.0.0", "2025-09-01.a"))
        self.assertEqual((result.normalized_role_slug, result.level, result.normalized_level_rank), ("software_engineer", "senior", 3))
        self.assertEqual(result.location.city, "Austin")
        self.assertEqual(result.job_location_mode, "onsite")
        self.assertEqual(result.currency, "USD")
        self.assertFalse(result.fx_used)
        self.assertIsNone(result.fx_rate_date)
        self.assertEqual(result.monthly_net_income, 7731)
        self.assertEqual(result.monthly_core_expenses, 3050)
        self.assertEqual((result.affordability_score, result.affordability_label), (1.53, "very_comfortable"))
        self.assertEqual((result.tax_method, result.country_tax_model_version), ("model", "US-2025.1"))
        self.assertEqual((result.col_method, result.col_model_version), ("city", "COL-2025.08"))
        self.assertEqual(result.fx_model_version, "FX-1.0")
        self.assertEqual(result.confidence.level, "high")
        self.assertEqual(result.computation_budget.tool_calls, "<=4")
        self.assertEqual(result.assumptions.household_size, 1)

        fields = [source.field for source in result.sources]
        for field in ("listed_salary", "expected_salary_range", "monthly_net_income", "monthly_core_expenses"):
            self.assertIn(field, fields)
        self.assertTrue(result.explanations)

    def test_fallback_totality_for_title_only(self):
        result = self.generate({"job_title": "Engineer"})
        self.assertTrue(result.schema_valid)
        self.assertEqual(result.location.country, "Global")
        self.assertIsNone(result.listed_salary)
        self.assertEqual(result.validation_errors, [])
        self.assertIsNone(result.monthly_net_income)
        self.assertIsNone(result.affordability_score)
        self.assertEqual(result.affordability_label, "unaffordable")
        self.assertEqual(result.tax_method, "inference")
        self.assertEqual(result.col_method, "inference")
        self.assertIsNotNone(result.expected_salary_range)
        self.assertEqual(result.confidence.level, "low")
        self.assertTrue(any("defaulted" in reason for reason in result.confidence.reasons))

    def test_determinism(self):
        request = {
            "job_title": "Data Scientist",
            "location": "Berlin, Germany",
            "salary_info": "€70k - €85k",
        }
        first = self.generate(request)
        second = self.generate(request)
        self.assertEqual(first.model_dump(), second.model_dump())

    def test_euro_listing_in_germany(self):
        result = self.generate({"job_title": "Data Scientist", "location": "Berlin, Germany", "salary_info": "€70k - €85k"})
        self.assertEqual(result.currency, "EUR")
        self.assertEqual(result.tax_method, "model")
        self.assertEqual(result.country_tax_model_version, "DE-2025.1")
        self.assertEqual(result.col_method, "city")
        self.assertTrue(result.fx_used)
        self.assertEqual(result.fx_rate_date, "2025-09-01")
        self.assertEqual(result.expected_salary_range.currency, "EUR")
        self.assertIn("fx:USD-EUR:2025-09-01", result.cache_meta.cache_hits)

    def test_city_premium_beats_remote(self):
        city = self.generate({"job_title": "Senior Software Engineer", "location": "San Francisco, USA"})
        remote = self.generate({"job_title": "Senior Software Engineer", "location": "Remote"})
        self.assertGreater(city.expected_salary_range.min, remote.expected_salary_range.min)
        self.assertGreater(city.expected_salary_range.max, remote.expected_salary_range.max)
        self.assertEqual(remote.job_location_mode, "remote_global")
        self.assertEqual(city.expected_salary_range.min % 100, 0)

    def test_unsupported_request_currency_is_ignored(self):
        result = self.generate({"job_title": "Accountant", "location": "London, UK", "currency": "XYZ"})
        self.assertEqual(result.currency, "GBP")
        self.assertTrue(any("XYZ" in note for note in result.calc_notes))

    def test_hourly_salary_is_annualized(self):
        result = self.generate({"job_title": "Registered Nurse", "location": "Texas, USA", "salary_info": "$50/hr"})
        self.assertEqual(result.listed_salary.period, "hour")
        self.assertEqual(result.col_method, "admin_area")
        self.assertTrue(any("2080" in note for note in result.calc_notes))

    def test_processing_error_is_reported_in_result(self):
        with patch.object(
            self.engine.cost_of_living,
            "monthly_core_expenses",
            side_effect=RuntimeError("cost-of-living table offline"),
        ):
            result = self.generate({"job_title": "Senior Software Engineer", "location": "Austin, TX", "salary_info": "$120k"})
        self.assertFalse(result.schema_valid)
        self.assertEqual(result.validation_errors, ["Processing error: cost-of-living table offline"])
        self.assertEqual(result.confidence.level, "low")
        self.assertEqual(result.normalized_role_slug, "software_engineer")
        self.assertIsNotNone(result.listed_salary)
        self.assertEqual(result.monthly_net_income, 7731)
        self.assertIsNone(result.monthly_core_expenses)
        SalaryIntelligenceResult.model_validate(result.model_dump())

    def test_request_errors(self):
        with self.assertRaises(SalaryRequestError) as ctx:
            self.generate({"jobTitle": "   "})
        self.assertEqual(str(ctx.exception), "jobTitle is required and cannot be empty")

        with self.assertRaises(SalaryRequestError):
            self.generate({"job_title": "Engineer", "work_mode": "moon_base"})

        with self.assertRaises(SalaryRequestError) as ctx:
            self.generate({"job_title": "Engineer"}, {"llm_calls": 5, "tool_calls": "<=4"})
        self.assertIn("llm_calls must be exactly 1", str(ctx.exception))

        with self.assertRaises(SalaryRequestError) as ctx:
            self.generate({"job_title": "Engineer"}, {"llm_calls": 1, "tool_calls": "<=50"})
        self.assertIn("tool_calls cannot exceed <=10", str(ctx.exception))

    def test_net_income_and_cost_of_living_helpers(self):
        net = self.engine.net_income(120000, "USD", "Austin, Texas, USA")
        self.assertEqual(net.tax.monthly_net_income, 7731)

        col = self.engine.cost_of_living_for("Germany", None, household_size=2)
        self.assertEqual(col.cost_of_living.currency, "EUR")
        self.assertEqual(col.household_size, 2)

        with self.assertRaises(SalaryRequestError):
            self.engine.net_income(120000, "XYZ", "Austin, Texas, USA")


if __name__ == "__main__":
    unittest.main()
