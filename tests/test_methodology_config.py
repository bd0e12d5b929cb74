import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config.methodology import (  # noqa: E402
    METHODOLOGY_VERSION,
    SCHEMA_VERSION,
    get_methodology,
    get_methodology_config,
    get_methodology_value,
)


class MethodologyConfigTests(unittest.TestCase):
    def test_loader_and_value_lookup(self):
        config = get_methodology_config()
        self.assertIsInstance(config, dict)
        self.assertEqual(config["methodology_version"], METHODOLOGY_VERSION)
        self.assertEqual(get_methodology_value("affordability.tight_max"), 0.2)
        self.assertIsNone(get_methodology_value("affordability.missing_key"))
        self.assertEqual(get_methodology_value("", default="fallback"), "fallback")

    def test_versions_are_constants(self):
        self.assertEqual(SCHEMA_VERSION, "1.0.0")
        self.assertEqual(METHODOLOGY_VERSION, "2025-09-01.a")

    def test_methodology_dataclass(self):
        methodology = get_methodology()
        self.assertEqual(methodology.hours_per_year, 2080)
        self.assertEqual([level for _, level in methodology.experience_buckets], ["junior", "mid", "senior"])
        self.assertEqual(methodology.above_last_bucket, "lead")
        self.assertEqual(methodology.data_quality_buckets[0], (100.0, 0.4))
        self.assertEqual(methodology.level_multipliers["mid"], 1.0)
        self.assertEqual(methodology.max_tool_calls, 10)
        self.assertEqual(methodology.default_budget["tool_calls"], "<=4")


if __name__ == "__main__":
    unittest.main()
