import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.normalize.location import resolve_location  # noqa: E402


class LocationResolverTests(unittest.TestCase):
    def test_city_admin_area_country(self):
        location = resolve_location("Austin, Texas, USA")
        self.assertEqual(location.city, "Austin")
        self.assertEqual(location.admin_area, "Texas")
        self.assertEqual(location.country, "United States")
        self.assertEqual(location.iso_country_code, "US")
        self.assertEqual(location.confidence, 0.9)
        self.assertEqual(location.resolved_by, "major_city")
        self.assertIsNotNone(location.lat)
        self.assertIsNotNone(location.lng)

    def test_admin_area_as_last_segment(self):
        location = resolve_location("Toronto, Ontario")
        self.assertEqual((location.city, location.admin_area, location.iso_country_code), ("Toronto", "Ontario", "CA"))

        texas = resolve_location("Austin, TX")
        self.assertEqual((texas.city, texas.admin_area, texas.iso_country_code), ("Austin", "Texas", "US"))

    def test_iso_country_code_as_last_segment(self):
        cases = [
            ("Berlin, DE", "Berlin", "Germany", "DE"),
            ("Toronto, CA", "Toronto", "Canada", "CA"),
            ("Bangalore, IN", "Bengaluru", "India", "IN"),
            ("Paris, FR", "Paris", "France", "FR"),
        ]
        for raw, city, country, iso in cases:
            location = resolve_location(raw)
            self.assertEqual((location.city, location.country, location.iso_country_code), (city, country, iso), raw)
            self.assertEqual(location.confidence, 0.9, raw)
            self.assertEqual(location.resolved_by, "major_city", raw)

    def test_region_code_shared_with_country_follows_leading_city(self):
        location = resolve_location("San Francisco, CA")
        self.assertEqual((location.city, location.admin_area, location.iso_country_code), ("San Francisco", "California", "US"))

        self.assertEqual(resolve_location("CA").iso_country_code, "CA")

    def test_leading_city_outranks_foreign_region_code(self):
        location = resolve_location("Munich, TX")
        self.assertEqual((location.city, location.iso_country_code), ("Munich", "DE"))
        self.assertEqual(location.resolved_by, "city_scan")

    def test_unknown_city_gets_default_city(self):
        location = resolve_location("Springfield, USA")
        self.assertEqual(location.city, "New York")
        self.assertEqual(location.confidence, 0.75)
        self.assertEqual(location.resolved_by, "default_city")

    def test_country_only(self):
        location = resolve_location("Germany")
        self.assertIsNone(location.city)
        self.assertEqual((location.country, location.iso_country_code), ("Germany", "DE"))
        self.assertEqual(location.confidence, 0.7)

    def test_canonical_country_casing(self):
        self.assertEqual(resolve_location("UK").country, "United Kingdom")
        self.assertEqual(resolve_location("usa").country, "United States")

    def test_fuzzy_country_name(self):
        location = resolve_location("Germnay")
        self.assertEqual(location.iso_country_code, "DE")

    def test_single_city_scan(self):
        location = resolve_location("Berlin")
        self.assertEqual((location.city, location.iso_country_code), ("Berlin", "DE"))
        self.assertEqual(location.confidence, 0.8)
        self.assertEqual(location.resolved_by, "city_scan")

    def test_parenthetical_work_mode_note_is_dropped(self):
        location = resolve_location("London (Hybrid), UK")
        self.assertEqual((location.city, location.iso_country_code), ("London", "GB"))
        self.assertEqual(location.confidence, 0.9)

    def test_remote_keywords(self):
        for raw in ("Remote", "Work from anywhere", "Worldwide"):
            location = resolve_location(raw)
            self.assertEqual((location.country, location.iso_country_code), ("Global", "XX"), raw)
            self.assertEqual(location.confidence, 0.5)

        location = resolve_location("Berlin", work_mode="remote_global")
        self.assertEqual(location.country, "Global")

    def test_remote_country_keeps_country(self):
        location = resolve_location("Remote, Germany", work_mode="remote_country")
        self.assertEqual(location.iso_country_code, "DE")

    def test_unresolved_and_empty(self):
        unknown = resolve_location("Atlantis")
        self.assertEqual((unknown.country, unknown.iso_country_code, unknown.confidence), ("Unknown", "XX", 0.4))

        empty = resolve_location("")
        self.assertEqual((empty.country, empty.iso_country_code, empty.confidence), ("Global", "XX", 0.3))
        self.assertEqual(resolve_location(None).resolved_by, "empty")


if __name__ == "__main__":
    unittest.main()
