import sys
import unittest
from datetime import date, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from fakes import FakeSalesforceClient, MutableClock  # noqa: E402
from sf_eventlog.services.inventory import LogFileInventory, same_half_day_band  # noqa: E402


class HalfDayBandTests(unittest.TestCase):
    def test_morning_and_afternoon(self):
        self.assertTrue(same_half_day_band(datetime(2025, 3, 16, 8, 0), datetime(2025, 3, 16, 12, 29)))
        self.assertTrue(same_half_day_band(datetime(2025, 3, 16, 13, 31), datetime(2025, 3, 16, 23, 0)))

    def test_crossing_the_cutover_window(self):
        self.assertFalse(same_half_day_band(datetime(2025, 3, 16, 8, 0), datetime(2025, 3, 16, 12, 30)))
        self.assertFalse(same_half_day_band(datetime(2025, 3, 16, 13, 0), datetime(2025, 3, 16, 13, 10)))
        self.assertFalse(same_half_day_band(datetime(2025, 3, 16, 12, 0), datetime(2025, 3, 16, 14, 0)))

    def test_crossing_midnight(self):
        self.assertFalse(same_half_day_band(datetime(2025, 3, 16, 23, 0), datetime(2025, 3, 17, 14, 0)))


class InventoryCacheTests(unittest.TestCase):
    def setUp(self):
        self.client = FakeSalesforceClient()
        self.client.add_file('ApexCallout', date(2025, 3, 16), [])
        self.clock = MutableClock(datetime(2025, 3, 17, 9, 0))
        self.inventory = LogFileInventory(self.client, clock=self.clock, categories=['ApexCallout', 'ApexRestApi'])

    def test_refresh_loads_every_category(self):
        refs = self.inventory.get('ApexCallout')
        self.assertEqual(len(refs), 1)
        self.assertEqual(self.client.listing_calls, 2)
        self.assertEqual(self.inventory.get('ApexRestApi'), [])
        self.assertEqual(self.client.listing_calls, 2)

    def test_no_refresh_within_same_band(self):
        self.inventory.get('ApexCallout')
        self.clock.now = datetime(2025, 3, 17, 12, 29)
        self.inventory.has_file('ApexCallout', date(2025, 3, 16))
        self.assertEqual(self.client.listing_calls, 2)

    def test_refresh_after_cutover_and_midnight(self):
        self.inventory.get('ApexCallout')
        self.clock.now = datetime(2025, 3, 17, 12, 30)
        self.inventory.get('ApexCallout')
        self.assertEqual(self.client.listing_calls, 4)
        self.clock.now = datetime(2025, 3, 17, 13, 31)
        self.inventory.get('ApexCallout')
        self.assertEqual(self.client.listing_calls, 6)
        self.clock.now = datetime(2025, 3, 17, 20, 0)
        self.inventory.get('ApexCallout')
        self.assertEqual(self.client.listing_calls, 6)
        self.clock.now = datetime(2025, 3, 18, 0, 1)
        self.inventory.get('ApexCallout')
        self.assertEqual(self.client.listing_calls, 8)

    def test_new_file_visible_after_clear(self):
        self.assertFalse(self.inventory.has_file('ApexCallout', date(2025, 3, 17)))
        self.client.add_file('ApexCallout', date(2025, 3, 17), [])
        self.assertFalse(self.inventory.has_file('ApexCallout', date(2025, 3, 17)))
        self.inventory.clear()
        self.assertTrue(self.inventory.has_file('ApexCallout', date(2025, 3, 17)))

    def test_disabled_cache_always_refreshes(self):
        inventory = LogFileInventory(self.client, clock=self.clock, enabled=False, categories=['ApexCallout'])
        inventory.get('ApexCallout')
        inventory.get('ApexCallout')
        self.assertEqual(self.client.listing_calls, 2)

    def test_find_and_snapshot(self):
        found = self.inventory.find('ApexCallout', date(2025, 3, 16))
        self.assertEqual([ref.log_date for ref in found], [date(2025, 3, 16)])
        snapshot = self.inventory.snapshot()
        self.assertEqual(set(snapshot), {'ApexCallout', 'ApexRestApi'})


if __name__ == '__main__':
    unittest.main()
