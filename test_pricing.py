import unittest
from datetime import date, timedelta

from gymcheckin.models import FacilityType
from gymcheckin.pricing import (
    available_durations,
    calculate_end_time,
    calculate_price,
    day_kind_for_date,
    is_valid_end_time,
    parse_start_hour,
)

SATURDAY = date(2026, 2, 7)
SUNDAY = date(2026, 2, 8)
TUESDAY = date(2026, 2, 3)


class PricingTests(unittest.TestCase):
    def test_gym_saturday_evening_uses_weekend_rate(self):
        quote = calculate_price(FacilityType.GYM, SATURDAY, "16:00", 2)
        self.assertEqual(quote.breakdown, [(16, 2750), (17, 2750)])
        self.assertEqual(quote.total_price, 5500)

    def test_gym_tuesday_crosses_into_evening_rate(self):
        quote = calculate_price(FacilityType.GYM, TUESDAY, "16:00", 2)
        self.assertEqual(quote.breakdown, [(16, 2750), (17, 2200)])
        self.assertEqual(quote.total_price, 4950)

    def test_weekend_classification(self):
        self.assertEqual(day_kind_for_date(SATURDAY), "weekend")
        self.assertEqual(day_kind_for_date(SUNDAY), "weekend")
        for offset in range(5):
            # Mon 2026-02-02 .. Fri 2026-02-06
            self.assertEqual(day_kind_for_date(date(2026, 2, 2) + timedelta(days=offset)), "weekday")

    def test_gym_boundary_hour_16_daytime_17_evening(self):
        weekday_16 = calculate_price(FacilityType.GYM, TUESDAY, "16:00", 1)
        weekday_17 = calculate_price(FacilityType.GYM, TUESDAY, "17:00", 1)
        self.assertEqual(weekday_16.total_price, 2750)
        self.assertEqual(weekday_17.total_price, 2200)

        weekend_16 = calculate_price(FacilityType.GYM, SUNDAY, "16:00", 1)
        weekend_17 = calculate_price(FacilityType.GYM, SUNDAY, "17:00", 1)
        self.assertEqual(weekend_16.total_price, 2750)
        self.assertEqual(weekend_17.total_price, 2750)

    def test_training_is_flat_on_any_day(self):
        for d in (TUESDAY, SATURDAY, SUNDAY):
            quote = calculate_price(FacilityType.TRAINING, d, "07:00", 3)
            self.assertEqual([price for _, price in quote.breakdown], [2200, 2200, 2200])
            self.assertEqual(quote.total_price, 6600)

        evening = calculate_price(FacilityType.TRAINING, TUESDAY, "18:00", 3)
        self.assertEqual({price for _, price in evening.breakdown}, {2200})

    def test_total_is_sum_of_breakdown_and_deterministic(self):
        for facility in FacilityType:
            for d in (TUESDAY, SATURDAY):
                for start in range(7, 21):
                    for duration in available_durations(f"{start:02d}:00"):
                        first = calculate_price(facility, d, f"{start:02d}:00", duration)
                        second = calculate_price(facility, d, f"{start:02d}:00", duration)
                        self.assertEqual(first, second)
                        self.assertEqual(first.total_price, sum(p for _, p in first.breakdown))
                        self.assertEqual([h for h, _ in first.breakdown], list(range(start, start + duration)))

    def test_accepts_string_facility_type(self):
        self.assertEqual(calculate_price("TRAINING", TUESDAY, "10:00", 1).total_price, 2200)

    def test_rejects_bad_duration_and_start(self):
        with self.assertRaises(ValueError):
            calculate_price(FacilityType.GYM, TUESDAY, "10:00", 0)
        with self.assertRaises(ValueError):
            calculate_price(FacilityType.GYM, TUESDAY, "10:30", 1)
        with self.assertRaises(ValueError):
            calculate_price(FacilityType.GYM, TUESDAY, "ten", 1)
        with self.assertRaises(ValueError):
            calculate_price("POOL", TUESDAY, "10:00", 1)

    def test_end_time_helpers(self):
        self.assertEqual(parse_start_hour("07:00"), 7)
        self.assertEqual(calculate_end_time("18:00", 3), "21:00")
        self.assertTrue(is_valid_end_time("17:00", 4))
        self.assertFalse(is_valid_end_time("18:00", 4))
        self.assertEqual(available_durations("19:00"), [1, 2])
        self.assertEqual(available_durations("07:00"), [1, 2, 3, 4])


if __name__ == "__main__":
    unittest.main()
