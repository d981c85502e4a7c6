from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from work360.services.worked_hours import (
    calculate_worked_hours,
    live_hours,
    recalculate_worked_hours_from_total,
)


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 5, hour, minute, tzinfo=timezone.utc)


class WorkedHoursTests(unittest.TestCase):
    def test_short_shift_keeps_full_presence(self) -> None:
        result = calculate_worked_hours(_utc(8), _utc(13, 30))
        self.assertEqual(result.presence_hours, 5.5)
        self.assertEqual(result.worked_hours, 5.5)
        self.assertFalse(result.lunch_break_applied)

    def test_six_hours_or_more_deducts_one_hour(self) -> None:
        exactly_six = calculate_worked_hours(_utc(8), _utc(14))
        self.assertTrue(exactly_six.lunch_break_applied)
        self.assertEqual(exactly_six.worked_hours, 5.0)

        full_day = calculate_worked_hours(_utc(7, 30), _utc(17))
        self.assertEqual(full_day.presence_hours, 9.5)
        self.assertEqual(full_day.worked_hours, 8.5)

    def test_missing_or_reversed_interval_yields_zero(self) -> None:
        for clock_in, clock_out in ((None, _utc(10)), (_utc(10), None), (_utc(12), _utc(9)), (_utc(9), _utc(9))):
            result = calculate_worked_hours(clock_in, clock_out)
            self.assertEqual(result.presence_hours, 0.0)
            self.assertEqual(result.worked_hours, 0.0)
            self.assertFalse(result.lunch_break_applied)

    def test_naive_datetimes_are_read_as_utc(self) -> None:
        naive_in = datetime(2026, 10, 5, 8, 0)
        result = calculate_worked_hours(naive_in, _utc(10, 20))
        self.assertEqual(result.worked_hours, 2.33)

    def test_recalculate_from_raw_total(self) -> None:
        self.assertEqual(recalculate_worked_hours_from_total(Decimal("8.00")).worked_hours, 7.0)
        self.assertEqual(recalculate_worked_hours_from_total(4).worked_hours, 4.0)
        self.assertEqual(recalculate_worked_hours_from_total(None).worked_hours, 0.0)
        self.assertEqual(recalculate_worked_hours_from_total("not-a-number").worked_hours, 0.0)  # type: ignore[arg-type]

    def test_live_hours_has_no_lunch_deduction_and_never_negative(self) -> None:
        clock_in = _utc(7)
        self.assertAlmostEqual(live_hours(clock_in, clock_in + timedelta(hours=7, minutes=15)), 7.25)
        self.assertEqual(live_hours(clock_in, clock_in - timedelta(minutes=5)), 0.0)


if __name__ == "__main__":
    unittest.main()
