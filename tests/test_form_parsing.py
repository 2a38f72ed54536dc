import unittest
from datetime import date, datetime, time

from car_reservation import ValidationError
from car_reservation.form_parsing import compose_interval, parse_date, parse_time_of_day, suggest_end_time


class TestFormParsing(unittest.TestCase):
    def test_parse_date_accepts_dash_and_slash(self) -> None:
        self.assertEqual(parse_date("2024-06-10"), date(2024, 6, 10))
        self.assertEqual(parse_date("2024/6/1"), date(2024, 6, 1))
        self.assertEqual(parse_date(date(2024, 6, 10)), date(2024, 6, 10))

    def test_parse_date_rejects_missing_or_malformed(self) -> None:
        for value in (None, "", "10.06.2024", "2024-02-30"):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    parse_date(value)

    def test_parse_time_of_day(self) -> None:
        self.assertEqual(parse_time_of_day("09:30"), time(9, 30))
        self.assertEqual(parse_time_of_day("23:59"), time(23, 59))
        with self.assertRaises(ValidationError):
            parse_time_of_day("24:00")
        with self.assertRaises(ValidationError):
            parse_time_of_day("9.30")

    def test_compose_interval_uses_one_date(self) -> None:
        start, end = compose_interval("2024-06-10", "09:00", "10:30")
        self.assertEqual(start, datetime(2024, 6, 10, 9, 0))
        self.assertEqual(end, datetime(2024, 6, 10, 10, 30))

    def test_compose_interval_rejects_end_before_start(self) -> None:
        with self.assertRaises(ValidationError) as context:
            compose_interval("2024-06-10", "10:00", "09:00")
        self.assertIn("End time must be after start time", str(context.exception))

    def test_compose_interval_rejects_equal_times(self) -> None:
        with self.assertRaises(ValidationError):
            compose_interval(date(2024, 6, 10), "10:00", "10:00")

    def test_compose_interval_requires_date_and_times(self) -> None:
        with self.assertRaises(ValidationError):
            compose_interval(None, "09:00", "10:00")
        with self.assertRaises(ValidationError):
            compose_interval("2024-06-10", "", "10:00")

    def test_suggest_end_time(self) -> None:
        self.assertEqual(suggest_end_time("09:15"), "10:15")
        self.assertEqual(suggest_end_time("09:15", "12:00"), "12:00")
        self.assertEqual(suggest_end_time("11:00", "10:00"), "12:00")
        self.assertEqual(suggest_end_time("23:10"), "23:10")


if __name__ == "__main__":
    unittest.main()
