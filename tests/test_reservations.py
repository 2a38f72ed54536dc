import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

from car_reservation import (
    ReservationRepository,
    YamlDocumentStore,
    can_reserve,
    generate_test_reservations,
    parse_reservation,
)
from car_reservation.yaml_store import Document


def _fields(start: datetime | None, end: datetime | None, created_at: datetime | None = datetime(2024, 6, 1, 8, 0)) -> dict:
    fields = {"owner_id": "u1", "owner_display_name": "Ana Horvat", "description": ""}
    if start is not None:
        fields["start"] = start
    if end is not None:
        fields["end"] = end
    if created_at is not None:
        fields["created_at"] = created_at
    return fields


class TestParseReservation(unittest.TestCase):
    def test_parses_iso_strings_and_yaml_datetimes(self) -> None:
        document = Document(
            "r1",
            {
                "owner_id": "u1",
                "owner_display_name": "Ana Horvat",
                "start": "2024-06-10T09:00:00",
                "end": datetime(2024, 6, 10, 10, 0),
                "created_at": "2024-06-01T08:00:00",
            },
        )
        reservation = parse_reservation(document)
        self.assertIsNotNone(reservation)
        self.assertEqual(reservation.start, datetime(2024, 6, 10, 9, 0))
        self.assertEqual(reservation.end, datetime(2024, 6, 10, 10, 0))
        self.assertEqual(reservation.description, "")

    def test_missing_or_broken_time_fields_yield_none(self) -> None:
        broken = [
            {"end": "2024-06-10T10:00:00", "created_at": "2024-06-01T08:00:00"},
            {"start": "2024-06-10T09:00:00", "created_at": "2024-06-01T08:00:00"},
            {"start": "2024-06-10T09:00:00", "end": "2024-06-10T10:00:00"},
            {"start": "yesterday", "end": "2024-06-10T10:00:00", "created_at": "2024-06-01T08:00:00"},
            {"start": "2024-06-10T11:00:00", "end": "2024-06-10T10:00:00", "created_at": "2024-06-01T08:00:00"},
        ]
        for fields in broken:
            with self.subTest(fields=fields):
                self.assertIsNone(parse_reservation(Document("bad", fields)))


class TestReservationRepository(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.store = YamlDocumentStore(Path(self._temp_dir.name) / "data")
        self.repository = ReservationRepository(self.store)

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_live_view_skips_record_missing_start(self) -> None:
        for hour in (9, 11, 13, 15):
            self.store.create("reservations", _fields(datetime(2024, 6, 10, hour, 0), datetime(2024, 6, 10, hour + 1, 0)))
        self.store.create("reservations", _fields(None, datetime(2024, 6, 10, 18, 0)))

        snapshots: list[list] = []
        with self.assertLogs("car_reservation.reservations", level="WARNING") as captured:
            subscription = self.repository.subscribe(snapshots.append)
        subscription.unsubscribe()

        self.assertEqual(len(snapshots), 1)
        self.assertEqual(len(snapshots[0]), 4)
        self.assertIn("Skipping invalid reservation document", captured.output[0])

    def test_snapshots_are_ordered_by_start(self) -> None:
        for hour in (15, 9, 12):
            self.repository.create(
                owner_id="u1",
                owner_display_name="Ana Horvat",
                start=datetime(2024, 6, 10, hour, 0),
                end=datetime(2024, 6, 10, hour + 1, 0),
            )

        starts = [item.start.hour for item in self.repository.list_reservations()]
        self.assertEqual(starts, [9, 12, 15])

    def test_subscription_replaces_whole_set_on_each_change(self) -> None:
        snapshots: list[list[str]] = []
        subscription = self.repository.subscribe(
            lambda reservations: snapshots.append([item.reservation_id for item in reservations])
        )
        created = self.repository.create(
            owner_id="u1",
            owner_display_name="Ana Horvat",
            start=datetime(2024, 6, 10, 9, 0),
            end=datetime(2024, 6, 10, 10, 0),
        )
        self.repository.update(created.reservation_id, datetime(2024, 6, 10, 10, 0), datetime(2024, 6, 10, 11, 0), "moved")
        self.repository.delete(created.reservation_id)
        subscription.unsubscribe()

        self.assertEqual(snapshots, [[], [created.reservation_id], [created.reservation_id], []])

    def test_update_rewrites_times_and_description_only(self) -> None:
        created = self.repository.create(
            owner_id="u1",
            owner_display_name="Ana Horvat",
            start=datetime(2024, 6, 10, 9, 0),
            end=datetime(2024, 6, 10, 10, 0),
            description="first",
            created_at=datetime(2024, 6, 1, 8, 0),
        )
        self.repository.update(created.reservation_id, datetime(2024, 6, 10, 13, 0), datetime(2024, 6, 10, 14, 0), "second")

        updated = self.repository.get(created.reservation_id)
        self.assertEqual(updated.start, datetime(2024, 6, 10, 13, 0))
        self.assertEqual(updated.description, "second")
        self.assertEqual(updated.owner_id, "u1")
        self.assertEqual(updated.owner_display_name, "Ana Horvat")
        self.assertEqual(updated.created_at, datetime(2024, 6, 1, 8, 0))

    def test_get_returns_none_for_missing(self) -> None:
        self.assertIsNone(self.repository.get("missing"))

    def test_seed_test_data_writes_reservations(self) -> None:
        seeded = self.repository.seed_test_data(
            [("u1", "Ana Horvat"), ("u2", "Ivo Ivic")],
            now=datetime(2024, 6, 10, 8, 0),
            days=14,
        )
        stored = self.repository.list_reservations()
        self.assertEqual(len(stored), len(seeded))
        self.assertEqual({item.reservation_id for item in stored}, {item.reservation_id for item in seeded})


class TestGenerateTestReservations(unittest.TestCase):
    def test_generated_bookings_do_not_overlap_and_stay_within_a_day(self) -> None:
        records = generate_test_reservations(date(2024, 6, 10), [("u1", "Ana Horvat"), ("u2", "Ivo Ivic")], days=21)

        self.assertGreater(len(records), 0)
        for index, record in enumerate(records):
            self.assertEqual(record.start.date(), record.end.date())
            self.assertLess(record.start.weekday(), 5)
            self.assertTrue(can_reserve(record.start, record.end, records[:index] + records[index + 1:]))

    def test_generation_is_deterministic(self) -> None:
        owners = [("u1", "Ana Horvat")]
        first = generate_test_reservations(date(2024, 6, 10), owners)
        second = generate_test_reservations(date(2024, 6, 10), owners)
        self.assertEqual([(r.start, r.end) for r in first], [(r.start, r.end) for r in second])

    def test_invalid_parameters_raise(self) -> None:
        with self.assertRaises(ValueError):
            generate_test_reservations(date(2024, 6, 10), [("u1", "Ana")], days=0)
        with self.assertRaises(ValueError):
            generate_test_reservations(date(2024, 6, 10), [], days=5)


if __name__ == "__main__":
    unittest.main()
