from __future__ import annotations

from datetime import datetime, timedelta
import logging
import traceback

from car_reservation import (
    Account,
    BookingForm,
    BookingWorkflow,
    ReservationRepository,
    UserDirectory,
    YamlDocumentStore,
    month_grid,
)
from car_reservation.config import load_config


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    print("[INFO] Car Reservation Quick Check")

    config = load_config()
    store = YamlDocumentStore(config.data_dir, composite_indexes=config.composite_indexes)
    repository = ReservationRepository(store, config.reservations_collection)
    directory = UserDirectory(store, config.users_collection)

    now = datetime.now().replace(second=0, microsecond=0)
    owner = directory.identity_for(Account(user_id="quickcheck", email="quick.check@example.com"))
    generated = repository.seed_test_data([(owner.user_id, owner.display_name)], now=now, days=14)
    print(f"[OK] Test data generated: {len(generated)} records")

    workflow = BookingWorkflow(repository, users=directory)
    target = (now + timedelta(days=1)).date()
    for hour in range(6, 23):
        outcome = workflow.submit(
            owner,
            BookingForm(date=target, start_time=f"{hour:02d}:00", end_time=f"{hour + 1:02d}:00", description="Quick check"),
        )
        if outcome.ok:
            print(f"[OK] Booked {outcome.reservation.start:%Y-%m-%d %H:%M}-{outcome.reservation.end:%H:%M}")
            break
        print(f"[INFO] {hour:02d}:00 unavailable: {outcome.message}")
    else:
        print("[WARN] No free hour found tomorrow")

    cells = month_grid(target.year, target.month, repository.list_reservations(), today=now.date())
    booked_days = sum(1 for cell in cells if cell.is_current_month and cell.has_reservations)
    print(f"[OK] Days with reservations in {target:%Y-%m}: {booked_days}")
    print(f"[OK] Data directory: {config.data_dir.resolve()}")
    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
