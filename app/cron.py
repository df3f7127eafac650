"""
Cron entrypoint. Schedule it every few minutes; the run itself decides
whether it is time:

    */5 * * * * cd /srv/autocheckout && python -m app.cron

Pass --manual to force a run outside the schedule window (for testing).
"""
import argparse
import json
import logging
import sys

from .config import settings
from .db import SessionLocal, ensure_schema
from .services.auto_checkout import run_auto_checkout
from .services.reporting import RunStatus
from .services.sms import send_checkout_sms

logger = logging.getLogger("app.cron")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the daily automatic checkout.")
    parser.add_argument("--manual", action="store_true", help="bypass the time-of-day and once-per-day gates")
    parser.add_argument("--json", action="store_true", help="print the full JSON result")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Auto checkout cron started - %s", "MANUAL RUN" if args.manual else "AUTOMATIC")

    ensure_schema()
    db = SessionLocal()
    try:
        result = run_auto_checkout(db, manual=args.manual, notify=send_checkout_sms)
    finally:
        db.close()

    payload = result.model_dump(mode="json")
    logger.info("Auto checkout result: %s", json.dumps(payload))
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print(f"Auto checkout executed: {result.status}")
        if result.status == RunStatus.COMPLETED:
            print(f"Checked out: {result.checked_out} bookings")
            print(f"Failed: {result.failed} bookings")
        elif result.message:
            print(result.message)
    logger.info("Auto checkout cron completed")
    return 1 if result.status == RunStatus.ERROR else 0


if __name__ == "__main__":
    sys.exit(main())
