from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone

from blood_scheduler.core.settings import settings
from blood_scheduler.db.session import SessionLocal
from blood_scheduler.services.appointments import expire_stale_requests


def _parse_now(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Expire pending appointment requests whose response window has lapsed."
    )
    parser.add_argument(
        "--now",
        help="Evaluate expiry as of this ISO-8601 instant (naive values are UTC). Defaults to now.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper())
    session = SessionLocal()
    try:
        expired = expire_stale_requests(session, now=_parse_now(args.now))
    finally:
        session.close()

    print(f"Expired requests: {expired}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
