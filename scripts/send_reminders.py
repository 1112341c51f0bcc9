"""Trigger the daily appointment reminder run.

Schedule once a day; bookings already reminded for their appointment date are
skipped, so an accidental second run sends nothing new.
"""

import argparse
import json
import os

import httpx


def run_once(notification_url: str, service_key: str) -> dict:
    resp = httpx.post(
        f"{notification_url}/send-reminders",
        headers={"Authorization": f"Bearer {service_key}"},
        timeout=120.0,
    )
    resp.raise_for_status()
    return resp.json()


def main() -> None:
    """CLI entrypoint for the daily reminder job."""

    parser = argparse.ArgumentParser(description="Send reminders for tomorrow's appointments.")
    parser.add_argument("--notification-url", default="http://localhost:8003")
    parser.add_argument("--service-key", default=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""))
    args = parser.parse_args()

    if not args.service_key:
        raise SystemExit("Provide --service-key or SUPABASE_SERVICE_ROLE_KEY")
    print(json.dumps(run_once(args.notification_url, args.service_key)))


if __name__ == "__main__":
    main()
