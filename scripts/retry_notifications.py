"""Trigger the notification retry sweep, once or on an interval.

Meant for cron or a scheduler container; each call claims at most one batch
of eligible rows, so overlapping runs are safe.
"""

import argparse
import json
import os
import time

import httpx


def sweep_once(notification_url: str, service_key: str) -> dict:
    """Run one sweep and return the summary body."""

    resp = httpx.post(
        f"{notification_url}/retry-notifications",
        headers={"Authorization": f"Bearer {service_key}"},
        timeout=30.0,
    )
    resp.raise_for_status()
    return resp.json()


def main() -> None:
    """CLI entrypoint for scheduled notification retries."""

    parser = argparse.ArgumentParser(description="Retry failed or stuck notifications.")
    parser.add_argument("--notification-url", default="http://localhost:8003")
    parser.add_argument("--service-key", default=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""))
    parser.add_argument("--interval-seconds", type=int, default=0, help="repeat forever when > 0")
    args = parser.parse_args()

    if not args.service_key:
        raise SystemExit("Provide --service-key or SUPABASE_SERVICE_ROLE_KEY")

    while True:
        print(json.dumps(sweep_once(args.notification_url, args.service_key)))
        if args.interval_seconds <= 0:
            return
        time.sleep(args.interval_seconds)


if __name__ == "__main__":
    main()
