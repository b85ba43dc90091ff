#!/usr/bin/env python3
"""
Complete booking, walk and review flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/seed_users.py
    python scripts/flow_book_and_walk.py --owner-token <JWT> --sitter-token <JWT> \
        --sitter-id <UUID> --service-id <UUID> --internal-key <KEY>

Flow:
    1. Create booking (owner)
    2. Confirm booking (sitter)
    3. Walk started (walk tracker)
    4. Walk ended (walk tracker)
    5. Review sitter (owner) - stays hidden
    6. Review owner (sitter) - both published
"""

import argparse
import json
import sys
from datetime import UTC, datetime, timedelta

import httpx

BASE_URL = "http://localhost:8000"


def api_request(
    method: str,
    endpoint: str,
    data: dict | None = None,
    token: str | None = None,
    headers: dict | None = None,
) -> dict:
    """Make an API request and return status and body."""
    headers = dict(headers or {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    response = httpx.request(
        method,
        f"{BASE_URL}{endpoint}",
        headers=headers,
        json=data,
        timeout=10.0,
        follow_redirects=True,
    )
    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    data = result["data"]
    if fields and isinstance(data, dict):
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Complete booking, walk and review flow")
    parser.add_argument("--owner-token", required=True)
    parser.add_argument("--sitter-token", required=True)
    parser.add_argument("--sitter-id", required=True)
    parser.add_argument("--service-id", required=True)
    parser.add_argument("--internal-key", required=True, help="X-Internal-Key for walk events")
    parser.add_argument("--hours-ahead", type=int, default=48, help="Booking start offset")
    args = parser.parse_args()

    start = datetime.now(UTC) + timedelta(hours=args.hours_ahead)
    internal_headers = {"X-Internal-Key": args.internal_key}

    # Step 1: Create booking
    print_step(1, "Create booking (owner)")
    result = api_request("POST", "/api/v1/bookings/", {
        "sitter_id": args.sitter_id,
        "service_id": args.service_id,
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=1)).isoformat(),
    }, token=args.owner_token)
    if not print_result(result, ["id", "total_price", "status", "payment_status"]):
        sys.exit(1)
    booking_id = result["data"]["id"]

    # Step 2: Confirm booking
    print_step(2, "Confirm booking (sitter)")
    result = api_request(
        "PUT", f"/api/v1/bookings/{booking_id}/status", {"status": "confirmed"}, token=args.sitter_token
    )
    if not print_result(result):
        sys.exit(1)

    # Steps 3-4: Walk events
    for step, event_type in ((3, "start"), (4, "end")):
        print_step(step, f"Walk event: {event_type}")
        result = api_request(
            "POST",
            f"/api/v1/internal/bookings/{booking_id}/walk-events",
            {"event_type": event_type},
            headers=internal_headers,
        )
        if not print_result(result, ["id", "status", "completed_at"]):
            sys.exit(1)

    # Steps 5-6: Reviews
    for step, token, label in ((5, args.owner_token, "owner"), (6, args.sitter_token, "sitter")):
        print_step(step, f"Review ({label})")
        result = api_request(
            "POST", "/api/v1/reviews/", {"booking_id": booking_id, "rating": 5}, token=token
        )
        if not print_result(result, ["id", "rating", "published_at"]):
            sys.exit(1)

    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)


if __name__ == "__main__":
    main()
