"""
Fallback Store Verification Script

Checks the integrity of every restaurant record set in the local fallback
store:
    - each record parses as an Order (status matches its last history entry)
    - items are non-empty and every line total is reproducible
    - stored totals are reproducible at the stored VAT rate
    - order numbers are unique per restaurant

Run from project root: python scripts/verify.py [--data-dir data]
"""

import argparse
import json
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from orderdesk.models import Order
from orderdesk.services import pricing
from orderdesk.services.backends.local import LocalOrderBackend


def verify_record_set(backend: LocalOrderBackend, restaurant_id: str) -> list[str]:
    """Return the problems found in one restaurant's record set."""
    problems = []
    path = backend.record_path(restaurant_id)

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        raw_orders = payload["orders"]
    except (OSError, ValueError, KeyError) as e:
        return [f"unreadable record set: {e}"]

    seen_numbers: dict[str, str] = {}
    for order_id, raw in raw_orders.items():
        try:
            order = Order.model_validate(raw)
        except ValidationError as e:
            problems.append(f"{order_id}: invalid order ({e.error_count()} error(s))")
            continue

        if order.id != order_id:
            problems.append(f"{order_id}: stored under the wrong key ({order.id})")
        if order.restaurant_id != restaurant_id:
            problems.append(f"{order_id}: belongs to restaurant {order.restaurant_id}")

        for item in order.items:
            if pricing.line_total(item) != item.line_total:
                problems.append(f"{order.order_number}: line total of {item.name} is not reproducible")
        if not pricing.totals_match(order.items, order.totals, order.vat_rate_percent):
            problems.append(f"{order.order_number}: totals are not reproducible")

        if order.order_number in seen_numbers:
            problems.append(
                f"{order.order_number}: duplicate order number "
                f"({seen_numbers[order.order_number]}, {order_id})"
            )
        seen_numbers[order.order_number] = order_id

    return problems


def verify_store(data_directory: str) -> bool:
    """Verify every record set. Returns True when no problem was found."""
    backend = LocalOrderBackend(data_directory=data_directory)

    print("=" * 60)
    print("FALLBACK STORE VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Directory: {backend.root}")
    print("=" * 60)

    restaurant_ids = backend.restaurant_ids()
    if not restaurant_ids:
        print("\nNo record sets found.")
        return True

    clean = True
    for restaurant_id in restaurant_ids:
        problems = verify_record_set(backend, restaurant_id)
        status = "OK" if not problems else f"{len(problems)} problem(s)"
        print(f"\n{restaurant_id}: {status}")
        for problem in problems[:20]:
            print(f"   - {problem}")
        clean = clean and not problems

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if clean else "VERIFICATION FAILED")
    print("=" * 60)
    return clean


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify the local fallback store")
    parser.add_argument("--data-dir", default="data", help="Data directory")
    args = parser.parse_args()

    sys.exit(0 if verify_store(args.data_dir) else 1)
