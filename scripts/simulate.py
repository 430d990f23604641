"""
Order Lifecycle Simulation Script

Fires concurrent orders at the API, then drives every order through its
status lifecycle with two racing "operator screens" per step. Exactly one
of each racing pair should win; the other must receive 409 InvalidTransition.

Run from project root (API running on localhost:8001):
    python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx

API_BASE_URL = "http://localhost:8001"
RESTAURANT_ID = "rest_simulation"
TOTAL_ORDERS = 50

# Sample data for random orders
FIRST_NAMES = ["Ahmed", "Sara", "Omar", "Lina", "Vasu", "Maya", "Khalid", "Noor", "Ali", "Huda"]
LAST_NAMES = ["Al-Rashid", "Haddad", "Nasser", "Saleh", "Karim", "Farouk", "Aziz", "Mansour"]
MENU_ITEMS = [
    {"menuItemId": "juice_avocado", "name": "Avocado Juice", "unitPrice": "12.00"},
    {"menuItemId": "juice_orange", "name": "Orange Juice", "unitPrice": "10.00"},
    {"menuItemId": "biryani_chicken", "name": "Chicken Biryani", "unitPrice": "25.00"},
    {"menuItemId": "curry_mutton", "name": "Mutton Curry", "unitPrice": "30.00"},
    {"menuItemId": "samosa_veg", "name": "Vegetable Samosa", "unitPrice": "8.00"},
    {"menuItemId": "tea", "name": "Tea", "unitPrice": "5.00"},
]
CUSTOMIZATIONS = [
    {"name": "size", "value": "large", "priceDelta": "3.00"},
    {"name": "extra", "value": "cheese", "priceDelta": "2.50"},
]


def generate_order_payload() -> dict[str, Any]:
    """Generate a random order body for POST /restaurants/{id}/orders."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = dict(random.choice(MENU_ITEMS))
        item["quantity"] = random.randint(1, 3)
        if random.random() < 0.3:
            item["customizations"] = [random.choice(CUSTOMIZATIONS)]
        items.append(item)

    delivery_method = random.choice(["pickup", "delivery", "dine-in"])
    payload: dict[str, Any] = {
        "customer": {
            "name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
            "phone": f"+9665{random.randint(10000000, 99999999)}",
        },
        "items": items,
        "paymentMethod": random.choice(["cash", "card", "online"]),
        "deliveryMethod": delivery_method,
        "specialInstructions": random.choice([None, "No onions", "Extra napkins", "Less spicy"]),
    }
    if delivery_method == "delivery":
        payload["deliveryAddress"] = f"{random.randint(1, 999)} King Fahd Road, Riyadh"
    if delivery_method == "dine-in":
        payload["tableNumber"] = str(random.randint(1, 20))
    return payload


async def submit_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/restaurants/{RESTAURANT_ID}/orders",
            json=generate_order_payload(),
            timeout=30.0,
        )
    except httpx.HTTPError as e:
        return {"order_num": order_num, "success": False, "error": str(e)[:100],
                "time": round(time.time() - start_time, 3)}

    elapsed = round(time.time() - start_time, 3)
    if response.status_code != 201:
        return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}

    order = response.json()["order"]
    return {
        "order_num": order_num,
        "success": True,
        "order_id": order["id"],
        "order_number": order["orderNumber"],
        "total": Decimal(str(order["totals"]["total"])),
        "time": elapsed,
    }


async def race_transition(
    client: httpx.AsyncClient,
    order_id: str,
    status: str,
    note: Optional[str] = None,
) -> tuple[int, int]:
    """Send the same transition twice at once. Returns (wins, rejections)."""
    body = {"status": status}
    if note:
        body["note"] = note

    responses = await asyncio.gather(
        client.patch(f"{API_BASE_URL}/orders/{order_id}/status", json=body),
        client.patch(f"{API_BASE_URL}/orders/{order_id}/status", json=body),
        return_exceptions=True,
    )
    wins = sum(1 for r in responses if isinstance(r, httpx.Response) and r.status_code == 200)
    rejected = sum(1 for r in responses if isinstance(r, httpx.Response) and r.status_code == 409)
    return wins, rejected


async def drive_lifecycle(client: httpx.AsyncClient, order_id: str) -> dict[str, int]:
    """Walk one order forward, or cancel it early, racing every step."""
    counts = {"wins": 0, "rejected": 0, "steps": 0}

    if random.random() < 0.15:
        steps = [("cancelled", "customer no-show")]
    else:
        steps = [("accepted", None), ("preparing", None), ("ready", None), ("delivered", None)]

    for status, note in steps:
        wins, rejected = await race_transition(client, order_id, status, note)
        counts["wins"] += wins
        counts["rejected"] += rejected
        counts["steps"] += 1
    return counts


async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Run the simulation.

    Args:
        num_orders: Number of orders to submit concurrently
    """
    print("=" * 70)
    print("ORDER LIFECYCLE SIMULATION")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        results = await asyncio.gather(*(submit_order(client, i + 1) for i in range(num_orders)))
        successful = [r for r in results if r["success"]]

        lifecycles = await asyncio.gather(
            *(drive_lifecycle(client, r["order_id"]) for r in successful)
        )

        stats = (await client.get(f"{API_BASE_URL}/restaurants/{RESTAURANT_ID}/order-stats")).json()
        health = (await client.get(f"{API_BASE_URL}/health")).json()

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    steps = sum(c["steps"] for c in lifecycles)
    wins = sum(c["wins"] for c in lifecycles)
    rejected = sum(c["rejected"] for c in lifecycles)

    print(f"\nSubmitted: {len(successful)}/{num_orders}")
    print(f"Failed: {len(failed)}/{num_orders}")
    print(f"Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"Average Submit Response: {avg_time}s")
        print(f"Submitted Revenue: {sum(r['total'] for r in successful)}")

    print(f"\nRaced transitions: {steps}")
    print(f"   Won: {wins} (expected {steps})")
    print(f"   Rejected with 409: {rejected} (expected {steps})")

    print(f"\nStats: {stats}")
    print(f"Health: {health.get('status')} via {health.get('backend')}")
    if health.get("fallback"):
        print(f"Fallbacks: {health['fallback'].get('fallbacks')}")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\nNext: python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "race_ok": wins == steps and rejected == steps,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order lifecycle simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")
    summary = asyncio.run(run_simulation(args.orders))
    sys.exit(0 if summary["failed"] == 0 and summary["race_ok"] else 1)
