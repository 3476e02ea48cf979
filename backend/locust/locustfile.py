"""
Locust Load Test Suite

The API has no signup endpoints, so seed one owner, one of their pets and a
host first and pass their ids in:

  OWNER_ID=1 PET_ID=1 HOST_ID=2 locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags throughput   # Test availability reads
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import date, timedelta

from locust import HttpUser, between, events, tag, task

OWNER_ID = int(os.environ.get("OWNER_ID", "1"))
PET_ID = int(os.environ.get("PET_ID", "1"))
HOST_ID = int(os.environ.get("HOST_ID", "2"))

# Every concurrency user fights over the same stay
CONTESTED_SLOTS = 10
CONTESTED_START = date.today() + timedelta(days=60)
CONTESTED_END = CONTESTED_START + timedelta(days=3)


def order_body(start: date, end: date) -> dict:
    return {
        "requester_user_id": OWNER_ID,
        "pet_id": PET_ID,
        "host_user_id": HOST_ID,
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: cap the contested start date at a handful of slots."""
    print("\n" + "=" * 60)
    print(f"SETUP: {CONTESTED_SLOTS} slots on {CONTESTED_START.isoformat()}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 slots

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT booked_slots, max_slots FROM capacity_days WHERE date = X;
    booked_slots should be <= max_slots
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.client.put(
            f"/api/v1/availability/{CONTESTED_START.isoformat()}",
            json={"max_slots": CONTESTED_SLOTS},
            name="/api/v1/availability/{day}",
        )

    @tag("concurrency")
    @task
    def book_and_confirm(self):
        """Create then confirm; both steps may lose the last slot."""
        with self.client.post(
            "/api/v1/orders",
            json=order_body(CONTESTED_START, CONTESTED_END),
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
                order_id = resp.json()["id"]
            elif resp.status_code == 409:
                resp.success()  # Expected: full
                return
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
                return

        with self.client.post(
            f"/api/v1/orders/{order_id}/confirm",
            name="/api/v1/orders/{id}/confirm",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - availability is always read from the database

    Run: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def check_month(self):
        start = date.today() + timedelta(days=random.randint(1, 90))
        self.client.get(
            "/api/v1/availability",
            params={"start_date": start.isoformat(), "end_date": (start + timedelta(days=30)).isoformat()},
            name="/api/v1/availability [30 days]",
        )

    @tag("throughput", "read")
    @task(3)
    def host_orders(self):
        self.client.get(
            f"/api/v1/hosts/{HOST_ID}/orders?page={random.randint(1, 5)}&page_size=20",
            name="/api/v1/hosts/{id}/orders",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_pet(self):
        body = order_body(CONTESTED_START, CONTESTED_END)
        body["pet_id"] = 999999
        with self.client.post("/api/v1/orders", json=body, catch_response=True) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def stay_in_the_past(self):
        past = date.today() - timedelta(days=10)
        with self.client.post(
            "/api/v1/orders", json=order_body(past, past + timedelta(days=2)), catch_response=True
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def one_day_stay(self):
        with self.client.post(
            "/api/v1/orders",
            json=order_body(CONTESTED_START, CONTESTED_START + timedelta(days=1)),
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def reversed_range(self):
        with self.client.get(
            "/api/v1/availability",
            params={"start_date": CONTESTED_END.isoformat(), "end_date": CONTESTED_START.isoformat()},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def complete_unknown_order(self):
        with self.client.post(
            "/api/v1/orders/999999/complete", name="/api/v1/orders/{id}/complete", catch_response=True
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/orders",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))
