"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags contention   # Many users, one slot
  locust -f locustfile.py --tags browse       # Event listing throughput
  locust -f locustfile.py                     # All tests

After a contention run, verify in the database:
  SELECT event_id, slot_index, COUNT(*) FROM bookings
  GROUP BY event_id, slot_index HAVING COUNT(*) > 1;
Must return zero rows.
"""

import itertools
import random
from datetime import datetime, timezone, timedelta

import httpx
from locust import HttpUser, task, between, tag, events

CONTENTION_SLOTS = 3
CONTENTION_EVENT_ID = None
_user_ids = itertools.count(1_000_000)


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: create the event every contention user fights over."""
    global CONTENTION_EVENT_ID
    if environment.host is None:
        return

    start = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
    resp = httpx.post(
        f"{environment.host}/api/events",
        json={"creator_id": 1, "slots_count": CONTENTION_SLOTS, "start_time": start},
    )
    if resp.status_code == 201:
        CONTENTION_EVENT_ID = resp.json()["id"]
        print(f"\n✓ Created event {CONTENTION_EVENT_ID} with {CONTENTION_SLOTS} slots\n")


class ContentionUser(HttpUser):
    """
    Every user claims a random slot of the same small event, then releases it.

    Run: locust -f locustfile.py --tags contention -u 200 -r 50 --run-time 30s
    201 and 400 (slot_taken) are both expected; anything else is a failure.
    """
    wait_time = between(0, 0.05)

    def on_start(self):
        self.user_id = next(_user_ids)

    @tag("contention")
    @task
    def claim_and_release(self):
        if not CONTENTION_EVENT_ID:
            return

        slot = random.randrange(CONTENTION_SLOTS)
        claim = {
            "event_id": CONTENTION_EVENT_ID,
            "slot_index": slot,
            "user_id": self.user_id,
            "user_name": f"load{self.user_id}",
            "user_photo": None,
        }
        with self.client.post("/api/bookings", json=claim, catch_response=True, name="claim slot") as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 400 and resp.json().get("code") == "slot_taken":
                resp.success()
                return
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
                return

        self.client.request(
            "DELETE",
            "/api/bookings",
            json={"event_id": CONTENTION_EVENT_ID, "slot_index": slot, "user_id": self.user_id},
            name="release slot",
        )


class BrowseUser(HttpUser):
    """
    Listing throughput: every call aggregates all events with participants.

    Run: locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task
    def list_events(self):
        with self.client.get("/api/events", catch_response=True) as resp:
            if resp.status_code != 200:
                resp.failure(f"Unexpected: {resp.status_code}")
            elif not isinstance(resp.json(), list):
                resp.failure("Listing is not an array")
