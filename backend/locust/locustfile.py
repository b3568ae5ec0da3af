"""
Locust Load Test Suite

The API must be started with the load-test admin listed in ADMIN_EMAILS:
  ADMIN_EMAILS='["load-admin@example.com"]' uvicorn event_portal.main:app

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many users racing for few seats
  locust -f locustfile.py --tags churn        # Register/cancel on the same event
  locust -f locustfile.py --tags throughput   # Cached listings
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import random
import string
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_EMAIL = "load-admin@example.com"
PASSWORD = "load-test-password"

# Shared state, filled in by on_test_start
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CHURN_EVENT_ID = None


def random_email():
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
    return f"load_{suffix}@example.com"


def signup_and_login(client, email):
    client.post("/api/v1/auth/register", json={
        "email": email,
        "full_name": "Load Tester",
        "password": PASSWORD,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code != 200:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def create_event(client, headers, title, seats):
    future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    resp = client.post("/api/v1/events/", json={
        "title": title,
        "description": "Load test event",
        "location": "Test",
        "event_date": future,
        "total_seats": seats,
    }, headers=headers)
    return resp.json()["id"] if resp.status_code == 201 else None


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Create the contested events once, as the load-test admin."""
    global CONCURRENCY_EVENT_ID, CHURN_EVENT_ID
    if environment.host is None:
        return

    from locust.clients import HttpSession

    client = HttpSession(base_url=environment.host, request_event=environment.events.request, user=None)
    headers = signup_and_login(client, ADMIN_EMAIL)
    if not headers:
        print("SETUP: admin login failed, is ADMIN_EMAILS set?")
        return

    CONCURRENCY_EVENT_ID = create_event(client, headers, "Concurrency Test Event", 10)
    CHURN_EVENT_ID = create_event(client, headers, "Churn Test Event", 5)
    EVENT_IDS.extend(i for i in (CONCURRENCY_EVENT_ID, CHURN_EVENT_ID) if i)
    print(f"SETUP: concurrency event {CONCURRENCY_EVENT_ID} (10 seats), churn event {CHURN_EVENT_ID} (5 seats)")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM registrations WHERE event_id = X AND status = 'confirmed';
    Should be exactly 10, and the event's available_seats 0.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = signup_and_login(self.client, random_email())

    @tag("concurrency")
    @task
    def register_for_limited_event(self):
        if not CONCURRENCY_EVENT_ID or not self.headers:
            return

        with self.client.post("/api/v1/registrations/",
            json={"event_id": CONCURRENCY_EVENT_ID},
            headers=self.headers,
            name="/api/v1/registrations/ [contested]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: sold out or already registered
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ChurnUser(HttpUser):
    """
    TEST 2: Register and cancel in a loop on a small event.

    Run: locust -f locustfile.py --tags churn -u 50 -r 25 --run-time 60s

    Seats are released and re-taken constantly; afterwards
    available_seats + confirmed registrations must still equal 5.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.headers = signup_and_login(self.client, random_email())
        self.registration_id = None

    @tag("churn")
    @task
    def register_or_cancel(self):
        if not CHURN_EVENT_ID or not self.headers:
            return

        if self.registration_id:
            resp = self.client.delete(
                f"/api/v1/registrations/{self.registration_id}",
                headers=self.headers,
                name="/api/v1/registrations/{id}",
            )
            if resp.status_code == 200:
                self.registration_id = None
            return

        with self.client.post("/api/v1/registrations/",
            json={"event_id": CHURN_EVENT_ID},
            headers=self.headers,
            name="/api/v1/registrations/ [churn]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                self.registration_id = resp.json()["id"]
                resp.success()
            elif resp.status_code == 409:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn")
    @task(2)
    def check_availability(self):
        if CHURN_EVENT_ID:
            self.client.get(f"/api/v1/events/{CHURN_EVENT_ID}/availability",
                name="/api/v1/events/{id}/availability")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = signup_and_login(self.client, random_email())

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post("/api/v1/registrations/",
            json={"event_id": "00000000-0000-0000-0000-000000000000"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def cancel_someone_elses_registration(self):
        with self.client.delete("/api/v1/registrations/not-a-registration",
            headers=self.headers,
            name="/api/v1/registrations/{id} [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (403, 404))

    @tag("edge")
    @task
    def non_admin_capacity_change(self):
        if not CONCURRENCY_EVENT_ID:
            return
        with self.client.patch(f"/api/v1/events/{CONCURRENCY_EVENT_ID}",
            json={"total_seats": 1},
            headers=self.headers,
            name="/api/v1/events/{id} [forbidden]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (403,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/registrations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/registrations/",
            json={"event_id": CONCURRENCY_EVENT_ID or "x"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (401,))


class RealisticUser(HttpUser):
    """
    TEST 5: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some registrations, the occasional "My Events" check.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = signup_and_login(self.client, random_email())

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

    @task(10)
    def register(self):
        if EVENT_IDS and self.headers:
            with self.client.post("/api/v1/registrations/",
                json={"event_id": random.choice(EVENT_IDS)},
                headers=self.headers,
                catch_response=True,
            ) as resp:
                if resp.status_code in (201, 409):
                    resp.success()

    @task(5)
    def my_events(self):
        if self.headers:
            self.client.get("/api/v1/registrations/?when=upcoming", headers=self.headers)
