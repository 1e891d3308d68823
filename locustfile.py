"""
Locust load test for the PayFlow backend.

Run: locust -f locustfile.py --host=http://localhost:3001
Then open http://localhost:8089 and start a swarm.  A single simulated
client that exceeds 1000 /api requests in 15 minutes should start
seeing 429s, which are counted as successes here.
"""

import random
from locust import HttpUser, task, between


class PayflowUser(HttpUser):
    wait_time = between(0.5, 1.5)

    @task(3)
    def list_accounts(self):
        with self.client.get("/api/accounts", name="/api/accounts", catch_response=True) as resp:
            if resp.status_code in (200, 429):
                resp.success()

    @task(1)
    def create_account(self):
        with self.client.post(
            "/api/accounts",
            json={"name": f"load_{random.randint(1, 10_000_000)}"},
            headers={"Content-Type": "application/json", "Origin": "http://localhost:3000"},
            name="/api/accounts [create]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409, 429):
                resp.success()

    @task(1)
    def health(self):
        self.client.get("/health", name="/health")
