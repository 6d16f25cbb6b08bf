"""
Locust load testing script for the Diagram Render Service.

Usage:
    locust -f tests/performance/locustfile.py --host=http://localhost:8000

    # Headless mode:
    locust -f tests/performance/locustfile.py --host=http://localhost:8000 \
           --headless -u 20 -r 5 --run-time 5m
"""

import random

from locust import HttpUser, between, events, tag, task

DIAGRAMS = [
    "graph TD\n  A[Client] --> B[API]\n  B --> C[(Pool)]\n  C --> D[Chromium]\n",
    "sequenceDiagram\n  participant C as Client\n  participant S as Service\n  C->>S: POST /api/generate\n  S-->>C: image/svg+xml\n",
    "classDiagram\n  class Pipeline\n  class Pool\n  Pipeline --> Pool\n",
    "pie title Formats\n  \"svg\" : 60\n  \"png\" : 30\n  \"pdf\" : 10\n",
]

MINDMAP = "mindmap\n  root((Render))\n    Engine\n      Factory\n      Pool\n    Convert\n      External\n      In process\n      Screenshot\n"


class DiagramUser(HttpUser):
    """Standard user rendering small diagrams."""

    wait_time = between(1, 3)

    @task(60)
    @tag("render", "svg")
    def render_svg(self):
        """SVG render - the cheapest and most common request."""
        self.client.post(
            "/api/generate",
            json={"description": random.choice(DIAGRAMS), "format": "svg"},
            name="/api/generate [svg]",
        )

    @task(25)
    @tag("render", "png")
    def render_png(self):
        """PNG render through the raster chain."""
        self.client.post(
            "/api/generate",
            json={"code": random.choice(DIAGRAMS), "format": "png"},
            name="/api/generate [png]",
        )

    @task(5)
    @tag("render", "pdf")
    def render_pdf(self):
        """PDF render."""
        self.client.post(
            "/api/generate",
            json={"description": random.choice(DIAGRAMS), "format": "pdf"},
            name="/api/generate [pdf]",
        )

    @task(5)
    @tag("read", "health")
    def health_check(self):
        """Health check endpoint."""
        self.client.get("/health")

    @task(5)
    @tag("render", "invalid")
    def invalid_request(self):
        """Blank descriptions must fail fast with 400."""
        with self.client.post(
            "/api/generate",
            json={"description": "   ", "format": "svg"},
            name="/api/generate [invalid]",
            catch_response=True,
        ) as response:
            if response.status_code == 400:
                response.success()
            else:
                response.failure(f"Expected 400, got {response.status_code}")


class SlowDiagramUser(HttpUser):
    """User rendering slow tree-shaped diagrams (lower weight)."""

    wait_time = between(3, 8)
    weight = 1

    @task
    @tag("render", "png", "slow")
    def render_mindmap(self):
        """Mindmap to PNG: stabilization plus stretched timeouts."""
        self.client.post(
            "/api/generate",
            json={"description": MINDMAP, "format": "png"},
            name="/api/generate [mindmap png]",
        )


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print pool-related response time summary."""
    stats = environment.stats
    for name in ("/api/generate [svg]", "/api/generate [png]", "/api/generate [mindmap png]"):
        entry = stats.get(name, "POST")
        if entry.num_requests:
            print(
                f"{name}: {entry.num_requests} requests, "
                f"median {entry.median_response_time}ms, "
                f"p95 {entry.get_response_time_percentile(0.95)}ms, "
                f"failures {entry.num_failures}"
            )
