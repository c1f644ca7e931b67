# metrics.py
"""
Named timers backed by prometheus_client.

Timer names are dotted ("CoverageProvider.query.bene_by_id") and exported as
the `name` label of a single histogram, so the names stay stable for
dashboards regardless of which provider records them.
"""
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import CollectorRegistry, Histogram, generate_latest

TIMER_METRIC = "bluebutton_timer_seconds"


class MetricRegistry:
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._timers = Histogram(
            TIMER_METRIC,
            "Duration of named operations in seconds",
            ["name"],
            registry=self.registry,
        )

    @staticmethod
    def name(*parts: str) -> str:
        return ".".join(p for p in parts if p)

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Time the enclosed block; the sample is recorded even if it raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self._timers.labels(name=name).observe(time.perf_counter() - started)

    def timer_count(self, name: str) -> int:
        value = self.registry.get_sample_value(f"{TIMER_METRIC}_count", {"name": name})
        return int(value or 0)

    def export(self) -> bytes:
        return generate_latest(self.registry)
