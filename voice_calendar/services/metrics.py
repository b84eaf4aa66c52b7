"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every external
service the core talks to: the OpenAI assistant service (``assistant``)
and the Google Calendar API (``google_calendar``).

Design
------
* Data points are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* When ``METRICS_ENABLED != "true"`` (local dev, tests), data points are
  logged at DEBUG level and never buffered.
* ``put_metric_data`` accepts at most 1 000 data points per call.

Usage
-----
>>> from voice_calendar.services.metrics import metrics
>>> with metrics.track("google_calendar", "insert_event"):
...     client.insert_event(...)
>>> metrics.record_failure("assistant", "run_turn", error_type="RunTimedOut")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "VoiceCalendar"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ─────────────────────────────────────────────────────

    def _point(
        self, name: str, dimensions: dict[str, str], value: float, unit: str,
    ) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
            "Timestamp": datetime.now(UTC),
            "Value": value,
            "Unit": unit,
        }

    def _buffer_points(self, *points: dict[str, Any]) -> None:
        # Nothing flushes while disabled, so points are dropped right away.
        if not self._enabled:
            return
        with self._lock:
            self._buffer.extend(points)

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful external call."""
        self._buffer_points(
            self._point(
                "ExternalAPI/RequestCount",
                {"Service": service, "Operation": operation, "Status": "success"},
                1, "Count",
            ),
            self._point(
                "ExternalAPI/Latency",
                {"Service": service, "Operation": operation},
                latency_ms, "Milliseconds",
            ),
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self, service: str, operation: str, error_type: str, latency_ms: float = 0,
    ) -> None:
        """Record a failed external call; latency is only kept when known."""
        points = [
            self._point(
                "ExternalAPI/RequestCount",
                {"Service": service, "Operation": operation, "Status": "failure"},
                1, "Count",
            ),
            self._point(
                "ExternalAPI/ErrorCount",
                {"Service": service, "ErrorType": error_type},
                1, "Count",
            ),
        ]
        if latency_ms > 0:
            points.append(self._point(
                "ExternalAPI/Latency",
                {"Service": service, "Operation": operation},
                latency_ms, "Milliseconds",
            ))
        self._buffer_points(*points)
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed block and record success, or failure by exception type.

        Exceptions are recorded and re-raised unchanged.
        """
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self.record_failure(service, operation, type(exc).__name__, latency_ms=elapsed)
            raise
        self.record_success(service, operation, (time.perf_counter() - t0) * 1000)

    # ── Flushing ──────────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered data points to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
