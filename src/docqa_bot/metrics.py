"""
Answer metrics for the document Q&A bot.

Tracks: answer latency, answer count, error count, uptime and process memory.
"""
from __future__ import annotations

import os
import threading
import time

import psutil


class MetricsCollector:
    """Thread-safe answer metrics tracker."""

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time: float = time.time()

        # Counters.
        self._total_answers: int = 0
        self._total_latency_ms: float = 0.0
        self._error_count: int = 0
        self._min_latency_ms: float = float("inf")
        self._max_latency_ms: float = 0.0

        # Process handle for memory tracking.
        self._process = psutil.Process(os.getpid())

    def record_answer(self, latency_ms: float, success: bool) -> None:
        """Records a single question's outcome."""
        with self._lock:
            self._total_answers += 1
            self._total_latency_ms += latency_ms
            if latency_ms < self._min_latency_ms:
                self._min_latency_ms = latency_ms
            if latency_ms > self._max_latency_ms:
                self._max_latency_ms = latency_ms
            if not success:
                self._error_count += 1

    def get_summary(self) -> dict:
        """Returns a metrics snapshot."""
        with self._lock:
            total = self._total_answers
            avg_lat = (self._total_latency_ms / total) if total > 0 else 0.0
            min_lat = self._min_latency_ms if total > 0 else 0.0
            max_lat = self._max_latency_ms if total > 0 else 0.0
            errors = self._error_count

        uptime_s = time.time() - self._start_time
        mem_rss_mb = self._process.memory_info().rss / (1024 * 1024)

        return {
            "latency": {
                "avg_ms": round(avg_lat, 2),
                "min_ms": round(min_lat, 2),
                "max_ms": round(max_lat, 2),
            },
            "answers": {
                "total": total,
                "uptime_seconds": round(uptime_s, 1),
            },
            "memory": {
                "rss_mb": round(mem_rss_mb, 1),
            },
            "errors": {
                "count": errors,
                "rate_percent": round((errors / total * 100) if total > 0 else 0.0, 2),
            },
        }
