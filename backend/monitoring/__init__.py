"""
Monitoring and observability module for Frame Translator.

Provides in-process metrics and insights for:
- System health (per-component status)
- External API calls (Community Archive, Gemini)
- Request latency and error counts
- Activity feed
"""

from __future__ import annotations

import threading
import time
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Any, Optional
from dataclasses import dataclass
from collections import deque
from enum import Enum

logger = logging.getLogger(__name__)

# Latency samples kept per series
MAX_SAMPLES = 1000


class EventType(str, Enum):
    """Types of system events."""
    USER_CREATED = "user_created"
    INSIGHT_GENERATED = "insight_generated"
    INSIGHT_UPDATED = "insight_updated"
    COMPARISON_CREATED = "comparison_created"
    TRANSLATION = "translation"
    ARCHIVE_CALL = "archive_call"
    GEMINI_CALL = "gemini_call"
    ERROR = "error"


@dataclass
class SystemEvent:
    """A recorded system event."""
    timestamp: datetime
    event_type: EventType
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "details": self.details,
            "age_seconds": (datetime.now(timezone.utc) - self.timestamp).total_seconds()
        }


class _CallStats:
    """Call count, error count and recent latencies for one external API."""

    def __init__(self):
        self.calls = 0
        self.errors = 0
        self.latencies: List[float] = []

    def record(self, latency_ms: float, error: bool) -> None:
        self.calls += 1
        self.latencies.append(latency_ms)
        if len(self.latencies) > MAX_SAMPLES:
            self.latencies = self.latencies[-MAX_SAMPLES:]
        if error:
            self.errors += 1


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Tracks:
    - Request counts per endpoint
    - Latency distributions
    - Error rates
    """

    def __init__(self):
        self._start_time = time.time()
        self._lock = threading.Lock()
        self._request_counts: Dict[str, int] = {}
        self._latencies: Dict[str, List[float]] = {}
        self._error_counts: Dict[str, int] = {}

        self._archive = _CallStats()
        self._gemini = _CallStats()

    def record_request(self, endpoint: str, latency_ms: float, error: bool = False) -> None:
        """Record an API request."""
        with self._lock:
            self._request_counts[endpoint] = self._request_counts.get(endpoint, 0) + 1

            if endpoint not in self._latencies:
                self._latencies[endpoint] = []
            self._latencies[endpoint].append(latency_ms)

            if len(self._latencies[endpoint]) > MAX_SAMPLES:
                self._latencies[endpoint] = self._latencies[endpoint][-MAX_SAMPLES:]

            if error:
                self._error_counts[endpoint] = self._error_counts.get(endpoint, 0) + 1

    def record_archive_call(self, latency_ms: float, error: bool = False) -> None:
        """Record a Community Archive call (called from adapter worker threads)."""
        with self._lock:
            self._archive.record(latency_ms, error)

    def record_gemini_call(self, latency_ms: float, error: bool = False) -> None:
        """Record a Gemini API call (called from adapter worker threads)."""
        with self._lock:
            self._gemini.record(latency_ms, error)

    def _calculate_percentiles(self, values: List[float]) -> Dict[str, float]:
        """Calculate p50, p95, p99 percentiles."""
        if not values:
            return {"p50": 0, "p95": 0, "p99": 0, "avg": 0}

        sorted_values = sorted(values)
        n = len(sorted_values)

        return {
            "p50": sorted_values[int(n * 0.50)],
            "p95": sorted_values[int(n * 0.95)],
            "p99": sorted_values[int(n * 0.99)],
            "avg": sum(values) / n,
        }

    def _call_summary(self, stats: _CallStats) -> Dict[str, Any]:
        error_rate = stats.errors / stats.calls if stats.calls > 0 else 0
        return {
            "calls": stats.calls,
            "errors": stats.errors,
            "error_rate": f"{error_rate:.1%}",
            "latency_ms": self._calculate_percentiles(stats.latencies),
        }

    def get_metrics(self) -> Dict[str, Any]:
        """Get all collected metrics."""
        uptime = time.time() - self._start_time

        with self._lock:
            requests = {
                "total": sum(self._request_counts.values()),
                "by_endpoint": dict(self._request_counts),
                "errors": dict(self._error_counts),
            }
            archive_api = self._call_summary(self._archive)
            gemini_api = self._call_summary(self._gemini)

        return {
            "uptime_seconds": int(uptime),
            "uptime_human": self._format_duration(uptime),
            "requests": requests,
            "archive_api": archive_api,
            "gemini_api": gemini_api,
        }

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{int(seconds)}s"
        elif seconds < 3600:
            return f"{int(seconds // 60)}m {int(seconds % 60)}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            return f"{hours}h {minutes}m"


class ActivityFeed:
    """
    Recent activity for live monitoring.
    """

    def __init__(self, max_events: int = 500):
        self.max_events = max_events
        self._events: deque = deque(maxlen=max_events)

    def add_event(self, event_type: EventType, **details) -> None:
        """Add an event to the feed."""
        self._events.append(SystemEvent(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            details=details
        ))

    def get_recent(self, limit: int = 50, event_type: Optional[EventType] = None) -> List[Dict]:
        """Get recent events, most recent first, optionally filtered by type."""
        events = list(self._events)

        if event_type:
            events = [e for e in events if e.event_type == event_type]

        events = sorted(events, key=lambda e: e.timestamp, reverse=True)
        return [e.to_dict() for e in events[:limit]]

    def get_event_counts(self, since_minutes: int = 5) -> Dict[str, int]:
        """Get event counts by type since N minutes ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=since_minutes)

        counts: Dict[str, int] = {}
        for event in self._events:
            if event.timestamp >= cutoff:
                key = event.event_type.value
                counts[key] = counts.get(key, 0) + 1

        return counts


class SystemMonitor:
    """
    Central monitoring hub for Frame Translator.

    Aggregates metrics from all components.
    """

    def __init__(self):
        self.metrics = MetricsCollector()
        self.activity = ActivityFeed()
        self._component_status: Dict[str, Dict[str, Any]] = {}

    def set_component_status(
        self,
        component: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Set status for a component."""
        self._component_status[component] = {
            "status": status,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "details": details or {}
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Get overall system health status."""
        statuses = [c.get("status", "unknown") for c in self._component_status.values()]

        if statuses and all(s == "healthy" for s in statuses):
            overall = "healthy"
        elif any(s == "error" for s in statuses):
            overall = "degraded"
        elif any(s == "warning" for s in statuses):
            overall = "warning"
        else:
            overall = "unknown"

        return {
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": self._component_status,
        }

    def get_dashboard_data(self) -> Dict[str, Any]:
        """Get all data needed for a monitoring dashboard."""
        return {
            "health": self.get_health_status(),
            "metrics": self.metrics.get_metrics(),
            "recent_activity": self.activity.get_recent(limit=20),
            "event_counts_5m": self.activity.get_event_counts(since_minutes=5),
        }


# Global monitor instance
monitor = SystemMonitor()


__all__ = [
    "SystemMonitor",
    "MetricsCollector",
    "ActivityFeed",
    "EventType",
    "SystemEvent",
    "monitor",
]
