"""Unit tests for the monitoring module."""

import threading

from monitoring import EventType, MetricsCollector, SystemMonitor


class TestMetricsCollector:

    def test_call_summaries(self):
        metrics = MetricsCollector()
        metrics.record_archive_call(10.0)
        metrics.record_archive_call(30.0, error=True)
        metrics.record_gemini_call(200.0)

        data = metrics.get_metrics()

        assert data["archive_api"]["calls"] == 2
        assert data["archive_api"]["errors"] == 1
        assert data["archive_api"]["error_rate"] == "50.0%"
        assert data["gemini_api"]["calls"] == 1

    def test_concurrent_recording(self):
        metrics = MetricsCollector()
        per_thread = 500

        def worker():
            for _ in range(per_thread):
                metrics.record_archive_call(1.0)
                metrics.record_gemini_call(1.0, error=True)
                metrics.record_request("/users", 1.0)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = metrics.get_metrics()
        assert data["archive_api"]["calls"] == 8 * per_thread
        assert data["gemini_api"]["errors"] == 8 * per_thread
        assert data["requests"]["by_endpoint"]["/users"] == 8 * per_thread

    def test_metrics_snapshot_is_detached(self):
        metrics = MetricsCollector()
        metrics.record_request("/health", 1.0)

        snapshot = metrics.get_metrics()
        metrics.record_request("/health", 1.0)

        assert snapshot["requests"]["by_endpoint"]["/health"] == 1


class TestSystemMonitor:

    def test_activity_filter_and_counts(self):
        mon = SystemMonitor()
        mon.activity.add_event(EventType.USER_CREATED, user_id=1)
        mon.activity.add_event(EventType.ERROR, error="boom")

        recent = mon.activity.get_recent(event_type=EventType.ERROR)

        assert [e["event_type"] for e in recent] == ["error"]
        assert mon.activity.get_event_counts() == {"user_created": 1, "error": 1}

    def test_health_status(self):
        mon = SystemMonitor()
        mon.set_component_status("repository", "healthy")
        mon.set_component_status("gemini_adapter", "warning")

        assert mon.get_health_status()["status"] == "warning"
