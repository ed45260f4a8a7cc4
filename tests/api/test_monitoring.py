"""Tests for API request counters."""

from agrisite.api.monitoring import RequestStats


class TestRequestStats:
    def test_empty(self):
        snapshot = RequestStats().snapshot()
        assert snapshot["requests"] == {"total": 0, "success": 0, "error": 0, "endpoints": {}}
        assert snapshot["uptime"] >= 0

    def test_record(self):
        stats = RequestStats()
        stats.record("POST", "/analyze", 200)
        stats.record("POST", "/analyze", 502)
        stats.record("GET", "/health", 200)

        requests = stats.snapshot()["requests"]
        assert (requests["total"], requests["success"], requests["error"]) == (3, 2, 1)
        assert requests["endpoints"]["POST:/analyze"] == {"total": 2, "success": 1, "error": 1}

    def test_redirects_count_as_success(self):
        stats = RequestStats()
        stats.record("GET", "/docs", 307)
        assert stats.snapshot()["requests"]["success"] == 1

    def test_snapshot_is_a_copy(self):
        stats = RequestStats()
        stats.record("GET", "/", 200)
        snapshot = stats.snapshot()
        stats.record("GET", "/", 200)
        assert snapshot["requests"]["endpoints"]["GET:/"]["total"] == 1
