from vocab_review.metrics import MetricsRegistry, calculate_p95


def test_registry_tracks_status_codes_per_route() -> None:
    registry = MetricsRegistry(window_size=10)

    registry.record("get", "/api/vocabulary/due", 12.0, status_code=200)
    registry.record("GET", "/api/vocabulary/due", 30.0, status_code=400)
    registry.record("POST", "/api/vocabulary/rate", 5.0, status_code=500, is_error=True)

    snapshot = registry.snapshot()

    due = snapshot["GET /api/vocabulary/due"]
    assert due["count"] == 2
    assert due["client_errors"] == 1
    assert due["status"] == {"200": 1, "400": 1}
    assert snapshot["POST /api/vocabulary/rate"]["errors"] == 1

    registry.reset()
    assert registry.snapshot() == {}


def test_calculate_p95() -> None:
    assert calculate_p95([]) == 0.0
    assert calculate_p95([float(v) for v in range(1, 101)]) == 95.0
