import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

HEADERS = {"X-User-Id": "alice"}


def _reload_app(monkeypatch: pytest.MonkeyPatch, db_path: Path, **env: str):
    """テスト用に vocab_review.* を再読み込みし、新しい DB と設定でアプリを生成する。"""

    import importlib

    backend_root = Path(__file__).resolve().parents[1] / "apps" / "backend"
    if str(backend_root) not in sys.path:
        sys.path.insert(0, str(backend_root))

    monkeypatch.setenv("SRS_DB_PATH", str(db_path))
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    # vocab_review.* を一度破棄して設定とストアのシングルトンをリセット
    for name in list(sys.modules.keys()):
        if name == "vocab_review" or name.startswith("vocab_review."):
            sys.modules.pop(name)

    importlib.import_module("vocab_review.config")
    importlib.import_module("vocab_review.store")
    return importlib.import_module("vocab_review.main")


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    db_path = tmp_path_factory.mktemp("vocab") / "srs.sqlite3"
    main = _reload_app(monkeypatch, db_path)
    return TestClient(main.app)


def _create(client: TestClient, word: str = "สวัสดี", headers: dict[str, str] = HEADERS) -> dict:
    resp = client.post(
        "/api/vocabulary",
        json={"word": word, "translation": "hello", "sentence": f"{word}ครับ"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["word"]


def test_health_and_request_id(client: TestClient) -> None:
    resp = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"] == "req-123"


def test_missing_owner_header_is_unauthorized(client: TestClient) -> None:
    assert client.get("/api/vocabulary").status_code == 401


def test_create_then_due_in_difficulty_mode(client: TestClient) -> None:
    created = _create(client)
    assert created["status"] == "new"
    assert created["interval"] == 1
    assert created["ease_factor"] == 2.5

    resp = client.get("/api/vocabulary/due", params={"include_stats": "true"}, headers=HEADERS)

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    word = body["words"][0]
    assert word["id"] == created["id"]
    assert 0 <= word["priority_score"] <= 100
    assert set(word["priority_breakdown"]) == {"difficulty", "efficiency", "status", "overdue", "interval"}
    assert isinstance(word["priority_reasoning"], list)
    assert body["stats"]["priority_mode"] == "difficulty"
    assert body["stats"]["total_due"] == 1
    assert body["stats"]["priority_range"]["highest"] == word["priority_score"]


def test_time_mode_omits_priority_fields_and_range(client: TestClient) -> None:
    _create(client)

    resp = client.get(
        "/api/vocabulary/due",
        params={"priority": "time", "include_stats": "true"},
        headers=HEADERS,
    )

    body = resp.json()
    assert resp.status_code == 200
    assert "priority_score" not in body["words"][0]
    assert "priority_range" not in body["stats"]


def test_empty_due_set(client: TestClient) -> None:
    resp = client.get("/api/vocabulary/due", params={"include_stats": "true"}, headers=HEADERS)

    assert resp.json() == {
        "words": [],
        "count": 0,
        "stats": {"total_due": 0, "priority_mode": "difficulty"},
    }


def test_rate_moves_word_out_of_due_set(client: TestClient) -> None:
    created = _create(client)

    resp = client.post(
        "/api/vocabulary/rate", json={"id": created["id"], "rating": 5}, headers=HEADERS
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["schedule"]["interval"] == 1
    assert body["schedule"]["repetitions"] == 1
    assert body["schedule"]["ease_factor"] == pytest.approx(2.6)
    assert body["word"]["status"] == "learning"

    due = client.get("/api/vocabulary/due", headers=HEADERS).json()
    assert due["count"] == 0

    history = client.get(f"/api/vocabulary/{created['id']}/history", headers=HEADERS).json()
    assert [entry["rating"] for entry in history["reviews"]] == [5]


def test_duplicate_rating_with_expected_state_conflicts(client: TestClient) -> None:
    created = _create(client)
    payload = {"id": created["id"], "rating": 4, "expected_updated_at": created["updated_at"]}

    assert client.post("/api/vocabulary/rate", json=payload, headers=HEADERS).status_code == 200
    resp = client.post("/api/vocabulary/rate", json=payload, headers=HEADERS)

    assert resp.status_code == 409
    assert resp.json()["error_code"] == "STALE_REVIEW_STATE"


@pytest.mark.parametrize("rating", [-1, 6, True, False, "3", 3.0, None])
def test_invalid_rating_is_bad_request(client: TestClient, rating: object) -> None:
    created = _create(client)

    resp = client.post(
        "/api/vocabulary/rate", json={"id": created["id"], "rating": rating}, headers=HEADERS
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["error_code"] == "INVALID_RATING"
    assert body["request_id"]

    # 拒否された評価は保存されない
    word = client.get("/api/vocabulary", headers=HEADERS).json()["words"][0]
    assert (word["ease_factor"], word["repetitions"]) == (2.5, 0)
    history = client.get(f"/api/vocabulary/{created['id']}/history", headers=HEADERS).json()
    assert history["reviews"] == []


@pytest.mark.parametrize("limit", ["0", "51", "abc", "-2"])
def test_invalid_limit_is_bad_request(client: TestClient, limit: str) -> None:
    resp = client.get("/api/vocabulary/due", params={"limit": limit}, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json()["error_code"] == "INVALID_LIMIT"


def test_invalid_priority_mode_is_bad_request(client: TestClient) -> None:
    resp = client.get("/api/vocabulary/due", params={"priority": "random"}, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json()["error_code"] == "INVALID_PRIORITY_MODE"


def test_other_owner_gets_forbidden_and_unknown_id_not_found(client: TestClient) -> None:
    created = _create(client)
    bob = {"X-User-Id": "bob"}

    resp = client.post("/api/vocabulary/rate", json={"id": created["id"], "rating": 3}, headers=bob)
    assert resp.status_code == 403
    assert resp.json()["error_code"] == "OWNERSHIP_MISMATCH"

    resp = client.post("/api/vocabulary/rate", json={"id": "missing", "rating": 3}, headers=HEADERS)
    assert resp.status_code == 404

    assert client.get("/api/vocabulary/due", headers=bob).json()["count"] == 0


def test_list_update_delete_and_stats(client: TestClient) -> None:
    first = _create(client, "น้ำ")
    second = _create(client, "ข้าว")

    resp = client.put(
        "/api/vocabulary", json={"id": first["id"], "status": "mastered"}, headers=HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["word"]["status"] == "mastered"

    listed = client.get("/api/vocabulary", params={"status": "mastered"}, headers=HEADERS).json()
    assert [w["id"] for w in listed["words"]] == [first["id"]]

    stats = client.get("/api/vocabulary/stats", headers=HEADERS).json()
    assert stats == {"total": 2, "new": 1, "learning": 0, "mastered": 1, "due_now": 2}

    resp = client.delete("/api/vocabulary", params={"id": second["id"]}, headers=HEADERS)
    assert resp.json() == {"success": True}
    assert len(client.get("/api/vocabulary", headers=HEADERS).json()["words"]) == 1


def test_metrics_snapshot_records_routes(client: TestClient) -> None:
    client.get("/healthz")

    body = client.get("/metrics").json()

    assert body["routes"]["GET /healthz"]["count"] >= 1


def test_default_priority_mode_from_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> None:
    db_path = tmp_path_factory.mktemp("vocab-time") / "srs.sqlite3"
    main = _reload_app(
        monkeypatch, db_path, DEFAULT_PRIORITY_MODE="time", DUE_LIMIT_DEFAULT="5", DUE_LIMIT_MAX="10"
    )
    client = TestClient(main.app)
    _create(client)

    body = client.get("/api/vocabulary/due", params={"include_stats": "1"}, headers=HEADERS).json()
    assert body["stats"]["priority_mode"] == "time"

    resp = client.get("/api/vocabulary/due", params={"limit": "11"}, headers=HEADERS)
    assert resp.status_code == 400


def test_unknown_priority_weights_version_fails_at_startup(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> None:
    db_path = tmp_path_factory.mktemp("vocab-weights") / "srs.sqlite3"

    with pytest.raises(KeyError, match="v9"):
        _reload_app(monkeypatch, db_path, PRIORITY_WEIGHTS_VERSION="v9")
