import logging

from fastapi.testclient import TestClient

from src.studio.api.main import app
from src.studio.core.env_check import check_required_env_vars, has_all_required_env_vars
from src.studio.errors import GENERIC_MESSAGE, StorageUnavailable, StudioError, message_for


def test_error_code_maps_status_and_message():
    err = StudioError("rate_limit:chat")
    assert err.status_code == 429
    assert err.type == "rate_limit" and err.surface == "chat"
    assert err.to_payload() == {"code": "rate_limit:chat", "message": message_for("rate_limit:chat")}


def test_unknown_code_falls_back_to_generic_message():
    err = StudioError("teapot:kitchen")
    assert err.status_code == 500
    assert err.message == GENERIC_MESSAGE


def test_database_errors_are_log_only(caplog):
    err = StorageUnavailable("connection refused")
    with caplog.at_level(logging.ERROR):
        payload = err.to_payload()
    assert payload == {"code": "", "message": GENERIC_MESSAGE}
    assert "connection refused" in caplog.text


def test_unknown_route_returns_message_body():
    res = TestClient(app).get("/nope")
    assert res.status_code == 404
    assert "message" in res.json()


def test_health_reports_missing_env(monkeypatch):
    monkeypatch.delenv("V0_API_KEY", raising=False)
    monkeypatch.setenv("JWT_SECRET", "x" * 32)
    res = TestClient(app).get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "degraded"
    assert body["missing_env"] == ["V0_API_KEY"]
    assert body["components"]["ownership_store"] == "memory"


def test_health_ok_when_configured(monkeypatch):
    monkeypatch.setenv("V0_API_KEY", "v0_sk_test")
    monkeypatch.setenv("JWT_SECRET", "x" * 32)
    assert TestClient(app).get("/health").json()["status"] == "ok"


def test_env_check_treats_blank_as_missing(monkeypatch):
    monkeypatch.setenv("V0_API_KEY", "   ")
    monkeypatch.setenv("JWT_SECRET", "set")
    assert [v.name for v in check_required_env_vars()] == ["V0_API_KEY"]
    assert has_all_required_env_vars() is False


def test_root_reports_name():
    assert TestClient(app).get("/").json()["name"] == "Studio API"
