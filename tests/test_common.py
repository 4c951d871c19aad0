"""Tests for shared common modules — errors, config, database, HTTP client."""

from __future__ import annotations

import logging
import sqlite3
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.common.config import (
    Settings,
    get_enhancement_api_url,
    get_supabase_service_key,
    get_supabase_url,
    settings,
)
from src.common.database import JSON_COLUMNS, get_connection, init_db
from src.common.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
    RemoteItemMissing,
    UpstreamError,
    UpstreamTimeout,
    ValidationFailed,
    WorkflowError,
    error_response,
)
from src.common.http_client import HTTPClient
from src.common.logging import ROOT_LOGGER, setup_logging
from src.common.rate_limiter import RateLimiter


def _response(status: int, body: dict | None = None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.json.return_value = body or {}
    resp.text = str(body or "")
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def _client(*responses) -> tuple[HTTPClient, MagicMock]:
    session = MagicMock()
    session.request.side_effect = list(responses)
    client = HTTPClient(
        "https://api.example.com/v2/",
        headers={"Authorization": "Bearer t"},
        requests_per_minute=0,
        session=session,
    )
    return client, session


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_to_dict_includes_step_and_details(self):
        exc = ValidationFailed("Blocked", step="validation", details={"broken": 1})
        body = exc.to_dict()
        assert body == {
            "error": "VALIDATION_FAILED",
            "code": "VALIDATION_FAILED",
            "message": "Blocked",
            "step": "validation",
            "details": {"broken": 1},
        }

    def test_to_dict_omits_empty_step(self):
        body = NotFound("missing").to_dict()
        assert "step" not in body
        assert "details" not in body

    def test_http_statuses(self):
        assert Forbidden("x").http_status == 403
        assert NotFound("x").http_status == 404
        assert PreconditionFailed("x").http_status == 404
        assert UpstreamError("x").http_status == 502
        assert UpstreamTimeout("x").http_status == 502

    def test_remote_item_missing_is_precondition(self):
        exc = RemoteItemMissing("gone")
        assert isinstance(exc, PreconditionFailed)
        assert exc.code == "REMOTE_ITEM_MISSING"

    def test_upstream_error_carries_status(self):
        exc = UpstreamError("boom", status_code=503)
        assert exc.retryable
        assert exc.details["upstream_status"] == 503

    def test_invalid_transition_message(self):
        exc = InvalidTransition("queue", "published", "pending", [])
        assert "Invalid queue status transition: published -> pending" in exc.message
        assert "none" in exc.message

    def test_code_override(self):
        exc = WorkflowError("interrupted", code="INTERRUPTED")
        assert exc.code == "INTERRUPTED"
        assert WorkflowError.code == "WORKFLOW_ERROR"

    def test_error_response_for_unknown_exception(self):
        status, body = error_response(RuntimeError("kaput"))
        assert status == 500
        assert body["code"] == "INTERNAL_ERROR"
        assert body["message"] == "kaput"

    def test_error_response_for_workflow_error(self):
        status, body = error_response(Forbidden("no"))
        assert status == 403
        assert body["error"] == "FORBIDDEN"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:
    def test_defaults(self):
        s = Settings()
        assert s.enhancement.timeout_seconds == 60
        assert s.webflow.api_base == "https://api.webflow.com/v2"
        assert s.webflow.max_retries == 3
        assert s.workflow.strict_links is False
        assert s.workflow.store == "sqlite"

    def test_loaded_settings(self):
        assert settings.workflow.stale_publishing_minutes == 15
        assert settings.database.db_path.endswith("content_ops.db")

    def test_supabase_getters_raise_when_unset(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        with pytest.raises(ValueError):
            get_supabase_url()
        with pytest.raises(ValueError):
            get_supabase_service_key()

    def test_enhancement_url_from_env(self, monkeypatch):
        monkeypatch.setenv("BLOG_WRITER_API_URL", "https://writer.example.com")
        assert get_enhancement_api_url() == "https://writer.example.com"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class TestDatabase:
    def test_init_db_creates_tables(self, tmp_path):
        db_path = str(tmp_path / "init.db")
        init_db(db_path)
        conn = get_connection(db_path)
        try:
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()
        assert set(JSON_COLUMNS) <= tables

    def test_publishing_unique_per_post_and_platform(self, tmp_path):
        db_path = str(tmp_path / "unique.db")
        init_db(db_path)
        conn = get_connection(db_path)
        sql = (
            "INSERT INTO blog_platform_publishing "
            "(publishing_id, org_id, post_id, platform, created_at, updated_at) "
            "VALUES (?, 'o', 'p', 'webflow', 'now', 'now')"
        )
        try:
            conn.execute(sql, ("a",))
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(sql, ("b",))
        finally:
            conn.close()

    def test_nested_data_dir_created(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "x.db"
        get_connection(str(db_path)).close()
        assert db_path.exists()


# ---------------------------------------------------------------------------
# Logging / rate limiter
# ---------------------------------------------------------------------------


class TestLogging:
    def test_module_loggers_share_one_handler(self):
        first = setup_logging(module_name="test.common.logging")
        second = setup_logging(module_name="test.common.logging")
        root = logging.getLogger(ROOT_LOGGER)
        assert first is second
        assert first.name == "content_ops.test.common.logging"
        assert first.handlers == []
        assert len(root.handlers) == 1
        assert root.propagate is False

    def test_prefixed_name_not_doubled(self):
        assert setup_logging(module_name="content_ops.workflow").name == "content_ops.workflow"

    def test_level_applies_to_parent(self):
        root = logging.getLogger(ROOT_LOGGER)
        previous = root.level
        try:
            setup_logging(level=logging.DEBUG, module_name="test.common.level")
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)


class TestRateLimiter:
    def test_disabled(self):
        limiter = RateLimiter(0)
        assert limiter.interval == 0.0
        assert limiter.wait() == 0.0

    def test_interval(self):
        assert RateLimiter(120).interval == pytest.approx(0.5)

    @patch("src.common.rate_limiter.time.sleep")
    def test_second_call_waits(self, mock_sleep):
        limiter = RateLimiter(60)
        limiter.wait()
        slept = limiter.wait()
        assert slept > 0
        assert mock_sleep.called


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class TestHTTPClient:
    def test_success_builds_url(self):
        client, session = _client(_response(200, {"ok": True}))
        resp = client.get("collections/abc")
        assert resp.json() == {"ok": True}
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://api.example.com/v2/collections/abc"
        assert session.request.call_args.kwargs["timeout"] == 30.0

    @patch("src.common.http_client.time.sleep")
    def test_get_retries_on_server_error(self, mock_sleep):
        client, session = _client(_response(503), _response(200, {"ok": True}))
        resp = client.get("x")
        assert resp.json() == {"ok": True}
        assert session.request.call_count == 2
        mock_sleep.assert_called_once_with(1.0)

    @patch("src.common.http_client.time.sleep")
    def test_post_is_not_retried(self, mock_sleep):
        client, session = _client(_response(503), _response(200))
        with pytest.raises(UpstreamError) as exc_info:
            client.post("items", json={"a": 1}, step="create")
        assert session.request.call_count == 1
        assert exc_info.value.status_code == 503
        assert exc_info.value.step == "create"
        mock_sleep.assert_not_called()

    @patch("src.common.http_client.time.sleep")
    def test_client_error_fails_immediately(self, mock_sleep):
        client, session = _client(_response(404, {"message": "Item not found"}))
        with pytest.raises(UpstreamError) as exc_info:
            client.patch("items/1", json={})
        assert session.request.call_count == 1
        assert exc_info.value.status_code == 404
        assert "Item not found" in exc_info.value.message

    @patch("src.common.http_client.time.sleep")
    def test_rate_limited_is_retried(self, mock_sleep):
        client, session = _client(_response(429), _response(429), _response(200))
        client.delete("items/1")
        assert session.request.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("src.common.http_client.time.sleep")
    def test_timeout_exhausts_retries(self, mock_sleep):
        client, session = _client(requests.Timeout(), requests.Timeout(), requests.Timeout())
        with pytest.raises(UpstreamTimeout):
            client.get("slow", step="publish-site")
        assert session.request.call_count == 3

    @patch("src.common.http_client.time.sleep")
    def test_connection_error_becomes_upstream_error(self, mock_sleep):
        client, _ = _client(requests.ConnectionError("refused"))
        with pytest.raises(UpstreamError) as exc_info:
            client.post("x")
        assert not isinstance(exc_info.value, UpstreamTimeout)

    @patch("src.common.http_client.time.sleep")
    def test_negative_retry_setting_still_makes_one_attempt(self, mock_sleep):
        session = MagicMock()
        session.request.side_effect = [_response(503)]
        client = HTTPClient("https://api.example.com/", max_retries=-1, requests_per_minute=0, session=session)
        with pytest.raises(UpstreamError) as exc_info:
            client.get("x")
        assert exc_info.value.status_code == 503
        assert session.request.call_count == 1
        mock_sleep.assert_not_called()

    def test_absolute_url_passes_through(self):
        client, session = _client(_response(200))
        client.get("https://other.example.com/thing")
        assert session.request.call_args.args[1] == "https://other.example.com/thing"
