"""Tests for the request throttle and problem-details responses."""

from __future__ import annotations

import json
from collections.abc import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from giveaways.api.middleware import RequestThrottle, problem_response, throttle_key
from giveaways.core.config import Settings
from giveaways.core.security import create_access_token


def _request(headers: dict[str, str] | None = None, client_ip: str = "10.0.0.9") -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {"type": "http", "method": "GET", "path": "/", "headers": raw, "client": (client_ip, 1234)}
    )


class TestRequestThrottle:
    def test_blocks_after_limit(self) -> None:
        throttle = RequestThrottle()
        assert [throttle.allow("k", 2, now=t) for t in (0, 1, 2)] == [True, True, False]

    def test_window_expires(self) -> None:
        throttle = RequestThrottle(window_seconds=60)
        throttle.allow("k", 1, now=0)
        assert throttle.allow("k", 1, now=60)

    def test_reset(self) -> None:
        throttle = RequestThrottle()
        throttle.allow("k", 1, now=0)
        throttle.reset()
        assert throttle.allow("k", 1, now=1)


class TestThrottleKey:
    settings = Settings(_env_file=None)

    def test_anonymous(self) -> None:
        assert throttle_key(_request(), self.settings) == ("anon:10.0.0.9", 30)

    def test_forwarded_for_wins(self) -> None:
        key, _ = throttle_key(_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"}), self.settings)
        assert key == "anon:1.2.3.4"

    def test_admin_keyed_by_subject(self) -> None:
        token = create_access_token(subject="ops", role="admin")
        request = _request({"Authorization": f"Bearer {token}"})
        assert throttle_key(request, self.settings) == ("admin:ops", 500)

    def test_invalid_token_counts_as_user(self) -> None:
        request = _request({"Authorization": "Bearer not-a-jwt"})
        assert throttle_key(request, self.settings) == ("user:10.0.0.9", 100)


class TestProblemResponse:
    def test_body(self) -> None:
        resp = problem_response(409, "Conflict", "Already drawn", extra={"code": "AlreadySelected"})
        assert resp.status_code == 409
        assert json.loads(resp.body) == {
            "type": "about:blank",
            "title": "Conflict",
            "status": 409,
            "detail": "Already drawn",
            "code": "AlreadySelected",
        }


class TestThrottledApp:
    @pytest.fixture(autouse=True)
    def _quiet_logging(self) -> Iterator[None]:
        with patch("giveaways.main.setup_logging"):
            yield

    def test_over_limit_returns_429(self) -> None:
        from giveaways.main import create_app

        app = create_app(settings=Settings(_env_file=None, app_env="staging", rate_limit_anonymous=2))
        client = TestClient(app)

        assert client.get("/api/v1/nothing-here").status_code == 404
        assert client.get("/api/v1/nothing-here").status_code == 404
        resp = client.get("/api/v1/nothing-here")
        assert resp.status_code == 429
        assert resp.json()["code"] == "RateLimited"
        assert resp.headers["Retry-After"] == "60"

    def test_health_is_never_throttled(self) -> None:
        from giveaways.main import create_app

        app = create_app(settings=Settings(_env_file=None, app_env="staging", rate_limit_anonymous=1))
        client = TestClient(app)
        assert all(client.get("/health/live").status_code == 200 for _ in range(3))
