"""Rate limiting, request timeouts and unhandled-error rendering."""

import asyncio

from httpx import ASGITransport, AsyncClient

from agrimarket.app.config import Settings
from agrimarket.app.main import create_app
from agrimarket.app.middleware import RateLimiter

from conftest import assert_envelope


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRateLimiter:
    def test_refuses_after_limit_within_window(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
        assert limiter.hit("1.2.3.4") == (True, 0.0)
        assert limiter.hit("1.2.3.4") == (True, 0.0)
        allowed, retry_after = limiter.hit("1.2.3.4")
        assert allowed is False
        assert retry_after == 60

    def test_window_rolls(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
        assert limiter.hit("a")[0]
        clock.now += 5
        assert not limiter.hit("a")[0]
        clock.now += 5
        assert limiter.hit("a")[0]

    def test_keys_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=FakeClock())
        assert limiter.hit("a")[0]
        assert limiter.hit("b")[0]

    def test_idle_keys_dropped(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
        for key in ("a", "b", "c"):
            limiter.hit(key)
        assert len(limiter) == 3

        clock.now += 11
        limiter.hit("d")
        assert len(limiter) == 1


def _client(app) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://testserver",
    )


class TestMiddlewareStack:
    async def test_rate_limited_envelope(self):
        app = create_app(Settings(rate_limit_enabled=True, rate_limit_requests=2, rate_limit_window_seconds=60))
        async with _client(app) as client:
            for _ in range(2):
                assert (await client.get("/api")).status_code == 200
            resp = await client.get("/api")
            body = assert_envelope(resp, 429)
            assert body["error"]["code"] == "RATE_LIMITED"
            assert int(resp.headers["Retry-After"]) >= 1

            # Probes are never throttled
            assert (await client.get("/live")).status_code == 200

    async def test_forwarded_for_ignored_by_default(self):
        app = create_app(Settings(rate_limit_enabled=True, rate_limit_requests=2, rate_limit_window_seconds=60))
        async with _client(app) as client:
            statuses = [
                (await client.get("/api", headers={"X-Forwarded-For": f"10.0.0.{i}"})).status_code
                for i in range(4)
            ]
        assert statuses == [200, 200, 429, 429]
        assert len(app.state.rate_limiter) == 1

    async def test_forwarded_for_used_behind_trusted_proxy(self):
        app = create_app(Settings(
            rate_limit_enabled=True, rate_limit_requests=1, rate_limit_window_seconds=60,
            trust_proxy_headers=True,
        ))
        async with _client(app) as client:
            first = await client.get("/api", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})
            other = await client.get("/api", headers={"X-Forwarded-For": "10.0.0.2"})
            again = await client.get("/api", headers={"X-Forwarded-For": "10.0.0.1"})
        assert [first.status_code, other.status_code, again.status_code] == [200, 200, 429]

    async def test_timeout_is_internal_error(self):
        app = create_app(Settings(rate_limit_enabled=False, request_timeout_seconds=0.05))

        @app.get("/slow")
        async def slow():
            await asyncio.sleep(1)
            return {}

        async with _client(app) as client:
            resp = await client.get("/slow")
        body = assert_envelope(resp, 500)
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["message"] == "Request timed out"

    async def test_unhandled_error_is_generic(self):
        app = create_app(Settings(rate_limit_enabled=False))

        @app.get("/boom")
        async def boom():
            raise RuntimeError("secret internals")

        async with _client(app) as client:
            resp = await client.get("/boom")
        body = assert_envelope(resp, 500)
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["message"] == "Internal server error"
        assert "secret" not in resp.text
