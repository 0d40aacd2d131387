import json

import httpx
import pytest

from urlshort.client import ApiError, RetryPolicy, ShortenerClient


class FakeServer:
    """Replays queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def ok(data, status=200):
    return httpx.Response(status, json={"success": True, "message": "ok", "data": data})


def fail(status, message="nope", error="SOME_ERROR"):
    return httpx.Response(status, json={"success": False, "message": message, "error": error})


@pytest.fixture
def sleeps():
    return []


def make_client(server, sleeps, **kwargs):
    return ShortenerClient(
        "http://short.test",
        transport=httpx.MockTransport(server),
        sleep=sleeps.append,
        **kwargs,
    )


def test_login_stores_token_and_sends_it(sleeps):
    server = FakeServer(
        ok({"user": {"email": "ada@example.com"}, "token": "tok123", "loginTime": "now"}),
        ok({"shortUrl": "http://short.test/abc1234"}, status=201),
    )
    with make_client(server, sleeps) as client:
        user = client.login("ada@example.com", "secret1")
        short = client.create_short_url("https://example.com")

    assert user["email"] == "ada@example.com"
    assert short == "http://short.test/abc1234"
    login, create = server.requests
    assert json.loads(login.content) == {"email": "ada@example.com", "password": "secret1"}
    assert "authorization" not in login.headers
    assert create.headers["authorization"] == "Bearer tok123"
    assert create.url.path == "/api/shortUrl/create"


def test_custom_payload_uses_camel_case(sleeps):
    server = FakeServer(ok({"shortUrl": "http://short.test/my-link"}, status=201))
    with make_client(server, sleeps, token="t") as client:
        assert client.create_custom_short_url("https://example.com", "my-link").endswith("/my-link")
    assert json.loads(server.requests[0].content) == {"url": "https://example.com", "customUrl": "my-link"}


def test_retries_server_errors_with_backoff(sleeps):
    server = FakeServer(fail(503), fail(500), ok({"urls": [], "count": 0}))
    with make_client(server, sleeps, token="t") as client:
        assert client.list_urls() == []
    assert len(server.requests) == 3
    assert sleeps == [1.0, 2.0]


def test_retries_transport_errors(sleeps):
    server = FakeServer(httpx.ConnectError("refused"), ok({"urls": [{"shortUrl": "x"}], "count": 1}))
    with make_client(server, sleeps, token="t") as client:
        assert client.list_urls() == [{"shortUrl": "x"}]
    assert sleeps == [1.0]


def test_create_is_not_repeated_after_server_error(sleeps):
    server = FakeServer(fail(503), ok({"shortUrl": "http://short.test/dup1234"}, status=201))
    with make_client(server, sleeps, token="t") as client:
        with pytest.raises(ApiError) as info:
            client.create_short_url("https://example.com")
    assert info.value.status_code == 503
    assert len(server.requests) == 1
    assert sleeps == []


def test_create_is_not_repeated_after_read_timeout(sleeps):
    server = FakeServer(httpx.ReadTimeout("slow"), ok({"shortUrl": "http://short.test/dup1234"}, status=201))
    with make_client(server, sleeps, token="t") as client:
        with pytest.raises(ApiError):
            client.create_short_url("https://example.com")
    assert len(server.requests) == 1


def test_create_is_retried_when_never_sent(sleeps):
    server = FakeServer(httpx.ConnectError("refused"), ok({"shortUrl": "http://short.test/abc1234"}, status=201))
    with make_client(server, sleeps, token="t") as client:
        assert client.create_short_url("https://example.com") == "http://short.test/abc1234"
    assert len(server.requests) == 2
    assert sleeps == [1.0]


def test_gives_up_after_attempts(sleeps):
    server = FakeServer(fail(500), fail(502), fail(504))
    with make_client(server, sleeps, token="t", retry=RetryPolicy(attempts=3, delay=0.5)) as client:
        with pytest.raises(ApiError) as info:
            client.list_urls()
    assert info.value.status_code == 504
    assert info.value.retryable
    assert sleeps == [0.5, 1.0]


@pytest.mark.parametrize("status", [400, 401, 404, 409])
def test_client_errors_are_not_retried(sleeps, status):
    server = FakeServer(fail(status, message="Custom URL taken", error="ALREADY_EXISTS"))
    with make_client(server, sleeps, token="t") as client:
        with pytest.raises(ApiError) as info:
            client.create_custom_short_url("https://example.com", "taken")
    assert len(server.requests) == 1
    assert sleeps == []
    assert info.value.status_code == status
    assert info.value.message == "Custom URL taken"
    assert info.value.code == "ALREADY_EXISTS"
    assert not info.value.retryable


def test_unauthorized_drops_token(sleeps):
    server = FakeServer(fail(401, error="INVALID_TOKEN"))
    with make_client(server, sleeps, token="stale") as client:
        with pytest.raises(ApiError):
            client.list_urls()
        assert client.token is None


def test_non_json_error_body(sleeps):
    server = FakeServer(httpx.Response(400, text="<html>bad</html>"))
    with make_client(server, sleeps) as client:
        with pytest.raises(ApiError) as info:
            client.health()
    assert info.value.message == "Request failed (400)"


def test_against_real_app(client):
    # TestClient is an httpx.Client, so its transport can back ShortenerClient
    api = ShortenerClient("http://testserver", transport=client._transport, sleep=lambda s: None)
    api.register("Ada", "ada@example.com", "secret1")
    short = api.create_custom_short_url("https://example.com/docs", "docs-link")
    assert short.endswith("/docs-link")
    assert [u["customUrl"] for u in api.list_urls()] == ["docs-link"]
    assert api.health()["success"] is True
