"""Python client for the URL shortener HTTP API.

    with ShortenerClient("http://localhost:8000") as client:
        client.login("ada@example.com", "secret1")
        short = client.create_short_url("https://example.com/some/long/path")
        for link in client.list_urls():
            print(link["shortUrl"], link["clicks"])

Transport failures and 5xx replies are retried with exponential backoff;
4xx replies raise ``ApiError`` straight away. Link-creating POSTs are only
retried when the connection was never made, so a lost reply cannot create a
second link.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx

logger = logging.getLogger("urlshort.client")

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS", "PUT", "DELETE"}


class ApiError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        unsent: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        # True when the request never reached the server
        self.unsent = unsent

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


@dataclass
class RetryPolicy:
    attempts: int = 3
    delay: float = 1.0

    def backoff(self, attempt: int) -> float:
        return self.delay * 2 ** (attempt - 1)


class ShortenerClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self._http.close()

    # ---------- plumbing ----------

    def _send(self, method: str, path: str, json: dict | None = None) -> dict:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = self._http.request(method, path, json=json, headers=headers)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise ApiError(f"Unable to connect to the server: {exc}", unsent=True) from exc
        except httpx.TimeoutException as exc:
            raise ApiError("Request timed out. Please try again.") from exc
        except httpx.TransportError as exc:
            raise ApiError(f"Unable to connect to the server: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.is_error:
            if response.status_code == 401:
                self.token = None
            raise ApiError(
                payload.get("message") or f"Request failed ({response.status_code})",
                status_code=response.status_code,
                code=payload.get("error"),
            )
        return payload

    def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        for attempt in range(1, self.retry.attempts + 1):
            try:
                return self._send(method, path, json)
            except ApiError as exc:
                if attempt >= self.retry.attempts or not exc.retryable:
                    raise
                if method not in IDEMPOTENT_METHODS and not exc.unsent:
                    raise
                wait = self.retry.backoff(attempt)
                logger.warning(
                    "%s %s failed (%s); retrying in %.1fs (attempt %d/%d)",
                    method, path, exc.message, wait, attempt, self.retry.attempts,
                )
                self._sleep(wait)

    # ---------- auth ----------

    def register(self, name: str, email: str, password: str) -> dict:
        data = self._send("POST", "/api/auth/register", {"name": name, "email": email, "password": password})["data"]
        self.token = data["token"]
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._send("POST", "/api/auth/login", {"email": email, "password": password})["data"]
        self.token = data["token"]
        return data["user"]

    def logout(self):
        self._send("POST", "/api/auth/logout")
        self.token = None

    # ---------- short URLs ----------

    def create_short_url(self, url: str) -> str:
        return self._request("POST", "/api/shortUrl/create", {"url": url})["data"]["shortUrl"]

    def create_custom_short_url(self, url: str, custom_url: str) -> str:
        payload = {"url": url, "customUrl": custom_url}
        return self._request("POST", "/api/shortUrl/custom", payload)["data"]["shortUrl"]

    def list_urls(self) -> list[dict]:
        return self._request("GET", "/api/shortUrl/user")["data"]["urls"]

    def health(self) -> dict:
        return self._request("GET", "/health")
