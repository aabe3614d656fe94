"""HTTP client for the proxy-brokering service."""

from __future__ import annotations

import random
import socket
import time
from typing import Any, Callable, Protocol

import httpx
import structlog

from ..engine.records import ProxyNode
from ..errors import AuthError, ProxyError


class ProxyBroker(Protocol):
    """Remote directory of egress nodes."""

    def authenticate(self, username: str, password: str) -> None:
        """Open a broker session or raise AuthError."""

    def probe(self, country: str, sample_size: int) -> list[ProxyNode]:
        """Return up to ``sample_size`` nodes in ``country`` with measured latency."""


def tcp_latency(hostname: str, port: int, timeout: float) -> float | None:
    """Return TCP connect time in milliseconds, or None when unreachable."""

    started = time.perf_counter()
    try:
        with socket.create_connection((hostname, port), timeout=timeout):
            pass
    except OSError:
        return None
    return (time.perf_counter() - started) * 1000.0


class HttpProxyBroker:
    """Talk to a JSON broker API: ``POST /session`` then ``GET /servers``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        port: int = 443,
        client: httpx.Client | None = None,
        latency_probe: Callable[[str, int, float], float | None] = tcp_latency,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.port = port
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._latency_probe = latency_probe
        self._token: str | None = None
        self.logger = logger or structlog.get_logger("listing_crawler.broker")

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def authenticate(self, username: str, password: str) -> None:
        if not username or not password:
            raise AuthError("Proxy broker credentials are missing")
        try:
            response = self._client.post(
                f"{self.base_url}/session",
                json={"username": username, "password": password},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Proxy broker unreachable: {exc}") from exc
        if response.status_code in {401, 403}:
            raise AuthError("Proxy broker rejected the credentials")
        if response.status_code >= 400:
            raise AuthError(f"Proxy broker login failed with status {response.status_code}")
        try:
            token = self._payload(response).get("session_token")
        except ProxyError as exc:
            raise AuthError(str(exc)) from exc
        if not token:
            raise AuthError("Proxy broker returned no session token")
        self._token = str(token)

    def probe(self, country: str, sample_size: int) -> list[ProxyNode]:
        if self._token is None:
            raise AuthError("Proxy broker session not established")
        try:
            response = self._client.get(
                f"{self.base_url}/servers",
                params={"country": country},
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise ProxyError(f"Proxy broker unreachable: {exc}") from exc
        if response.status_code in {401, 403}:
            self._token = None
            raise AuthError("Proxy broker session expired")
        if response.status_code >= 400:
            raise ProxyError(f"Server listing failed with status {response.status_code}")

        payload = self._payload(response)
        servers = [
            entry
            for entry in payload.get("servers", [])
            if isinstance(entry, dict)
            and entry.get("hostname")
            and str(entry.get("country", "")).upper() == country.upper()
        ]
        candidates = random.sample(servers, min(sample_size, len(servers)))
        nodes: list[ProxyNode] = []
        for entry in candidates:
            try:
                port = int(entry.get("port") or self.port)
            except (TypeError, ValueError):
                self.logger.warning("node_malformed", hostname=entry["hostname"], port=entry.get("port"))
                continue
            latency = self._latency_probe(entry["hostname"], port, self.timeout)
            if latency is None:
                self.logger.debug("node_unreachable", hostname=entry["hostname"])
                continue
            nodes.append(
                ProxyNode(
                    hostname=entry["hostname"],
                    latency=latency,
                    country=str(entry["country"]).upper(),
                    port=port,
                )
            )
        return nodes

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _payload(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProxyError("Proxy broker returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise ProxyError("Proxy broker returned an unexpected payload")
        return data


__all__ = ["HttpProxyBroker", "ProxyBroker", "tcp_latency"]
