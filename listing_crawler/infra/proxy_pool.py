"""Proxy session manager choosing egress nodes from the broker."""

from __future__ import annotations

import random
from typing import Sequence

import structlog

from ..config import ProxyConfig, ProxyCredentials
from ..engine.records import ProxyNode
from ..errors import AuthError, NoAvailableNodeError
from .proxy_broker import ProxyBroker


class ProxySessionManager:
    """Authenticate with the broker and pick nodes meeting region/latency limits."""

    def __init__(
        self,
        broker: ProxyBroker,
        config: ProxyConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.broker = broker
        self.config = config or ProxyConfig()
        self.logger = logger or structlog.get_logger("listing_crawler.proxy")
        self._authenticated = False

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def authenticate(self, credentials: ProxyCredentials | None = None) -> None:
        creds = credentials or self.config.credentials
        self.logger.info("broker_connecting", broker=self.config.broker_url)
        self.broker.authenticate(creds.username, creds.password)
        self._authenticated = True
        self.logger.info("broker_connected", broker=self.config.broker_url)

    def qualifying_nodes(
        self,
        country: str | None = None,
        max_latency: float | None = None,
        sample_size: int | None = None,
    ) -> list[ProxyNode]:
        if not self._authenticated:
            raise AuthError("authenticate() must succeed before probing nodes")
        country = (country or self.config.country).upper()
        max_latency = self.config.max_latency_ms if max_latency is None else max_latency
        sample_size = sample_size or self.config.sample_size
        probed = self.broker.probe(country, sample_size)[:sample_size]
        return [
            node
            for node in probed
            if node.country.upper() == country and node.latency <= max_latency
        ]

    def select_node(
        self,
        country: str | None = None,
        max_latency: float | None = None,
        sample_size: int | None = None,
    ) -> ProxyNode:
        nodes = self.qualifying_nodes(country, max_latency, sample_size)
        if not nodes:
            raise NoAvailableNodeError(
                f"No node in {(country or self.config.country).upper()} under "
                f"{self.config.max_latency_ms if max_latency is None else max_latency} ms"
            )
        node = self.pick_random(nodes)
        self.logger.info(
            "proxy_selected",
            hostname=node.hostname,
            latency_ms=round(node.latency, 1),
            candidates=len(nodes),
        )
        return node

    @staticmethod
    def pick_random(nodes: Sequence[ProxyNode]) -> ProxyNode:
        """Uniform choice, so load spreads and the access pattern stays irregular."""

        if not nodes:
            raise NoAvailableNodeError("No nodes to choose from")
        return random.choice(list(nodes))


__all__ = ["ProxySessionManager"]
