"""Infra layer utilities (proxy broker and session manager)."""

from .proxy_broker import HttpProxyBroker, ProxyBroker
from .proxy_pool import ProxySessionManager

__all__ = ["HttpProxyBroker", "ProxyBroker", "ProxySessionManager"]
