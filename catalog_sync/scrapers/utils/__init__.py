"""Scraper utilities for retry, identity rotation, proxies, browsers and extraction."""

from .proxy_manager import NoProxyManager, ProxyEntry, ProxyManager
from .retry import RetryPolicy, wait_jittered_exponential
from .user_agents import USER_AGENTS, IdentityPool
from .normalizer import PriceNormalizer, normalize_url


__all__ = [
    # Proxy management
    "ProxyManager",
    "ProxyEntry",
    "NoProxyManager",
    # Retry
    "RetryPolicy",
    "wait_jittered_exponential",
    # Identity rotation
    "IdentityPool",
    "USER_AGENTS",
    # Normalization
    "PriceNormalizer",
    "normalize_url",
]
