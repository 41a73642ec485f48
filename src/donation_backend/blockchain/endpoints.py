"""Ordered pool of RPC endpoint descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple
from urllib.parse import urlparse

from donation_backend.utils.config import get_list


class TransportKind(str, Enum):
    HTTP = "http"
    WEBSOCKET = "websocket"


_SCHEMES = {
    "http": TransportKind.HTTP,
    "https": TransportKind.HTTP,
    "ws": TransportKind.WEBSOCKET,
    "wss": TransportKind.WEBSOCKET,
}


@dataclass(frozen=True)
class EndpointDescriptor:
    """One RPC access point. The first descriptor in a pool is the preferred one."""

    url: str
    transport: TransportKind

    @classmethod
    def from_url(cls, url: str) -> "EndpointDescriptor":
        scheme = urlparse(url).scheme.lower()
        if scheme not in _SCHEMES:
            raise ValueError(f"Unsupported RPC URL scheme in {url!r}")
        return cls(url=url, transport=_SCHEMES[scheme])

    @property
    def host(self) -> str:
        return urlparse(self.url).netloc or self.url


def build_endpoint_pool(urls: Iterable[str]) -> Tuple[EndpointDescriptor, ...]:
    """Build the pool in the given order, dropping blanks and duplicates."""
    seen = set()
    pool = []
    for url in urls:
        url = url.strip()
        if not url or url in seen:
            continue
        seen.add(url)
        pool.append(EndpointDescriptor.from_url(url))
    return tuple(pool)


def endpoint_pool_from_config(config: Dict[str, Any]) -> Tuple[EndpointDescriptor, ...]:
    """``blockchain.rpc_urls`` as descriptors; a ``blockchain.rpc_url`` entry is tried first."""
    urls = get_list(config, "blockchain.rpc_urls")
    primary = config.get("blockchain", {}).get("rpc_url")
    if primary:
        urls = [primary, *urls]
    return build_endpoint_pool(urls)
