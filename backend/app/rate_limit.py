"""Rate limiting for Chowkar backend.

Limits are keyed by client IP. X-Forwarded-For is honoured only when the
direct peer is a trusted proxy, so clients cannot spoof their address.
"""

import ipaddress
import os
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from .logging_config import get_logger

logger = get_logger("chowkar.rate_limit")

# Override with TRUSTED_PROXY_CIDRS (comma-separated).
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",  # Hosting provider internal network
    "172.16.0.0/12",  # Docker/private
    "192.168.0.0/16",  # Local dev
    "127.0.0.0/8",
    "::1/128",
]

# Per-route limits
READ_LIMIT = "120/minute"
WRITE_LIMIT = "30/minute"
MESSAGE_LIMIT = "60/minute"
# Provider retries bursts of redeliveries
WEBHOOK_LIMIT = "300/minute"

Network = ipaddress.IPv4Network | ipaddress.IPv6Network

_trusted_networks: Optional[list[Network]] = None


def _load_trusted_cidrs() -> list[Network]:
    raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] if raw else _DEFAULT_TRUSTED_CIDRS
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


def _get_trusted_networks() -> list[Network]:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = _load_trusted_cidrs()
    return _trusted_networks


def reset_trusted_networks() -> None:
    """Forget cached CIDRs so the next request re-reads the environment."""
    global _trusted_networks
    _trusted_networks = None


def is_trusted_proxy(ip_str: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in _get_trusted_networks())


def get_client_ip(request) -> str:
    """Resolve the client IP.

    Behind a trusted proxy the leftmost X-Forwarded-For entry is the
    original client; otherwise the direct peer address is used.
    """
    direct_ip = get_remote_address(request)
    if not is_trusted_proxy(direct_ip):
        return direct_ip

    forwarded_for = request.headers.get("x-forwarded-for", "")
    client_ip = forwarded_for.split(",")[0].strip()
    return client_ip or direct_ip


limiter = Limiter(key_func=get_client_ip)
