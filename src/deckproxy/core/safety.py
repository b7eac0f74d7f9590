# src/deckproxy/core/safety.py
from __future__ import annotations

import fnmatch
import ipaddress
import os
import socket
from typing import Dict, Iterable, Optional, Sequence
from urllib.parse import urlparse

from deckproxy.core.config import settings


# ────────────────────────────────────────────────────────────────────────────────
# Network policy constants
# ────────────────────────────────────────────────────────────────────────────────

PRIVATE_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]
ALLOWED_SCHEMES = {"http", "https"}

# Browser-like default headers; some CDNs answer bare clients with 403.
DEFAULT_HTTP_HEADERS: Dict[str, str] = {
    "User-Agent": os.getenv(
        "HTTP_USER_AGENT",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/126.0.0.0 Safari/537.36",
    ),
    "Accept": "*/*",
    "Accept-Language": os.getenv("HTTP_ACCEPT_LANGUAGE", "en-US,en;q=0.9"),
}


# ────────────────────────────────────────────────────────────────────────────────
# Exceptions
# ────────────────────────────────────────────────────────────────────────────────

class FetchBlocked(Exception):
    """Raised when an outbound fetch is blocked by policy."""
    pass


class UploadBlocked(Exception):
    """Raised when an inbound upload is blocked by policy."""
    pass


def _ports_from_env(default="80,443"):
    raw = os.getenv("ALLOWED_PORTS", default)
    ports = set()
    for tok in (raw or "").split(","):
        tok = tok.strip()
        if tok.isdigit():
            ports.add(int(tok))
    return ports or {80, 443}

ALLOWED_PORTS = _ports_from_env()


# ────────────────────────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────────────────────────

def _resolve_all(host: str) -> Iterable[str]:
    """Return all resolved IPs for host; empty on error."""
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError, OSError):
        return []
    return [info[4][0] for info in infos]


def _is_private_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return True  # unparseable answers are treated as unsafe
    return any(addr in net for net in PRIVATE_NETS) or addr.is_private or addr.is_loopback or addr.is_link_local


def host_matches(host: str, patterns: Sequence[str]) -> bool:
    """
    Shell-style match of a hostname against allow-list patterns.
    A bare domain only matches itself; use "*.domain" for subdomains.
    """
    host = (host or "").lower().rstrip(".")
    return any(fnmatch.fnmatchcase(host, p.lower()) for p in patterns if p)


def _host_allowed(host: str, patterns: Optional[Sequence[str]]) -> bool:
    if patterns is None:
        patterns = settings.allowed_patterns()
    if not patterns:
        return bool(settings.ALLOW_ANY_ORIGIN)
    return host_matches(host, patterns)


def _port_allowed(port: Optional[int]) -> bool:
    if port is None:
        return True
    return port in ALLOWED_PORTS


def validate_url(
    url: str,
    *,
    patterns: Optional[Sequence[str]] = None,
    block_private: Optional[bool] = None,
) -> None:
    """
    Validate that the URL is safe to fetch:
      - scheme http/https
      - host matches the origin allow-list
      - no embedded credentials
      - allowed ports only
      - DNS doesn't resolve to private/link-local ranges (if enabled)
    """
    if not url or not isinstance(url, str):
        raise FetchBlocked("blocked: empty url")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise FetchBlocked(f"blocked: scheme {parsed.scheme or '(none)'} not allowed")
    if parsed.username or parsed.password:
        raise FetchBlocked("blocked: credentials in URL not allowed")
    try:
        port = parsed.port
    except ValueError:
        raise FetchBlocked("blocked: invalid port")
    if not _port_allowed(port):
        raise FetchBlocked("blocked: port not allowed")
    host = parsed.hostname or ""
    if not host:
        raise FetchBlocked("blocked: missing host")
    if not _host_allowed(host, patterns):
        raise FetchBlocked(f"blocked: host not in allowlist ({host})")
    if block_private is None:
        block_private = settings.BLOCK_PRIVATE_NETWORKS
    if block_private:
        for ip in _resolve_all(host):
            if _is_private_ip(ip):
                raise FetchBlocked(f"blocked: resolved to private IP ({ip})")


# ────────────────────────────────────────────────────────────────────────────────
# Inbound upload validation
# ────────────────────────────────────────────────────────────────────────────────

def validate_upload(filename: str, size_bytes: int, max_mb: Optional[int] = None) -> None:
    """
    Inbound upload guard for the task passthrough: a name and a size cap.
    Any file type is forwarded; the upstream API decides what it accepts.
    """
    max_mb = max_mb if max_mb is not None else int(settings.MAX_UPLOAD_MB)
    if not (filename or "").strip():
        raise UploadBlocked("upload has no filename")
    if size_bytes > max_mb * 1024 * 1024:
        raise UploadBlocked(f"upload too large ({size_bytes} bytes > {max_mb} MB)")
