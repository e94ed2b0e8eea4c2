# secscan/security/validators.py
"""
Request validation for the security API.

Every validator returns (cleaned_value, errors) where errors is a list of
{"field", "message"} dicts, empty when the input is valid. Routes collect
the errors and answer 400 before the engine runs.

SSRF protection lives here too: scan targets are resolved and refused when
any address they resolve to is private, loopback, link-local, reserved or
multicast.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from secscan.scanner.orchestrator import SCAN_TYPES

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048
MAX_TOKEN_LENGTH = 8192

DOMAIN_RE = re.compile(r"^([a-z0-9]([a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,63}$", re.IGNORECASE)

Errors = List[Dict[str, str]]


def _error(field: str, message: str) -> Errors:
    return [{"field": field, "message": message}]


# ═══════════════════════════════════════════════════════════════
# SSRF PROTECTION: Private/Reserved IP Blocklist
# ═══════════════════════════════════════════════════════════════

# Networks that should never be reached by outbound scan requests
BLOCKED_NETWORKS = [
    ipaddress.ip_network("0.0.0.0/8"),         # "This" network
    ipaddress.ip_network("10.0.0.0/8"),         # Private (RFC 1918)
    ipaddress.ip_network("100.64.0.0/10"),      # Carrier-grade NAT
    ipaddress.ip_network("127.0.0.0/8"),        # Loopback
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local / cloud metadata
    ipaddress.ip_network("172.16.0.0/12"),      # Private (RFC 1918)
    ipaddress.ip_network("192.0.0.0/24"),       # IETF protocol assignments
    ipaddress.ip_network("192.168.0.0/16"),     # Private (RFC 1918)
    ipaddress.ip_network("198.18.0.0/15"),      # Benchmarking
    ipaddress.ip_network("224.0.0.0/4"),        # Multicast
    ipaddress.ip_network("240.0.0.0/4"),        # Reserved
    ipaddress.ip_network("255.255.255.255/32"), # Broadcast
    # IPv6
    ipaddress.ip_network("::/128"),             # Unspecified
    ipaddress.ip_network("::1/128"),            # Loopback
    ipaddress.ip_network("fc00::/7"),           # Unique local
    ipaddress.ip_network("fe80::/10"),          # Link-local
    ipaddress.ip_network("ff00::/8"),           # Multicast
]


def is_blocked_ip(ip_str: str) -> bool:
    """Check if an IP address falls within blocked/private ranges."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False

    # IPv4-mapped IPv6 (::ffff:10.0.0.1): check the mapped v4 address
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
        addr = addr.ipv4_mapped

    if addr.is_private or addr.is_loopback or addr.is_link_local \
            or addr.is_reserved or addr.is_multicast or addr.is_unspecified:
        return True
    return any(addr in network for network in BLOCKED_NETWORKS if addr.version == network.version)


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def check_ssrf(host: str) -> Tuple[Optional[str], Optional[int]]:
    """
    Resolve a hostname and verify none of its addresses is private/reserved.

    Returns (error_message, status). Both None when the host is safe.
    status is 403 for a blocked address. A host that does not resolve is
    let through: the probes report it as a connection failure.
    """
    if _is_ip_literal(host):
        addresses = [host]
    else:
        try:
            infos = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (socket.gaierror, socket.herror, OSError) as e:
            logger.info(f"SSRF check: could not resolve {host}: {e}")
            return None, None
        addresses = sorted({info[4][0] for info in infos})

    for ip_str in addresses:
        if is_blocked_ip(ip_str):
            logger.warning(f"SSRF blocked: {host} resolved to private IP {ip_str}")
            return (
                "Target resolves to a private or reserved IP address. "
                "Requests to internal networks are not allowed.",
                403,
            )
    return None, None


# ═══════════════════════════════════════════════════════════════
# FIELD VALIDATORS
# ═══════════════════════════════════════════════════════════════

def validate_url(raw: Any, field: str = "url") -> Tuple[Optional[str], Errors]:
    """Absolute http/https URL with a host, at most 2048 characters."""
    if not isinstance(raw, str) or not raw.strip():
        return None, _error(field, "URL is required")
    url = raw.strip()
    if len(url) > MAX_URL_LENGTH:
        return None, _error(field, f"URL must be at most {MAX_URL_LENGTH} characters")

    try:
        parsed = urlsplit(url)
        _port = parsed.port
    except ValueError:
        return None, _error(field, "Invalid URL format")

    if parsed.scheme.lower() not in ("http", "https"):
        return None, _error(field, "URL must use http or https")
    if not parsed.hostname:
        return None, _error(field, "URL must include a host")

    host = parsed.hostname
    if not _is_ip_literal(host) and not DOMAIN_RE.match(host) and host != "localhost":
        return None, _error(field, "URL host is not a valid domain name or IP address")
    return url, []


def validate_scan_type(raw: Any, field: str = "scanType") -> Tuple[Optional[str], Errors]:
    if raw is None or raw == "":
        return "full", []
    if raw not in SCAN_TYPES:
        return None, _error(field, f"scanType must be one of: {', '.join(SCAN_TYPES)}")
    return raw, []


def validate_hostname(raw: Any, field: str = "hostname") -> Tuple[Optional[str], Errors]:
    if not isinstance(raw, str) or not raw.strip():
        return None, _error(field, "Hostname is required")
    host = raw.strip().lower().strip(".")
    if len(host) > 253:
        return None, _error(field, "Hostname is too long")
    if not _is_ip_literal(host) and not DOMAIN_RE.match(host) and host != "localhost":
        return None, _error(field, "Invalid hostname")
    return host, []


def validate_port(raw: Any, field: str = "port") -> Tuple[Optional[int], Errors]:
    if raw is None or raw == "":
        return 443, []
    if isinstance(raw, bool):
        return None, _error(field, "Port must be a number")
    try:
        port = int(raw)
    except (TypeError, ValueError):
        return None, _error(field, "Port must be a number")
    if not 1 <= port <= 65535:
        return None, _error(field, "Port must be between 1 and 65535")
    return port, []


def validate_token(raw: Any, field: str = "token") -> Tuple[Optional[str], Errors]:
    if not isinstance(raw, str) or not raw.strip():
        return None, _error(field, "Token is required")
    if len(raw) > MAX_TOKEN_LENGTH:
        return None, _error(field, f"Token must be at most {MAX_TOKEN_LENGTH} characters")
    return raw.strip(), []
