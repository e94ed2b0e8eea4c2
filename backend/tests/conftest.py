"""Pytest fixtures for secscan tests."""

from __future__ import annotations

import asyncio
import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generator, Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from secscan import create_app
from secscan.extensions import db

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

# Headers of a well-configured site: no missing-header findings
SECURE_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
    "Content-Security-Policy": "default-src 'self'",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=()",
    "X-XSS-Protection": "1; mode=block",
}


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def mock_transport(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def refusing_transport() -> httpx.MockTransport:
    """Transport that fails every request as if the port were closed."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.MockTransport(handler)


def make_jwt(header: Dict[str, Any], payload: Dict[str, Any], signature: str = "c2ln") -> str:
    """Assemble an (unsigned) JWT from raw header/payload dicts."""
    def segment(obj: Dict[str, Any]) -> str:
        raw = json.dumps(obj, separators=(",", ":")).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()
    return f"{segment(header)}.{segment(payload)}.{signature}"


def make_certificate(
    not_before: datetime,
    not_after: datetime,
    common_name: str = "example.com",
    sans: Optional[list] = None,
) -> bytes:
    """Self-signed DER certificate with the given validity window."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Inc"),
    ])
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(0x1A2B3C)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(s) for s in (sans or [common_name])]),
            critical=False,
        )
    )
    cert = builder.sign(key, hashes.SHA256())
    return cert.public_bytes(Encoding.DER)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def app_factory() -> Generator[Callable[..., Any], None, None]:
    """Build apps with an in-memory database; tables are created per app."""
    contexts = []

    def factory(with_db: bool = True, **overrides):
        config: Dict[str, Any] = {
            "TESTING": True,
            "SCAN_ALLOW_PRIVATE_TARGETS": True,
            "SCAN_DEADLINE_SECONDS": 10,
        }
        if with_db:
            config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        config.update(overrides)

        app = create_app(config)
        if with_db:
            ctx = app.app_context()
            ctx.push()
            db.create_all()
            contexts.append(ctx)
        return app

    yield factory

    for ctx in reversed(contexts):
        db.session.remove()
        db.drop_all()
        ctx.pop()
