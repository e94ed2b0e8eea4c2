# secscan/scanner/analyzers/tls_inspector.py
"""
TLS / certificate inspector.

Opens a raw TLS connection to the target and evaluates the certificate
and the negotiated connection.

Two handshakes are made:
    1. Inspection handshake — certificate validation DISABLED (CERT_NONE,
       no hostname check, legacy protocols and ciphers allowed) so the
       handshake completes even for broken chains. Captures the DER
       certificate, negotiated protocol and cipher.
    2. Trust handshake — default verifying context (system CA bundle +
       hostname check). Its outcome is the `authorized` flag; when it fails
       the verifier's own message is kept so the report says WHY trust
       failed, not only that it failed.

Checks performed (evaluate_certificate):
    CRITICAL:
        - Certificate not trusted (chain / hostname / self-signed ...)
        - Certificate expired
        - Certificate expires in less than 7 days
    HIGH:
        - Certificate expires in less than 30 days
        - Weak protocol negotiated (TLSv1, TLSv1.1, SSLv3)
        - Weak cipher negotiated (DES, RC4, MD5, NULL, EXPORT)

Only runs for https targets.

Requires: cryptography (DER certificate parsing)
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from secscan.scanner.base import (
    BaseProbe,
    Category,
    Finding,
    ProbeResult,
    ScanTarget,
    Severity,
)

logger = logging.getLogger(__name__)

TIMEOUT = 10

WEAK_PROTOCOLS = {"TLSv1", "TLSv1.1", "SSLv3"}

# Substring match against the negotiated cipher name
WEAK_CIPHER_TOKENS = ["DES", "RC4", "MD5", "NULL", "EXPORT"]

# (threshold_days, severity, title, recommendation); first match wins
EXPIRY_RULES: List[Tuple[int, Severity, str, str]] = [
    (0, Severity.CRITICAL, "Certificate Expired", "Renew the SSL certificate immediately"),
    (7, Severity.CRITICAL, "Certificate Expiring Very Soon", "Renew the SSL certificate immediately"),
    (30, Severity.HIGH, "Certificate Expiring Soon", "Schedule certificate renewal"),
]

NAME_FIELDS = {
    NameOID.COMMON_NAME: "CN",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
}


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class CertificateInfo:
    issuer: Dict[str, str]
    subject: Dict[str, str]
    valid_from: datetime
    valid_to: datetime
    days_until_expiry: int
    fingerprint: str
    serial_number: str
    protocol: Optional[str] = None
    cipher: Optional[str] = None
    authorized: bool = False
    authorization_error: Optional[str] = None
    sans: List[str] = field(default_factory=list)

    def certificate_dict(self) -> Dict[str, Any]:
        return {
            "issuer": self.issuer,
            "subject": self.subject,
            "validFrom": self.valid_from.isoformat(),
            "validTo": self.valid_to.isoformat(),
            "daysUntilExpiry": self.days_until_expiry,
            "fingerprint": self.fingerprint,
            "serialNumber": self.serial_number,
            "sans": self.sans,
        }

    def connection_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "cipher": self.cipher,
            "authorized": self.authorized,
            "authorizationError": self.authorization_error,
        }


# ---------------------------------------------------------------------------
# Certificate parsing
# ---------------------------------------------------------------------------

def days_until(valid_to: datetime, now: datetime) -> int:
    """Whole days until valid_to, floored. Negative once expired."""
    return (valid_to - now).days


def _flatten_name(name: x509.Name) -> Dict[str, str]:
    """
    Convert an x509.Name to a flat dict.
    e.g., CN=example.com, O=Example Inc → {"CN": "example.com", "O": "Example Inc"}
    """
    result: Dict[str, str] = {}
    for attr in name:
        key = NAME_FIELDS.get(attr.oid, attr.oid.dotted_string)
        result[key] = str(attr.value)
    return result


def build_certificate_info(
    der_bytes: bytes,
    *,
    now: datetime,
    protocol: Optional[str] = None,
    cipher: Optional[str] = None,
    authorized: bool = False,
    authorization_error: Optional[str] = None,
) -> CertificateInfo:
    """Parse a DER-encoded certificate into a CertificateInfo."""
    cert = x509.load_der_x509_certificate(der_bytes)

    not_before = (
        cert.not_valid_before_utc if hasattr(cert, "not_valid_before_utc")
        else cert.not_valid_before.replace(tzinfo=timezone.utc)
    )
    not_after = (
        cert.not_valid_after_utc if hasattr(cert, "not_valid_after_utc")
        else cert.not_valid_after.replace(tzinfo=timezone.utc)
    )

    fingerprint = cert.fingerprint(hashes.SHA256()).hex()
    fingerprint_formatted = ":".join(
        fingerprint[i:i + 2].upper() for i in range(0, len(fingerprint), 2)
    )

    sans: List[str] = []
    try:
        san_ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        sans = san_ext.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        pass

    return CertificateInfo(
        issuer=_flatten_name(cert.issuer),
        subject=_flatten_name(cert.subject),
        valid_from=not_before,
        valid_to=not_after,
        days_until_expiry=days_until(not_after, now),
        fingerprint=fingerprint_formatted,
        serial_number=format(cert.serial_number, "X"),
        protocol=protocol,
        cipher=cipher,
        authorized=authorized,
        authorization_error=authorization_error,
        sans=list(sans),
    )


# ---------------------------------------------------------------------------
# Pure evaluation
# ---------------------------------------------------------------------------

def evaluate_certificate(info: CertificateInfo) -> List[Finding]:
    """Turn certificate + connection observations into findings."""
    findings: List[Finding] = []

    if not info.authorized:
        findings.append(Finding(
            category=Category.SSL,
            severity=Severity.CRITICAL,
            title="Untrusted Certificate",
            description="Certificate is not trusted by certificate authorities",
            evidence=info.authorization_error,
            recommendation="Use a certificate from a trusted CA",
            owasp_category="A02",
            cwe_id="CWE-295",
        ))

    days = info.days_until_expiry
    for threshold, severity, title, recommendation in EXPIRY_RULES:
        if days >= threshold:
            continue
        if days < 0:
            description = f"Certificate expired {abs(days)} days ago"
        else:
            description = f"Certificate expires in {days} days"
        findings.append(Finding(
            category=Category.SSL,
            severity=severity,
            title=title,
            description=description,
            evidence=f"validTo: {info.valid_to.isoformat()}",
            recommendation=recommendation,
            owasp_category="A02",
            cwe_id="CWE-298",
        ))
        break

    if info.protocol in WEAK_PROTOCOLS:
        findings.append(Finding(
            category=Category.SSL,
            severity=Severity.HIGH,
            title="Weak TLS Version",
            description=f"Using {info.protocol}. This version has known vulnerabilities",
            recommendation="Upgrade to TLS 1.2 or TLS 1.3",
            owasp_category="A02",
            cwe_id="CWE-326",
        ))

    if info.cipher:
        weak = [token for token in WEAK_CIPHER_TOKENS if token in info.cipher]
        if weak:
            findings.append(Finding(
                category=Category.SSL,
                severity=Severity.HIGH,
                title="Weak Cipher Suite",
                description=f"Using weak cipher: {info.cipher}",
                evidence=f"Matched: {', '.join(weak)}",
                recommendation="Configure server to use strong cipher suites",
                owasp_category="A02",
                cwe_id="CWE-327",
            ))

    return findings


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class TLSInspector(BaseProbe):
    """
    Inspects the TLS certificate and negotiated connection of a host.

    Probe config:
        timeout: Connection + handshake timeout in seconds. Default 10.
    """

    @property
    def name(self) -> str:
        return "ssl"

    def can_scan(self, target: ScanTarget) -> bool:
        return target.is_https

    def failure_finding(self, message: str) -> Finding:
        return Finding(
            category=Category.SSL,
            severity=Severity.CRITICAL,
            title="SSL Validation Error",
            description=message,
            recommendation="Check SSL configuration",
        )

    async def execute(self, target: ScanTarget, config: Dict[str, Any]) -> ProbeResult:
        result = ProbeResult(probe_name=self.name)
        timeout = config.get("timeout", TIMEOUT)
        hostname, port = target.hostname, target.port

        try:
            raw = await self._handshake(hostname, port, timeout)
        except asyncio.TimeoutError:
            logger.info(f"TLS handshake timed out for {hostname}:{port}")
            result.success = False
            result.error = "Connection timeout"
            result.findings = [Finding(
                category=Category.SSL,
                severity=Severity.CRITICAL,
                title="SSL Connection Timeout",
                description="Could not establish SSL connection within timeout",
                recommendation="Check if the server supports HTTPS",
            )]
            return result
        except (ssl.SSLError, OSError) as e:
            message = str(e) or type(e).__name__
            logger.info(f"TLS handshake failed for {hostname}:{port}: {message}")
            result.success = False
            result.error = message
            result.findings = [Finding(
                category=Category.SSL,
                severity=Severity.CRITICAL,
                title="SSL Connection Failed",
                description=message,
                recommendation="Verify HTTPS is configured correctly",
            )]
            return result

        authorized, reason = await self._verify_trust(hostname, port, timeout)

        info = build_certificate_info(
            raw["der"],
            now=self.clock(),
            protocol=raw.get("protocol"),
            cipher=raw.get("cipher"),
            authorized=authorized,
            authorization_error=reason,
        )

        result.data = {
            "hostname": hostname,
            "port": port,
            "certificate": info.certificate_dict(),
            "connection": info.connection_dict(),
        }
        result.findings = evaluate_certificate(info)
        return result

    # -------------------------------------------------------------------
    # Handshakes
    # -------------------------------------------------------------------

    def _inspection_context(self) -> ssl.SSLContext:
        """Context that completes the handshake no matter what the server presents."""
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        # Let legacy servers negotiate what they actually offer
        try:
            context.minimum_version = ssl.TLSVersion.MINIMUM_SUPPORTED
            context.set_ciphers("ALL:@SECLEVEL=0")
        except (ValueError, ssl.SSLError):
            logger.debug("Local OpenSSL refuses legacy TLS settings; using defaults")
        return context

    async def _handshake(self, hostname: str, port: int, timeout: float) -> Dict[str, Any]:
        """
        Inspection handshake. Returns {"der", "protocol", "cipher"}.
        Raises asyncio.TimeoutError, ssl.SSLError or OSError.
        """
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                hostname, port,
                ssl=self._inspection_context(),
                server_hostname=hostname,
            ),
            timeout=timeout,
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            der = ssl_object.getpeercert(binary_form=True)
            cipher = ssl_object.cipher()
            if not der:
                raise ssl.SSLError("Server presented no certificate")
            return {
                "der": der,
                "protocol": ssl_object.version(),
                "cipher": cipher[0] if cipher else None,
            }
        finally:
            await _close_writer(writer)

    async def _verify_trust(self, hostname: str, port: int, timeout: float) -> Tuple[bool, Optional[str]]:
        """
        Trust handshake with full verification.
        Returns (authorized, reason_if_not_authorized).
        """
        context = ssl.create_default_context()
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    hostname, port,
                    ssl=context,
                    server_hostname=hostname,
                ),
                timeout=timeout,
            )
        except ssl.SSLCertVerificationError as e:
            return False, e.verify_message or str(e)
        except ssl.SSLError as e:
            return False, f"Verified handshake failed: {e}"
        except asyncio.TimeoutError:
            return False, "Verified handshake timed out"
        except OSError as e:
            return False, f"Verified handshake failed: {e}"

        await _close_writer(writer)
        return True, None


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (ssl.SSLError, OSError):
        # Servers often drop the connection without close_notify
        pass
