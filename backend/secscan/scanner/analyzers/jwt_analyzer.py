# secscan/scanner/analyzers/jwt_analyzer.py
"""
JWT structural analyzer.

Network-free: decodes a raw token WITHOUT verifying its signature and flags
risky algorithm / claim choices. Invoked on its own (POST /security/jwt),
never as part of a URL scan.

Requires: PyJWT
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import jwt

from secscan.scanner.base import Category, Finding, Severity, now_utc

logger = logging.getLogger(__name__)

# Tokens living longer than this are flagged
MAX_LIFETIME_HOURS = 24


@dataclass
class JWTAnalysis:
    success: bool
    decoded: Optional[Dict[str, Any]] = None
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "decoded": self.decoded,
            "findings": [f.to_dict() for f in self.findings],
        }
        if self.error:
            out["error"] = self.error
        return out


def _decode_error(message: str) -> JWTAnalysis:
    return JWTAnalysis(
        success=False,
        error=message,
        findings=[Finding(
            category=Category.JWT,
            severity=Severity.INFO,
            title="JWT Decode Error",
            description=message,
        )],
    )


def decode_unverified(token: str) -> Dict[str, Dict[str, Any]]:
    """
    Decode header and payload without any verification.
    Raises jwt.InvalidTokenError when either part is not a JSON object.
    """
    header = jwt.get_unverified_header(token)
    payload = jwt.decode(token, options={"verify_signature": False})
    return {"header": header, "payload": payload}


def analyze_jwt(token: str, now: Optional[datetime] = None) -> JWTAnalysis:
    """
    Analyze a JWT's header and claims.

    Deterministic for a fixed `now` (defaults to the current UTC time).
    """
    now = now or now_utc()
    token = (token or "").strip()

    if len(token.split(".")) != 3:
        return JWTAnalysis(
            success=False,
            error="Invalid JWT format - expected 3 parts",
            findings=[Finding(
                category=Category.JWT,
                severity=Severity.INFO,
                title="Invalid JWT Format",
                description="Token does not have the expected header.payload.signature format",
            )],
        )

    try:
        decoded = decode_unverified(token)
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT decode failed: {e}")
        return _decode_error(str(e))

    header, payload = decoded["header"], decoded["payload"]
    alg = header.get("alg")
    if not isinstance(alg, str) or not alg:
        return _decode_error("JWT header has no 'alg' field")

    exp = payload.get("exp")
    if exp is not None and (isinstance(exp, bool) or not isinstance(exp, (int, float))):
        return _decode_error("JWT 'exp' claim must be a number")

    findings: List[Finding] = []

    # Algorithm
    if alg.lower() == "none":
        findings.append(Finding(
            category=Category.JWT,
            severity=Severity.CRITICAL,
            title='JWT Algorithm "none" Detected',
            description='Token uses "none" algorithm, making signature verification bypassable',
            evidence=f"alg: {alg}",
            recommendation='Never accept tokens with "none" algorithm',
            owasp_category="A02",
            cwe_id="CWE-347",
        ))
    elif alg == "HS256":
        findings.append(Finding(
            category=Category.JWT,
            severity=Severity.LOW,
            title="Symmetric Algorithm Used",
            description="HS256 is symmetric - consider RS256 for better security",
            evidence=f"alg: {alg}",
            recommendation="Consider using RS256 for production environments",
        ))

    # Expiration
    if exp is None:
        findings.append(Finding(
            category=Category.JWT,
            severity=Severity.HIGH,
            title="No Expiration Set",
            description="JWT does not have an expiration time, tokens never expire",
            recommendation="Always set an expiration time for JWT tokens",
            owasp_category="A07",
            cwe_id="CWE-613",
        ))
    else:
        try:
            expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, ValueError, OSError):
            return _decode_error("JWT 'exp' claim is out of range")
        if expires_at < now:
            findings.append(Finding(
                category=Category.JWT,
                severity=Severity.INFO,
                title="Token Expired",
                description=f"Token expired on {expires_at.isoformat()}",
            ))

        hours_left = (expires_at - now).total_seconds() / 3600
        if hours_left > MAX_LIFETIME_HOURS:
            findings.append(Finding(
                category=Category.JWT,
                severity=Severity.LOW,
                title="Long Token Lifetime",
                description=f"Token valid for {round(hours_left)} hours",
                recommendation="Consider shorter token lifetimes (1-24 hours) with refresh tokens",
                cwe_id="CWE-613",
            ))

    if payload.get("iat") is None:
        findings.append(Finding(
            category=Category.JWT,
            severity=Severity.LOW,
            title="Missing Issued At (iat)",
            description="Token does not have iat claim",
            recommendation="Include iat claim for token tracking",
        ))

    return JWTAnalysis(success=True, decoded=decoded, findings=findings)
