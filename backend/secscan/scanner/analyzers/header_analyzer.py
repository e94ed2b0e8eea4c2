# secscan/scanner/analyzers/header_analyzer.py
"""
HTTP Security Headers Analyzer.

Fetches the target once (GET, up to 3 redirects) and diffs the observed
response headers against the SECURITY_HEADERS policy registry.

Checks performed:
    HIGH:
        - Missing Strict-Transport-Security (HSTS)
        - Missing Content-Security-Policy (CSP)

    MEDIUM:
        - Missing X-Frame-Options
        - Missing X-Content-Type-Options
        - HSTS max-age shorter than one year
        - Deprecated X-Frame-Options: ALLOW-FROM

    LOW:
        - Missing Referrer-Policy
        - Missing Permissions-Policy
        - X-Powered-By header present

    INFO:
        - Missing X-XSS-Protection (legacy)
        - Server header present

Server / X-Powered-By values are never matched against a CVE database;
presence alone is the signal.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from secscan.scanner.base import (
    BaseProbe,
    Category,
    Finding,
    ProbeResult,
    ScanTarget,
    Severity,
    connection_failed_finding,
)
from secscan.scanner.http_client import build_client, lower_headers

logger = logging.getLogger(__name__)

TIMEOUT = 10
MAX_REDIRECTS = 3

# One year, the HSTS preload list minimum
HSTS_MIN_MAX_AGE = 31536000

HSTS_MAX_AGE_RE = re.compile(r"max-age\s*=\s*\"?(\d+)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Weak-configuration checks (one per header that has one)
# ---------------------------------------------------------------------------

def _check_hsts(value: str) -> Optional[Finding]:
    match = HSTS_MAX_AGE_RE.search(value)
    max_age = int(match.group(1)) if match else 0
    if max_age >= HSTS_MIN_MAX_AGE:
        return None
    return Finding(
        category=Category.SECURITY_HEADERS,
        severity=Severity.MEDIUM,
        title="Weak HSTS Configuration",
        description=(
            f"HSTS max-age is {max_age} seconds. "
            f"Recommended minimum is 1 year ({HSTS_MIN_MAX_AGE})"
        ),
        evidence=f"Strict-Transport-Security: {value}",
        recommendation=f"Increase max-age to at least {HSTS_MIN_MAX_AGE}",
        owasp_category="A05",
        cwe_id="CWE-319",
    )


def _check_frame_options(value: str) -> Optional[Finding]:
    if not value.strip().upper().startswith("ALLOW-FROM"):
        return None
    return Finding(
        category=Category.SECURITY_HEADERS,
        severity=Severity.MEDIUM,
        title="Deprecated X-Frame-Options Value",
        description="ALLOW-FROM is deprecated and not supported by modern browsers",
        evidence=f"X-Frame-Options: {value}",
        recommendation="Use CSP frame-ancestors directive instead",
        owasp_category="A05",
        cwe_id="CWE-1021",
    )


# ---------------------------------------------------------------------------
# Policy registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeaderPolicy:
    header: str
    display_name: str
    severity: Severity
    description: str
    recommendation: str
    cwe_id: Optional[str] = None
    weak_check: Optional[Callable[[str], Optional[Finding]]] = None


# Order matters: findings are emitted in registry order
SECURITY_HEADERS: List[HeaderPolicy] = [
    HeaderPolicy(
        header="Strict-Transport-Security",
        display_name="Strict-Transport-Security",
        severity=Severity.HIGH,
        description="Missing HSTS header - site may be vulnerable to protocol downgrade attacks",
        recommendation="Add: Strict-Transport-Security: max-age=31536000; includeSubDomains",
        cwe_id="CWE-319",
        weak_check=_check_hsts,
    ),
    HeaderPolicy(
        header="Content-Security-Policy",
        display_name="Content-Security-Policy",
        severity=Severity.HIGH,
        description="Missing CSP header - site may be vulnerable to cross-site scripting",
        recommendation="Add a Content-Security-Policy header to prevent XSS attacks",
        cwe_id="CWE-79",
    ),
    HeaderPolicy(
        header="X-Frame-Options",
        display_name="X-Frame-Options",
        severity=Severity.MEDIUM,
        description="Missing X-Frame-Options - site may be vulnerable to clickjacking",
        recommendation="Add: X-Frame-Options: DENY or SAMEORIGIN",
        cwe_id="CWE-1021",
        weak_check=_check_frame_options,
    ),
    HeaderPolicy(
        header="X-Content-Type-Options",
        display_name="X-Content-Type-Options",
        severity=Severity.MEDIUM,
        description="Missing X-Content-Type-Options - browser may MIME-sniff content",
        recommendation="Add: X-Content-Type-Options: nosniff",
        cwe_id="CWE-16",
    ),
    HeaderPolicy(
        header="Referrer-Policy",
        display_name="Referrer-Policy",
        severity=Severity.LOW,
        description="Missing Referrer-Policy - referrer information may leak to third parties",
        recommendation="Add: Referrer-Policy: strict-origin-when-cross-origin",
    ),
    HeaderPolicy(
        header="Permissions-Policy",
        display_name="Permissions-Policy",
        severity=Severity.LOW,
        description="Missing Permissions-Policy - browser features not explicitly controlled",
        recommendation="Add a Permissions-Policy header to control browser features",
    ),
    HeaderPolicy(
        header="X-XSS-Protection",
        display_name="X-XSS-Protection",
        severity=Severity.INFO,
        description="Missing X-XSS-Protection - legacy XSS filter not enabled",
        recommendation="Add: X-XSS-Protection: 1; mode=block (legacy browsers only)",
    ),
]

# Headers whose mere presence discloses stack information
DISCLOSURE_HEADERS = [
    {
        "header": "Server",
        "severity": Severity.INFO,
        "title": "Server Header Present",
        "description": "Server header reveals: {value}",
        "recommendation": "Consider removing or obfuscating the Server header",
    },
    {
        "header": "X-Powered-By",
        "severity": Severity.LOW,
        "title": "X-Powered-By Header Present",
        "description": "Technology disclosed: {value}",
        "recommendation": "Remove the X-Powered-By header",
    },
]


# ---------------------------------------------------------------------------
# Pure evaluation
# ---------------------------------------------------------------------------

def analyze_headers(headers: Mapping[str, str]) -> List[Finding]:
    """
    Evaluate a response header set against the policy registry.

    Deterministic: the same header set always yields the same findings in
    the same order. Header names are matched case-insensitively.
    """
    headers_lower = {k.lower(): v for k, v in headers.items()}
    findings: List[Finding] = []

    for policy in SECURITY_HEADERS:
        value = headers_lower.get(policy.header.lower())

        if not value:
            findings.append(Finding(
                category=Category.SECURITY_HEADERS,
                severity=policy.severity,
                title=f"Missing {policy.display_name}",
                description=policy.description,
                recommendation=policy.recommendation,
                owasp_category="A05",
                cwe_id=policy.cwe_id,
            ))
            continue

        if policy.weak_check:
            weak = policy.weak_check(value)
            if weak:
                findings.append(weak)

    for check in DISCLOSURE_HEADERS:
        value = headers_lower.get(check["header"].lower())
        if not value:
            continue
        findings.append(Finding(
            category=Category.INFORMATION_DISCLOSURE,
            severity=check["severity"],
            title=check["title"],
            description=check["description"].format(value=value),
            evidence=f"{check['header']}: {value}",
            recommendation=check["recommendation"],
            owasp_category="A05",
            cwe_id="CWE-200",
        ))

    return findings


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class HeaderAnalyzer(BaseProbe):
    """
    Fetches the target once and checks its security headers.

    Probe config:
        timeout:       Request timeout in seconds. Default 10.
        max_redirects: Redirects to follow. Default 3.
    """

    @property
    def name(self) -> str:
        return "headers"

    async def execute(self, target: ScanTarget, config: Dict[str, Any]) -> ProbeResult:
        result = ProbeResult(probe_name=self.name)

        client = build_client(
            config,
            timeout=TIMEOUT,
            max_redirects=config.get("max_redirects", MAX_REDIRECTS),
        )
        try:
            async with client:
                resp = await client.get(target.url)
        except httpx.HTTPError as e:
            message = str(e) or type(e).__name__
            logger.info(f"Header check could not reach {target.url}: {message}")
            result.success = False
            result.error = message
            result.findings = [connection_failed_finding(message)]
            return result

        headers = lower_headers(resp)
        result.data = {
            "status_code": resp.status_code,
            "final_url": str(resp.url),
            "headers": headers,
        }
        result.findings = analyze_headers(headers)
        return result
