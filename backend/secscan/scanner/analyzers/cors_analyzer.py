# secscan/scanner/analyzers/cors_analyzer.py
"""
CORS misconfiguration analyzer.

Sends a single preflight (OPTIONS) with an attacker-controlled Origin and
inspects the Access-Control-Allow-* response headers.

Checks performed:
    CRITICAL:
        - Wildcard origin combined with Allow-Credentials: true
        - Server reflects the attacker Origin back
    MEDIUM:
        - Wildcard origin (without credentials)

The wildcard+credentials and wildcard-only findings are mutually exclusive.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

import httpx

from secscan.scanner.base import (
    BaseProbe,
    Category,
    Finding,
    ProbeResult,
    ScanTarget,
    Severity,
)
from secscan.scanner.http_client import build_client, lower_headers

logger = logging.getLogger(__name__)

TIMEOUT = 5
ADVERSARIAL_ORIGIN = "https://evil-attacker.com"


def evaluate_cors(headers: Mapping[str, str], origin: str = ADVERSARIAL_ORIGIN) -> List[Finding]:
    """Evaluate preflight response headers for a request sent with `origin`."""
    headers_lower = {k.lower(): v for k, v in headers.items()}
    acao = (headers_lower.get("access-control-allow-origin") or "").strip()
    acac = (headers_lower.get("access-control-allow-credentials") or "").strip().lower()
    credentials = acac == "true"

    findings: List[Finding] = []

    if acao == "*":
        if credentials:
            findings.append(Finding(
                category=Category.CORS,
                severity=Severity.CRITICAL,
                title="Dangerous CORS Configuration",
                description="Wildcard origin (*) with credentials allowed",
                evidence="Access-Control-Allow-Origin: *; Access-Control-Allow-Credentials: true",
                recommendation="Never use wildcard with credentials=true",
                owasp_category="A05",
                cwe_id="CWE-942",
            ))
        else:
            findings.append(Finding(
                category=Category.CORS,
                severity=Severity.MEDIUM,
                title="Wildcard CORS Origin",
                description="Access-Control-Allow-Origin is set to *",
                evidence="Access-Control-Allow-Origin: *",
                recommendation="Specify explicit allowed origins instead of wildcard",
                owasp_category="A05",
                cwe_id="CWE-942",
            ))

    if acao and acao == origin:
        evidence = f"Access-Control-Allow-Origin: {acao}"
        if credentials:
            evidence += " (credentials allowed)"
        findings.append(Finding(
            category=Category.CORS,
            severity=Severity.CRITICAL,
            title="CORS Reflects Origin",
            description="Server reflects any origin, allowing cross-origin requests from anywhere",
            evidence=evidence,
            recommendation="Validate origins against a whitelist",
            owasp_category="A05",
            cwe_id="CWE-942",
        ))

    return findings


class CORSAnalyzer(BaseProbe):
    """
    Preflight-based CORS check.

    Probe config:
        timeout: Request timeout in seconds. Default 5.
        origin:  Origin to send. Default https://evil-attacker.com.
    """

    @property
    def name(self) -> str:
        return "cors"

    async def execute(self, target: ScanTarget, config: Dict[str, Any]) -> ProbeResult:
        result = ProbeResult(probe_name=self.name)
        origin = config.get("origin", ADVERSARIAL_ORIGIN)

        try:
            async with build_client(config, timeout=TIMEOUT) as client:
                resp = await client.options(
                    target.url,
                    headers={
                        "Origin": origin,
                        "Access-Control-Request-Method": "GET",
                    },
                )
        except httpx.HTTPError as e:
            message = str(e) or type(e).__name__
            logger.info(f"CORS preflight failed for {target.url}: {message}")
            result.success = False
            result.error = message
            return result

        headers = lower_headers(resp)
        result.data = {
            "status_code": resp.status_code,
            "headers": headers,
            "origin_sent": origin,
        }
        result.findings = evaluate_cors(headers, origin)
        return result
