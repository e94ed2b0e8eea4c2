# secscan/scanner/analyzers/vuln_prober.py
"""
Vulnerability Prober — lightweight, payload-driven checks.

Three passes, each bounded and best-effort:

    1. SQL injection    — append `id=<payload>` and look for database error
                          signatures in the response body.
    2. Reflected XSS    — append `q=<payload>` and look for the raw payload
                          echoed back verbatim.
    3. Sensitive data   — scan the base page body for secret-looking
                          patterns, then request a short list of well-known
                          sensitive paths on the origin.

Individual request failures are inconclusive, not errors: they are logged at
debug level and the pass moves on. The prober therefore always reports
success=True; what it tried is recorded in result.data.

Probe modes:
    first_match  — the injection and XSS passes stop at the first payload
                   that confirms (default)
    exhaustive   — every payload is tried, one finding per confirming payload

Tables (SQL_PAYLOADS, XSS_PAYLOADS, DB_ERROR_SIGNATURES, SENSITIVE_PATTERNS,
SENSITIVE_PATHS) are plain data; the evaluators below are pure functions.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern

import httpx

from secscan.scanner.base import (
    BaseProbe,
    Category,
    Finding,
    ProbeResult,
    ScanTarget,
    Severity,
)
from secscan.scanner.http_client import build_client, response_text, with_query_param

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5
PATH_TIMEOUT = 3
MAX_PATH_CONCURRENCY = 4

PROBE_MODE_FIRST_MATCH = "first_match"
PROBE_MODE_EXHAUSTIVE = "exhaustive"
PROBE_MODES = (PROBE_MODE_FIRST_MATCH, PROBE_MODE_EXHAUSTIVE)


# ---------------------------------------------------------------------------
# Payload / pattern tables
# ---------------------------------------------------------------------------

SQL_PAYLOADS = [
    "' OR '1'='1",
    "1' UNION SELECT NULL--",
    "admin'--",
    "' OR 1=1--",
    "'; DROP TABLE users--",
]

XSS_PAYLOADS = [
    "<script>alert('XSS')</script>",
    "<img src=x onerror=alert('XSS')>",
    "javascript:alert('XSS')",
    "<svg onload=alert('XSS')>",
]

# Matched against the lower-cased body
DB_ERROR_SIGNATURES = [
    "sql",
    "mysql",
    "syntax error",
    "ora-",
    "postgresql",
    "sqlite",
]


@dataclass(frozen=True)
class SensitivePattern:
    name: str
    pattern: Pattern[str]


SENSITIVE_PATTERNS: List[SensitivePattern] = [
    SensitivePattern("API Key", re.compile(r"api[_-]?key[\"\s:=]+[\"']?([a-zA-Z0-9_-]{20,})", re.IGNORECASE)),
    SensitivePattern("Stripe Key", re.compile(r"sk_live_[a-zA-Z0-9]{24,}", re.IGNORECASE)),
    SensitivePattern("AWS Key", re.compile(r"AKIA[0-9A-Z]{16}", re.IGNORECASE)),
    SensitivePattern("Private Key", re.compile(r"-----BEGIN (?:RSA )?PRIVATE KEY-----", re.IGNORECASE)),
    SensitivePattern("Password Field", re.compile(r"[\"']password[\"']\s*:\s*[\"'][^\"']+[\"']", re.IGNORECASE)),
    SensitivePattern("Secret Token", re.compile(r"secret[_-]?token[\"\s:=]+[\"']?([a-zA-Z0-9_-]{20,})", re.IGNORECASE)),
]

SENSITIVE_PATHS = [
    "/.env",
    "/.git/config",
    "/config.json",
    "/wp-config.php",
    "/admin",
    "/debug",
    "/.htaccess",
    "/backup.sql",
]


# ---------------------------------------------------------------------------
# Pure evaluators
# ---------------------------------------------------------------------------

def match_db_error(body: str) -> Optional[str]:
    """Return the first database error signature found in body, or None."""
    lowered = body.lower()
    for signature in DB_ERROR_SIGNATURES:
        if signature in lowered:
            return signature
    return None


def is_reflected(body: str, payload: str) -> bool:
    """True if the raw (unencoded) payload appears verbatim in body."""
    return payload in body


def redact(value: str, keep: int = 4) -> str:
    """Keep the first `keep` characters, mask the rest."""
    value = value.strip()
    if len(value) <= keep:
        return "*" * len(value)
    return value[:keep] + "*" * min(len(value) - keep, 12)


def scan_sensitive_patterns(body: str) -> List[Finding]:
    """One finding per SENSITIVE_PATTERNS entry that matches body."""
    findings: List[Finding] = []
    for entry in SENSITIVE_PATTERNS:
        match = entry.pattern.search(body)
        if not match:
            continue
        findings.append(Finding(
            category=Category.SENSITIVE_DATA_EXPOSURE,
            severity=Severity.CRITICAL,
            title=f"{entry.name} Possibly Exposed",
            description=f"Response may contain sensitive data: {entry.name}",
            evidence=f"Match: {redact(match.group(0))}",
            recommendation="Remove sensitive data from responses and use environment variables",
            owasp_category="A01",
            cwe_id="CWE-200",
        ))
    return findings


def sql_injection_finding(payload: str, signature: str) -> Finding:
    return Finding(
        category=Category.SQL_INJECTION,
        severity=Severity.CRITICAL,
        title="Possible SQL Injection Vulnerability",
        description="Application may be vulnerable to SQL injection attacks",
        evidence=f"Payload: {payload} (matched '{signature}')",
        recommendation="Use parameterized queries and input validation",
        owasp_category="A03",
        cwe_id="CWE-89",
    )


def xss_finding(payload: str) -> Finding:
    return Finding(
        category=Category.XSS,
        severity=Severity.HIGH,
        title="Possible Cross-Site Scripting (XSS)",
        description="User input is reflected without proper encoding",
        evidence=f"Payload: {payload}",
        recommendation="Encode all user input before rendering",
        owasp_category="A03",
        cwe_id="CWE-79",
    )


def sensitive_path_finding(path: str) -> Finding:
    return Finding(
        category=Category.SECURITY_MISCONFIGURATION,
        severity=Severity.HIGH,
        title="Sensitive Endpoint Accessible",
        description=f"{path} is publicly accessible",
        evidence=f"GET {path} returned 200",
        recommendation="Restrict access to sensitive endpoints",
        owasp_category="A05",
        cwe_id="CWE-538",
    )


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

class VulnerabilityProber(BaseProbe):
    """
    Payload-driven SQLi / XSS / sensitive data checks.

    Probe config:
        probe_mode: "first_match" (default) or "exhaustive".
        timeout:    Overrides the per-request timeouts (5s probes, 3s paths).
    """

    @property
    def name(self) -> str:
        return "vulnerabilities"

    async def execute(self, target: ScanTarget, config: Dict[str, Any]) -> ProbeResult:
        mode = config.get("probe_mode", PROBE_MODE_FIRST_MATCH)
        if mode not in PROBE_MODES:
            # Configuration error, not a property of the target: no findings
            logger.error(f"Unknown probe mode '{mode}', vulnerability checks skipped")
            return ProbeResult(
                probe_name=self.name,
                success=False,
                error=f"Unknown probe mode '{mode}'",
            )
        stop_on_first = mode == PROBE_MODE_FIRST_MATCH

        findings: List[Finding] = []
        payloads_tried: Dict[str, List[str]] = {"sql_injection": [], "xss": []}

        async with build_client(config, timeout=PROBE_TIMEOUT) as client:
            # 1. SQL injection
            for payload in SQL_PAYLOADS:
                payloads_tried["sql_injection"].append(payload)
                body = await self._fetch_body(client, with_query_param(target.url, "id", payload))
                if body is None:
                    continue
                signature = match_db_error(body)
                if signature:
                    findings.append(sql_injection_finding(payload, signature))
                    if stop_on_first:
                        break

            # 2. Reflected XSS
            for payload in XSS_PAYLOADS:
                payloads_tried["xss"].append(payload)
                body = await self._fetch_body(client, with_query_param(target.url, "q", payload))
                if body is None:
                    continue
                if is_reflected(body, payload):
                    findings.append(xss_finding(payload))
                    if stop_on_first:
                        break

            # 3a. Secrets in the base page
            body = await self._fetch_body(client, target.url)
            if body is not None:
                findings.extend(scan_sensitive_patterns(body))

        # 3b. Well-known sensitive paths: no redirects, short timeout
        exposed = await self._check_paths(target, config)
        findings.extend(sensitive_path_finding(path) for path in exposed)

        result = ProbeResult(probe_name=self.name)
        result.findings = findings
        result.data = {
            "probe_mode": mode,
            "payloads_tried": payloads_tried,
            "paths_checked": list(SENSITIVE_PATHS),
            "exposed_paths": exposed,
        }
        return result

    async def _fetch_body(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        """GET url and return its body; None when the request fails."""
        try:
            resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Probe request failed for {url}: {type(e).__name__}: {e}")
            return None
        return response_text(resp)

    async def _check_paths(self, target: ScanTarget, config: Dict[str, Any]) -> List[str]:
        """Return SENSITIVE_PATHS that answer 200 with a non-empty body, in table order."""
        semaphore = asyncio.Semaphore(MAX_PATH_CONCURRENCY)

        async with build_client(config, timeout=PATH_TIMEOUT, follow_redirects=False) as client:

            async def check(path: str) -> bool:
                url = f"{target.origin}{path}"
                async with semaphore:
                    try:
                        # One non-empty chunk is enough; bodies can be whole database dumps
                        async with client.stream("GET", url) as resp:
                            if resp.status_code != 200:
                                return False
                            async for chunk in resp.aiter_bytes():
                                if chunk:
                                    return True
                            return False
                    except httpx.HTTPError as e:
                        logger.debug(f"Sensitive path check failed for {url}: {type(e).__name__}")
                        return False

            hits = await asyncio.gather(*(check(path) for path in SENSITIVE_PATHS))

        return [path for path, hit in zip(SENSITIVE_PATHS, hits) if hit]
