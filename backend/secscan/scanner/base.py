# secscan/scanner/base.py
"""
Base classes for the secscan security scanning pipeline.

Architecture:
    ScanRequest flows through:  Orchestrator → Probes → Scorer

BaseProbe:  Talks to the target (HTTP, TLS), collects raw observations and
            turns them into normalized Findings. Every probe is independent
            and target-only; probes never share state.

Finding:    The normalized unit of scan output. Immutable; a scan owns an
            ordered list of them.

This separation means:
  - The orchestrator can iterate a registry of probes instead of
    hand-wiring each call (and run them concurrently)
  - Each probe can fail independently without crashing the whole scan
  - The evaluation step of every probe is a pure function that can be
    unit-tested without the network
"""

from __future__ import annotations

import enum
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


Clock = Callable[[], datetime]


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

class Severity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """0 for critical … 4 for info. Lower rank sorts first."""
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = [
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
]


class Category(str, enum.Enum):
    SECURITY_HEADERS = "security_headers"
    SSL = "ssl"
    SQL_INJECTION = "sql_injection"
    XSS = "xss"
    SENSITIVE_DATA_EXPOSURE = "sensitive_data_exposure"
    SECURITY_MISCONFIGURATION = "security_misconfiguration"
    CORS = "cors"
    JWT = "jwt"
    INFORMATION_DISCLOSURE = "information_disclosure"
    CONNECTION = "connection"


# ---------------------------------------------------------------------------
# Data structures: these flow through the entire pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Finding:
    """
    A single normalized scan observation.

    Fields:
        category:       Which class of issue this is (see Category).
        severity:       critical > high > medium > low > info.
        title:          Short human-readable title, e.g. "Missing Content-Security-Policy".
        description:    What was observed.
        evidence:       Optional raw evidence (payload used, header value, ...).
        recommendation: Optional remediation guidance. Only findings with a
                        recommendation show up in the ranked recommendations.
        owasp_category: Optional OWASP Top 10 tag, e.g. "A05".
        cwe_id:         Optional CWE reference, e.g. "CWE-89".
    """
    category: Category
    severity: Severity
    title: str
    description: str
    evidence: Optional[str] = None
    recommendation: Optional[str] = None
    owasp_category: Optional[str] = None
    cwe_id: Optional[str] = None

    def __post_init__(self):
        # Accept plain strings from callers and normalize to the enums
        object.__setattr__(self, "category", Category(self.category))
        object.__setattr__(self, "severity", Severity(self.severity))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "evidence": self.evidence,
            "recommendation": self.recommendation,
            "owasp_category": self.owasp_category,
            "cwe_id": self.cwe_id,
        }


@dataclass
class ProbeResult:
    """
    Standardized output from any probe run.

    Every probe (headers, ssl, vulnerabilities, cors) returns one of these.
    The orchestrator stores it in ScanResult.results[probe_name].

    Fields:
        probe_name:       Which probe produced this.
        success:          Did the probe reach the target and complete?
        data:             Raw observations; structure varies per probe.
                          headers: {"status_code": 200, "headers": {...}}
                          ssl:     {"certificate": {...}, "connection": {...}}
        findings:         Findings produced by this probe, in discovery order.
        error:            Error message when success is False.
        duration_seconds: Wall-clock time the probe took.
    """
    probe_name: str
    success: bool = True
    data: Dict[str, Any] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "findings": [f.to_dict() for f in self.findings],
            "duration": self.duration_seconds,
        }
        if self.error:
            out["error"] = self.error
        out.update(self.data)
        return out


@dataclass(frozen=True)
class ScanTarget:
    """Parsed target handed to every probe."""
    url: str
    scheme: str
    hostname: str
    port: int
    origin: str

    @property
    def is_https(self) -> bool:
        return self.scheme == "https"


DEFAULT_PORTS = {"http": 80, "https": 443}


def parse_target(url: str) -> ScanTarget:
    """
    Parse an absolute http/https URL into a ScanTarget.
    Raises ValueError for anything else.
    """
    parsed = urlsplit((url or "").strip())
    scheme = (parsed.scheme or "").lower()
    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"URL must use http or https, got '{parsed.scheme or url}'")
    if not parsed.hostname:
        raise ValueError(f"URL has no host: '{url}'")

    # .port raises ValueError itself for out-of-range ports
    port = parsed.port or DEFAULT_PORTS[scheme]

    # Origin drops any userinfo; IPv6 literals need their brackets back
    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    explicit_port = f":{parsed.port}" if parsed.port else ""

    return ScanTarget(
        url=url.strip(),
        scheme=scheme,
        hostname=parsed.hostname,
        port=port,
        origin=f"{scheme}://{host}{explicit_port}",
    )


def connection_failed_finding(message: str) -> Finding:
    """The single finding a probe emits when it cannot reach the target."""
    return Finding(
        category=Category.CONNECTION,
        severity=Severity.CRITICAL,
        title="Connection Failed",
        description=f"Unable to connect: {message}",
        recommendation="Verify the URL is accessible",
    )


# ---------------------------------------------------------------------------
# Abstract base class
# ---------------------------------------------------------------------------

class BaseProbe(ABC):
    """
    Abstract base for scan probes.

    To create a new probe:
        1. Subclass BaseProbe
        2. Set the `name` property (e.g., "headers", "ssl")
        3. Implement `async execute(target, config) -> ProbeResult`
        4. Optionally override `can_scan()` (e.g., https-only probes)
        5. Register it in secscan/scanner/analyzers/__init__.py

    The base class handles automatically:
        - Timing (duration_seconds is set automatically)
        - Error catching (exceptions become a ProbeResult with success=False
          and a module-scoped connection finding)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock: Clock = clock or now_utc

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique probe identifier. Used as key in ScanResult.results."""
        ...

    def can_scan(self, target: ScanTarget) -> bool:
        """Check if this probe applies to the target. Override to restrict."""
        return True

    def failure_finding(self, message: str) -> Finding:
        """Finding emitted when execute() raises. Override for a module-specific one."""
        return connection_failed_finding(message)

    async def run(self, target: ScanTarget, config: Dict[str, Any] | None = None) -> ProbeResult:
        """
        Execute the probe with automatic timing and error handling.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.

        Returns ProbeResult, always, even on failure. Task cancellation
        (scan deadline or caller cancel) is the only thing that propagates.
        """
        config = config or {}
        start = time.monotonic()

        try:
            result = await self.execute(target, config)
            result.probe_name = self.name
        except Exception as e:
            logger.exception(f"Probe '{self.name}' failed for {target.url}")
            message = f"{type(e).__name__}: {str(e)}"
            result = ProbeResult(
                probe_name=self.name,
                success=False,
                error=message,
                findings=[self.failure_finding(message)],
            )
        finally:
            elapsed = round(time.monotonic() - start, 2)

        result.duration_seconds = elapsed
        return result

    @abstractmethod
    async def execute(self, target: ScanTarget, config: Dict[str, Any]) -> ProbeResult:
        """
        Perform the actual probing. Override this in subclasses.

        Args:
            target: Parsed ScanTarget (url, scheme, hostname, port, origin).
            config: Probe-specific config from the orchestrator, e.g.
                    {"timeout": 10, "max_redirects": 3, "transport": ...}

        Returns:
            ProbeResult with raw observations in result.data and findings.
        """
        ...
