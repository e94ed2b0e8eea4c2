# secscan/scanner/orchestrator.py
"""
Scan Orchestrator — the brain of the secscan engine.

Coordinates the scan pipeline for one target URL:

    1. Parse the target and pick the probe subset for the scan type
    2. Run the probes concurrently (bounded by a semaphore)
    3. Enforce the overall scan deadline / caller cancellation
    4. Merge findings in fixed module order
    5. Score, summarize and rank recommendations

The orchestrator performs no network I/O itself; all of it happens inside
the probes. Nothing is persisted here; the HTTP layer hands the ScanResult
to the ScanStore.

Usage:
    from secscan.scanner import ScanOrchestrator, ScanRequest

    orchestrator = ScanOrchestrator()
    result = orchestrator.execute(ScanRequest("https://example.com"))
    body = result.to_dict()
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from secscan.scanner.analyzers import ALL_PROBES
from secscan.scanner.analyzers.vuln_prober import PROBE_MODES
from secscan.scanner.base import (
    BaseProbe,
    Category,
    Clock,
    Finding,
    ProbeResult,
    ScanTarget,
    Severity,
    now_utc,
    parse_target,
)
from secscan.utils.scoring import (
    build_recommendations,
    calc_security_score,
    security_grade,
    severity_summary,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 4
DEFAULT_DEADLINE_SECONDS = 60

STATUS_COMPLETED = "completed"
STATUS_TIMED_OUT = "timed_out"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

# Scan type → probes to run. "ssl" is further limited to https targets.
SCAN_TYPE_MODULES: Dict[str, List[str]] = {
    "full": ["headers", "ssl", "vulnerabilities", "cors"],
    "headers": ["headers"],
    "ssl": ["ssl"],
    "vulnerabilities": ["vulnerabilities"],
}

SCAN_TYPES = tuple(SCAN_TYPE_MODULES)


# ---------------------------------------------------------------------------
# Request / result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanRequest:
    """
    A validated scan request.

    Raises ValueError for a non-http(s) URL or an unknown scan type.
    """
    url: str
    scan_type: str = "full"

    def __post_init__(self):
        if self.scan_type not in SCAN_TYPE_MODULES:
            raise ValueError(
                f"Unknown scan type '{self.scan_type}'. "
                f"Expected one of: {', '.join(SCAN_TYPES)}"
            )
        parse_target(self.url)

    @property
    def target(self) -> ScanTarget:
        return parse_target(self.url)


@dataclass
class ScanResult:
    url: str
    scan_type: str
    status: str = STATUS_COMPLETED
    results: Dict[str, ProbeResult] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    security_score: int = 100
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    scan_id: Optional[int] = None

    @property
    def grade(self) -> str:
        return security_grade(self.security_score)[0]

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "scanId": self.scan_id,
            "url": self.url,
            "scanType": self.scan_type,
            "status": self.status,
            "securityScore": self.security_score,
            "grade": self.grade,
            "summary": self.summary,
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "findings": [f.to_dict() for f in self.findings],
            "recommendations": self.recommendations,
            "duration": self.duration_seconds,
        }
        if self.error:
            out["error"] = self.error
        return out


def _unfinished_result(name: str, title: str, description: str) -> ProbeResult:
    return ProbeResult(
        probe_name=name,
        success=False,
        error=description,
        findings=[Finding(
            category=Category.CONNECTION,
            severity=Severity.INFO,
            title=title,
            description=description,
        )],
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ScanOrchestrator:
    """
    Runs the probes for one scan and builds the ScanResult.

    Typical usage:
        orchestrator = ScanOrchestrator(deadline_seconds=30)
        result = orchestrator.execute(ScanRequest(url, "full"))

    Use one instance per scan: cancel() applies to whatever scan the
    instance is running (or will run next) and is not reset.

    Args:
        max_concurrent:   Probes allowed in flight at once.
        deadline_seconds: Overall scan deadline. Unfinished probes are
                          cancelled and reported as timed out.
        probe_mode:       "first_match" or "exhaustive" (Vulnerability Prober).
        probe_config:     Extra config handed to every probe (e.g. "transport"
                          for tests, "timeout" to override per-request timeouts).
        probes:           Probe registry override. Defaults to ALL_PROBES.
        clock:            Injected clock for certificate/JWT time math.
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        probe_mode: str = "first_match",
        probe_config: Optional[Dict[str, Any]] = None,
        probes: Optional[Dict[str, Type[BaseProbe]]] = None,
        clock: Optional[Clock] = None,
    ):
        if probe_mode not in PROBE_MODES:
            raise ValueError(
                f"probe_mode must be one of {', '.join(PROBE_MODES)}, got '{probe_mode}'"
            )
        self.max_concurrent = max(1, int(max_concurrent))
        self.deadline_seconds = deadline_seconds
        self.probe_mode = probe_mode
        self.probe_config = dict(probe_config or {})
        self.probes = probes or ALL_PROBES
        self.clock: Clock = clock or now_utc

        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_requested = False

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------

    def execute(self, request: ScanRequest) -> ScanResult:
        """
        Synchronous entry point. Runs the scan on a private event loop.

        Raises:
            Nothing; all errors are caught and recorded in the result.
        """
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self.run(request))
        finally:
            loop.close()

    async def run(self, request: ScanRequest) -> ScanResult:
        """Async entry point. Same contract as execute()."""
        total_start = time.monotonic()
        result = ScanResult(
            url=request.url,
            scan_type=request.scan_type,
            started_at=self.clock(),
        )

        try:
            target = request.target
            modules = self.modules_for(request.scan_type, target)
            logger.info(
                f"Scan started for {target.url} "
                f"(type={request.scan_type}, modules={modules})"
            )
            result.status = await self._run_modules(target, modules, result.results)
        except Exception as e:
            logger.exception(f"Scan failed for {request.url}")
            result.status = STATUS_FAILED
            result.error = f"{type(e).__name__}: {str(e)}"
        finally:
            with self._lock:
                self._loop = None
                self._tasks = {}

        # Fixed merge order, independent of completion order
        ordered = [name for name in self.probes if name in result.results]
        result.results = {name: result.results[name] for name in ordered}
        for name in ordered:
            result.findings.extend(result.results[name].findings)

        result.security_score = calc_security_score(result.findings)
        result.summary = severity_summary(result.findings)
        result.recommendations = build_recommendations(result.findings)
        result.finished_at = self.clock()
        result.duration_seconds = round(time.monotonic() - total_start, 2)

        logger.info(
            f"Scan {result.status} for {request.url}: "
            f"score={result.security_score}, findings={len(result.findings)}, "
            f"duration={result.duration_seconds}s"
        )
        return result

    def cancel(self) -> None:
        """
        Cancel the running scan. Safe to call from any thread.

        Probes that have not finished are cancelled immediately (their
        connections are closed by task cancellation) and reported with a
        "Check Cancelled" finding.
        """
        with self._lock:
            self._cancel_requested = True
            loop = self._loop
            tasks = list(self._tasks.values())

        if loop is None or loop.is_closed():
            return
        logger.info("Scan cancellation requested")
        for task in tasks:
            loop.call_soon_threadsafe(task.cancel)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    def modules_for(self, scan_type: str, target: ScanTarget) -> List[str]:
        """Probe names to run for this scan type and target, in merge order."""
        modules = []
        for name in SCAN_TYPE_MODULES[scan_type]:
            probe_cls = self.probes.get(name)
            if not probe_cls:
                logger.warning(f"Unknown probe: {name}")
                continue
            if not probe_cls(clock=self.clock).can_scan(target):
                logger.info(f"Skipping probe '{name}' for {target.url}")
                continue
            modules.append(name)
        return modules

    def _config_for(self, name: str) -> Dict[str, Any]:
        config = dict(self.probe_config)
        config.setdefault("probe_mode", self.probe_mode)
        return config

    async def _run_modules(
        self,
        target: ScanTarget,
        modules: List[str],
        results: Dict[str, ProbeResult],
    ) -> str:
        """Run probes into `results`. Returns the scan status."""
        if not modules:
            return STATUS_COMPLETED

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def run_one(name: str) -> None:
            probe = self.probes[name](clock=self.clock)
            async with semaphore:
                logger.debug(f"Running probe '{name}' for {target.url}")
                probe_result = await probe.run(target, self._config_for(name))
            results[name] = probe_result
            if probe_result.success:
                logger.info(f"Probe '{name}' completed in {probe_result.duration_seconds}s")
            else:
                logger.warning(f"Probe '{name}' failed: {probe_result.error}")

        tasks = {name: asyncio.ensure_future(run_one(name)) for name in modules}
        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._tasks = tasks
            cancel_now = self._cancel_requested
        if cancel_now:
            for task in tasks.values():
                task.cancel()

        try:
            _done, pending = await asyncio.wait(tasks.values(), timeout=self.deadline_seconds)
        except asyncio.CancelledError:
            # The caller cancelled run() itself; take the probes down with it
            for task in tasks.values():
                task.cancel()
            raise

        timed_out = bool(pending)
        if pending:
            logger.warning(
                f"Scan deadline of {self.deadline_seconds}s reached for {target.url}; "
                f"cancelling {len(pending)} probe(s)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        with self._lock:
            cancelled = self._cancel_requested

        for name, task in tasks.items():
            if name in results:
                continue
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
            if timed_out and not cancelled:
                results[name] = _unfinished_result(
                    name,
                    "Check Timed Out",
                    f"The {name} check did not finish within the "
                    f"{self.deadline_seconds}s scan deadline",
                )
            else:
                results[name] = _unfinished_result(
                    name,
                    "Check Cancelled",
                    f"The {name} check was cancelled before it finished",
                )

        if cancelled:
            return STATUS_CANCELLED
        if timed_out:
            return STATUS_TIMED_OUT
        return STATUS_COMPLETED


def run_scan(url: str, scan_type: str = "full", **kwargs) -> ScanResult:
    """
    Convenience wrapper: build a request, run it synchronously.

    Raises ValueError for an invalid URL, scan type or probe mode.
    """
    return ScanOrchestrator(**kwargs).execute(ScanRequest(url, scan_type))
