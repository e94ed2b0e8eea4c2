# secscan/scanner/__init__.py
"""
secscan Detection Engine

Usage:
    from secscan.scanner import ScanOrchestrator, ScanRequest

    orchestrator = ScanOrchestrator()
    result = orchestrator.execute(ScanRequest("https://example.com", "full"))

Architecture:
    Orchestrator
    ├── Probes (collect observations → produce findings, run concurrently)
    │   ├── HeaderAnalyzer       — HTTP security headers
    │   ├── TLSInspector         — certificate & negotiated TLS (https only)
    │   ├── VulnerabilityProber  — SQLi / XSS / sensitive data & paths
    │   └── CORSAnalyzer         — preflight with an attacker origin
    │
    └── Scorer (utils/scoring.py)
        ├── calc_security_score  — 100 minus severity penalties
        ├── severity_summary     — counts per severity
        └── build_recommendations — ranked remediation list

    analyze_jwt() runs out-of-band on a raw token.
"""

from secscan.scanner.orchestrator import (
    SCAN_TYPES,
    ScanOrchestrator,
    ScanRequest,
    ScanResult,
    run_scan,
)

__all__ = ["SCAN_TYPES", "ScanOrchestrator", "ScanRequest", "ScanResult", "run_scan"]
