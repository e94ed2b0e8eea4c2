# secscan/scanner/analyzers/__init__.py
"""
Scan probes.
Each probe talks to the target, collects raw observations and turns them
into Findings with severity, OWASP/CWE tags and remediation guidance.
Probes never share state and never see each other's output.
"""
from secscan.scanner.analyzers.header_analyzer import HeaderAnalyzer
from secscan.scanner.analyzers.tls_inspector import TLSInspector
from secscan.scanner.analyzers.vuln_prober import VulnerabilityProber
from secscan.scanner.analyzers.cors_analyzer import CORSAnalyzer
from secscan.scanner.analyzers.jwt_analyzer import JWTAnalysis, analyze_jwt

# Registry of URL probes, keyed by module name.
# ORDER MATTERS: findings are merged in this order regardless of which
# probe finishes first.
ALL_PROBES = {
    "headers": HeaderAnalyzer,
    "ssl": TLSInspector,
    "vulnerabilities": VulnerabilityProber,
    "cors": CORSAnalyzer,
}

__all__ = [
    "HeaderAnalyzer", "TLSInspector", "VulnerabilityProber",
    "CORSAnalyzer", "JWTAnalysis", "analyze_jwt", "ALL_PROBES",
]
