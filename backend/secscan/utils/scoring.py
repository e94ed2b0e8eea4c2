# File: secscan/utils/scoring.py
# =============================================================================
# Centralized Security Score Calculator
# =============================================================================
# Single source of truth for turning a finding list into a score, a grade,
# a severity summary and ranked recommendations.
# Used by: scanner/orchestrator, security/routes, security/store.
#
# Scale (higher is better):
#   100     = no findings
#   90–99   = minor findings only
#   < 60    = criticals present or many highs
#   0       = floor, the score never goes negative
#
# Every finding counts, including info.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from secscan.scanner.base import SEVERITY_ORDER, Finding, Severity

SEVERITY_PENALTY = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 8,
    Severity.LOW: 3,
    Severity.INFO: 1,
}

MAX_RECOMMENDATIONS = 10


def calc_security_score(findings: Iterable[Finding]) -> int:
    """
    Calculate a security score from 0–100.

    Starts at 100 and subtracts a fixed penalty per finding:
      critical 25, high 15, medium 8, low 3, info 1.
    Clamped at 0. An empty list scores 100.
    """
    score = 100
    for finding in findings:
        score -= SEVERITY_PENALTY[Severity(finding.severity)]
    return max(0, score)


def security_grade(score: int) -> tuple[str, str]:
    """
    Convert a numeric security score to a letter grade and description.
    Returns: (grade, description)
    """
    if score >= 90:
        return "A", "Excellent — minimal issues"
    elif score >= 75:
        return "B", "Good — low-severity findings only"
    elif score >= 60:
        return "C", "Moderate — some concerning findings"
    elif score >= 40:
        return "D", "Significant — high-severity findings present"
    else:
        return "F", "Critical — immediate remediation required"


def severity_summary(findings: Iterable[Finding]) -> Dict[str, int]:
    """Count findings per severity. Always includes every level plus `total`."""
    counts = {sev.value: 0 for sev in SEVERITY_ORDER}
    for finding in findings:
        counts[Severity(finding.severity).value] += 1
    counts["total"] = sum(counts.values())
    return counts


def build_recommendations(
    findings: Iterable[Finding],
    limit: int = MAX_RECOMMENDATIONS,
) -> List[Dict[str, Any]]:
    """
    Ranked remediation list.

    Keeps findings that carry a recommendation, orders them by severity
    (stable, so discovery order breaks ties) and truncates to `limit`.
    """
    actionable = [f for f in findings if f.recommendation]
    actionable.sort(key=lambda f: Severity(f.severity).rank)

    return [
        {
            "priority": Severity(f.severity).value,
            "title": f.title,
            "action": f.recommendation,
            "category": f.category.value,
        }
        for f in actionable[:limit]
    ]
