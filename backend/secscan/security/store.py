# secscan/security/store.py
"""
Scan-record store.

Persists scans and their findings through Flask-SQLAlchemy. Write failures
are logged and swallowed: a scan response never fails because the record
could not be saved (the caller simply gets scanId=None).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from secscan.extensions import db
from secscan.models import SecurityFinding, SecurityScan, now_utc
from secscan.scanner.orchestrator import ScanResult

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


def _iso(dt) -> Optional[str]:
    return dt.isoformat() + "Z" if dt else None


def _finding_to_dict(f: SecurityFinding) -> dict:
    return {
        "id": f.id,
        "category": f.category,
        "severity": f.severity,
        "title": f.title,
        "description": f.description,
        "evidence": f.evidence,
        "recommendation": f.recommendation,
        "owasp_category": f.owasp_category,
        "cwe_id": f.cwe_id,
    }


def _scan_to_dict(scan: SecurityScan, include_details: bool = False) -> dict:
    data = {
        "id": scan.id,
        "url": scan.target_url,
        "scanType": scan.scan_type,
        "status": scan.status,
        "securityScore": scan.security_score,
        "summary": scan.summary_json or {},
        "errorMessage": scan.error_message,
        "startedAt": _iso(scan.started_at),
        "completedAt": _iso(scan.completed_at),
    }
    if include_details:
        data["results"] = scan.results_json or {}
        data["recommendations"] = scan.recommendations_json or []
        data["findings"] = [_finding_to_dict(f) for f in scan.findings]
    return data


class ScanStore:
    """Thin persistence wrapper around SecurityScan / SecurityFinding."""

    def create_scan(self, url: str, scan_type: str) -> Optional[int]:
        """Insert a pending scan. Returns its id, or None if the insert failed."""
        try:
            scan = SecurityScan(target_url=url, scan_type=scan_type, status="pending")
            db.session.add(scan)
            db.session.commit()
            return scan.id
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Failed to create scan record for {url}")
            return None

    def complete_scan(self, scan_id: Optional[int], result: ScanResult) -> bool:
        """Store the final result and its findings."""
        if scan_id is None:
            return False
        try:
            scan = db.session.get(SecurityScan, scan_id)
            if not scan:
                logger.warning(f"Scan record {scan_id} disappeared before completion")
                return False

            body = result.to_dict()
            scan.status = result.status
            scan.security_score = result.security_score
            scan.summary_json = result.summary
            scan.results_json = body["results"]
            scan.recommendations_json = result.recommendations
            scan.error_message = (result.error or "")[:500] or None
            scan.completed_at = now_utc()

            for f in result.findings:
                scan.findings.append(SecurityFinding(
                    category=f.category.value,
                    severity=f.severity.value,
                    title=f.title[:255],
                    description=(f.description or "")[:2000],
                    evidence=f.evidence[:2000] if f.evidence else None,
                    recommendation=f.recommendation[:2000] if f.recommendation else None,
                    owasp_category=f.owasp_category,
                    cwe_id=f.cwe_id,
                ))

            db.session.commit()
            logger.info(f"Stored scan {scan_id}: {len(result.findings)} findings")
            return True
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Failed to store results for scan {scan_id}")
            return False

    def fail_scan(self, scan_id: Optional[int], error: str) -> bool:
        if scan_id is None:
            return False
        try:
            scan = db.session.get(SecurityScan, scan_id)
            if not scan:
                return False
            scan.status = "failed"
            scan.error_message = (error or "")[:500]
            scan.completed_at = now_utc()
            db.session.commit()
            return True
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Failed to mark scan {scan_id} as failed")
            return False

    def list_scans(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Newest first, without findings."""
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        scans = (
            SecurityScan.query
            .order_by(SecurityScan.started_at.desc(), SecurityScan.id.desc())
            .limit(limit)
            .all()
        )
        return [_scan_to_dict(s) for s in scans]

    def get_scan(self, scan_id: int) -> Optional[Dict[str, Any]]:
        """Scan with results, recommendations and findings, or None."""
        scan = db.session.get(SecurityScan, scan_id)
        if not scan:
            return None
        return _scan_to_dict(scan, include_details=True)
