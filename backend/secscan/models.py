from __future__ import annotations

from datetime import datetime, timezone
from .extensions import db


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SecurityScan(db.Model):
    __tablename__ = "security_scan"

    id = db.Column(db.Integer, primary_key=True)

    target_url = db.Column(db.String(2048), nullable=False)
    scan_type = db.Column(db.String(20), nullable=False, default="full")        # full, headers, ssl, vulnerabilities

    # pending → completed | timed_out | cancelled | failed
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    security_score = db.Column(db.Integer, nullable=True)

    summary_json = db.Column(db.JSON, nullable=True)            # {"critical": 1, ..., "total": 7}
    results_json = db.Column(db.JSON, nullable=True)            # per-module raw results
    recommendations_json = db.Column(db.JSON, nullable=True)    # ranked remediation list
    error_message = db.Column(db.String(500), nullable=True)

    started_at = db.Column(db.DateTime, nullable=False, default=now_utc, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    findings = db.relationship(
        "SecurityFinding",
        back_populates="scan",
        cascade="all, delete-orphan",
        order_by="SecurityFinding.id",
    )


class SecurityFinding(db.Model):
    __tablename__ = "security_finding"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = db.Column(
        db.Integer,
        db.ForeignKey("security_scan.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    category = db.Column(db.String(50), nullable=False)             # security_headers, ssl, sql_injection, xss, cors, jwt, ...
    severity = db.Column(db.String(20), nullable=False, default="info")
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(2000), nullable=False, default="")
    evidence = db.Column(db.String(2000), nullable=True)
    recommendation = db.Column(db.String(2000), nullable=True)
    owasp_category = db.Column(db.String(10), nullable=True)        # A01 … A10
    cwe_id = db.Column(db.String(20), nullable=True)                # CWE-89, CWE-79, etc.

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)

    scan = db.relationship("SecurityScan", back_populates="findings")
