# secscan/security/routes.py
"""
Security scanning API routes.

Endpoints:
    POST /security/scan         — full or partial scan of a URL
    POST /security/headers      — security header check only
    POST /security/ssl          — TLS / certificate check for hostname:port
    POST /security/cors         — CORS preflight check
    POST /security/jwt          — offline JWT analysis
    GET  /security/scans        — stored scans, newest first
    GET  /security/scans/<id>   — one stored scan with its findings

Input errors answer 400 before any network activity. Targets resolving to
internal networks answer 403 unless SCAN_ALLOW_PRIVATE_TARGETS is set.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from secscan.scanner.analyzers import CORSAnalyzer, HeaderAnalyzer, TLSInspector, analyze_jwt
from secscan.scanner.base import BaseProbe, ProbeResult, ScanTarget, parse_target
from secscan.scanner.orchestrator import ScanOrchestrator, ScanRequest
from secscan.security.store import MAX_LIST_LIMIT, ScanStore
from secscan.security.validators import (
    check_ssrf,
    validate_hostname,
    validate_port,
    validate_scan_type,
    validate_token,
    validate_url,
)

logger = logging.getLogger(__name__)

security_bp = Blueprint("security", __name__, url_prefix="/security")


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def _validation_failed(errors):
    return jsonify(error="Validation failed", errors=errors), 400


def _get_store() -> Optional[ScanStore]:
    return current_app.extensions.get("scan_store")


def _guard_target(host: str):
    """SSRF check for a target host. Returns an error response or None."""
    if current_app.config.get("SCAN_ALLOW_PRIVATE_TARGETS"):
        return None
    message, status = check_ssrf(host)
    if message:
        return jsonify(error=message), status
    return None


def _probe_config() -> Dict[str, Any]:
    config = dict(current_app.config.get("SCAN_PROBE_CONFIG") or {})
    config.setdefault("probe_mode", current_app.config.get("SCAN_PROBE_MODE", "first_match"))
    return config


def _build_orchestrator() -> ScanOrchestrator:
    cfg = current_app.config
    return ScanOrchestrator(
        max_concurrent=cfg.get("SCAN_MAX_CONCURRENT", 4),
        deadline_seconds=cfg.get("SCAN_DEADLINE_SECONDS", 60),
        probe_mode=cfg.get("SCAN_PROBE_MODE", "first_match"),
        probe_config=cfg.get("SCAN_PROBE_CONFIG"),
    )


def _run_probe(probe: BaseProbe, target: ScanTarget) -> ProbeResult:
    """Run a single probe synchronously on a private event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(probe.run(target, _probe_config()))
    finally:
        loop.close()


def _single_url_probe(probe: BaseProbe):
    data = request.get_json(silent=True) or {}
    url, errors = validate_url(data.get("url"))
    if errors:
        return _validation_failed(errors)

    target = parse_target(url)
    blocked = _guard_target(target.hostname)
    if blocked:
        return blocked

    result = _run_probe(probe, target)
    return jsonify(result.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# SCANS
# ═══════════════════════════════════════════════════════════════

@security_bp.post("/scan")
def run_security_scan():
    data = request.get_json(silent=True) or {}

    url, errors = validate_url(data.get("url"))
    scan_type, type_errors = validate_scan_type(data.get("scanType"))
    errors += type_errors
    if errors:
        return _validation_failed(errors)

    scan_request = ScanRequest(url=url, scan_type=scan_type)
    blocked = _guard_target(scan_request.target.hostname)
    if blocked:
        return blocked

    store = _get_store()
    scan_id = store.create_scan(url, scan_type) if store else None

    try:
        result = _build_orchestrator().execute(scan_request)
    except Exception as e:
        logger.exception(f"Security scan crashed for {url}")
        if store:
            store.fail_scan(scan_id, str(e))
        return jsonify(error=f"Scan failed: {str(e)}"), 500

    if store and store.complete_scan(scan_id, result):
        result.scan_id = scan_id

    return jsonify(result.to_dict()), 200


@security_bp.get("/scans")
def list_security_scans():
    store = _get_store()
    if not store:
        return jsonify(error="Scan history is not available: no database configured"), 503

    raw_limit = request.args.get("limit", "20")
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        return _validation_failed([{"field": "limit", "message": "limit must be a number"}])
    if limit < 1:
        return _validation_failed([{"field": "limit", "message": "limit must be at least 1"}])

    return jsonify(scans=store.list_scans(min(limit, MAX_LIST_LIMIT))), 200


@security_bp.get("/scans/<int:scan_id>")
def get_security_scan(scan_id: int):
    store = _get_store()
    if not store:
        return jsonify(error="Scan history is not available: no database configured"), 503

    scan = store.get_scan(scan_id)
    if not scan:
        return jsonify(error="Scan not found"), 404
    return jsonify(scan), 200


# ═══════════════════════════════════════════════════════════════
# SINGLE CHECKS
# ═══════════════════════════════════════════════════════════════

@security_bp.post("/headers")
def check_headers():
    return _single_url_probe(HeaderAnalyzer())


@security_bp.post("/cors")
def check_cors():
    return _single_url_probe(CORSAnalyzer())


@security_bp.post("/ssl")
def check_ssl():
    data = request.get_json(silent=True) or {}

    hostname, errors = validate_hostname(data.get("hostname"))
    port, port_errors = validate_port(data.get("port"))
    errors += port_errors
    if errors:
        return _validation_failed(errors)

    blocked = _guard_target(hostname)
    if blocked:
        return blocked

    host_for_url = f"[{hostname}]" if ":" in hostname else hostname
    target = parse_target(f"https://{host_for_url}:{port}")

    result = _run_probe(TLSInspector(), target)
    return jsonify(result.to_dict()), 200


@security_bp.post("/jwt")
def check_jwt():
    data = request.get_json(silent=True) or {}
    token, errors = validate_token(data.get("token"))
    if errors:
        return _validation_failed(errors)

    return jsonify(analyze_jwt(token).to_dict()), 200
