# secscan/security/__init__.py
"""
Security scanning API — the HTTP surface of the scan engine.

Scans run synchronously inside the request and return the full result.
When a database is configured, every URL scan is recorded and can be
listed afterwards.

Endpoints:
    POST /security/scan
    POST /security/headers
    POST /security/ssl
    POST /security/cors
    POST /security/jwt
    GET  /security/scans
    GET  /security/scans/<id>
"""

from secscan.security.routes import security_bp

__all__ = ["security_bp"]
