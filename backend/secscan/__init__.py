# secscan/__init__.py
"""
App factory for the secscan security scanning service.

Configuration comes from environment variables and can be overridden by
passing a `test_config` mapping to create_app():

    SECRET_KEY                 : required in production
    CORS_ORIGINS               : comma-separated allowed origins; an https
                                 origin switches production mode on
    SQLALCHEMY_DATABASE_URI    : optional; without it scan history is off
    SCAN_MAX_CONCURRENT        : probes in flight per scan (default 4)
    SCAN_DEADLINE_SECONDS      : overall scan deadline (default 60)
    SCAN_PROBE_MODE            : first_match | exhaustive
    SCAN_ALLOW_PRIVATE_TARGETS : allow internal targets (default false)
    MAX_CONTENT_LENGTH         : request body limit in bytes (default 1MB)

Flask-Migrate (Alembic) manages the schema; db.create_all() is not called.
"""

from __future__ import annotations
from flask_cors import CORS
import os
import logging
import traceback
from typing import Any, Mapping, Optional
from flask import Flask, jsonify
from .extensions import init_extensions
from . import models
from .scanner.analyzers.vuln_prober import PROBE_MODES
from .security import security_bp
from .security.store import ScanStore
import re

error_logger = logging.getLogger("secscan.errors")


def _is_production() -> bool:
    """Detect production by checking CORS_ORIGINS for https."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default, cast=int):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got '{raw}'")


def create_app(test_config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)

    is_prod = _is_production()

    # ── Logging ──────────────────────────────────────────────────────
    if is_prod:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        app.logger.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
        app.logger.setLevel(logging.DEBUG)

    # Werkzeug logs every request
    logging.getLogger("werkzeug").setLevel(logging.INFO)
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # ─────────────────────────────────────────────────────────────────

    # ── Configuration ────────────────────────────────────────────────
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("SQLALCHEMY_DATABASE_URI")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SCAN_MAX_CONCURRENT"] = _env_number("SCAN_MAX_CONCURRENT", 4)
    app.config["SCAN_DEADLINE_SECONDS"] = _env_number("SCAN_DEADLINE_SECONDS", 60.0, float)
    app.config["SCAN_PROBE_MODE"] = os.getenv("SCAN_PROBE_MODE", "first_match").strip().lower()
    app.config["SCAN_ALLOW_PRIVATE_TARGETS"] = _env_bool("SCAN_ALLOW_PRIVATE_TARGETS")
    app.config["SCAN_PROBE_CONFIG"] = {}
    app.config["MAX_CONTENT_LENGTH"] = _env_number("MAX_CONTENT_LENGTH", 1024 * 1024)

    if test_config:
        app.config.update(test_config)

    if app.config["SCAN_PROBE_MODE"] not in PROBE_MODES:
        raise RuntimeError(
            f"SCAN_PROBE_MODE must be one of {', '.join(PROBE_MODES)}, "
            f"got '{app.config['SCAN_PROBE_MODE']}'"
        )

    # ── CORS ────────────────────────────────────────────────────────
    # Production: set CORS_ORIGINS="https://scanner.example.com" in .env
    # Dev: falls back to localhost origins if env var is not set
    cors_env = os.getenv("CORS_ORIGINS")
    if cors_env:
        cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()]
    else:
        cors_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            re.compile(r"http://192\.168\.\d+\.\d+:3000"),
        ]

    CORS(app, resources={
        r"/*": {
            "origins": cors_origins,
            "supports_credentials": True,
            "allow_headers": ["Content-Type", "Authorization"],
            "methods": ["GET", "POST", "OPTIONS"],
        }
    })

    # ── Secret Key ───────────────────────────────────────────────────
    secret_key = app.config.get("SECRET_KEY") or os.getenv("SECRET_KEY")
    if is_prod and not secret_key:
        raise RuntimeError(
            "SECRET_KEY environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )
    app.config["SECRET_KEY"] = secret_key or "dev-secret-key-change-me"

    # ── Database (optional) ──────────────────────────────────────────
    # Without a database URI the engine still works; only scan history
    # (GET /security/scans) is unavailable.
    if app.config.get("SQLALCHEMY_DATABASE_URI"):
        init_extensions(app)
        app.extensions["scan_store"] = ScanStore()
    else:
        app.extensions["scan_store"] = None
        logging.getLogger(__name__).info(
            "SQLALCHEMY_DATABASE_URI not set; scan history disabled"
        )

    # ── Blueprints ───────────────────────────────────────────────────
    app.register_blueprint(security_bp)

    # ── Global Error Handlers ────────────────────────────────────────
    # Return clean JSON for all errors; never expose tracebacks to users.
    # Errors are logged server-side for debugging.

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({
            "error": "Bad request",
            "message": str(e.description) if hasattr(e, "description") else "The request was malformed or invalid.",
        }), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Not found",
            "message": "The requested resource was not found.",
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            "error": "Method not allowed",
            "message": "This HTTP method is not allowed for this endpoint.",
        }), 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return jsonify({
            "error": "Payload too large",
            "message": "The request body exceeds the maximum allowed size.",
        }), 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return jsonify({
            "error": "Unsupported media type",
            "message": "The request content type is not supported. Use application/json.",
        }), 415

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
        }), 429

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error(
            "500 Internal Server Error:\n%s", traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    @app.errorhandler(Exception)
    def catch_all(e):
        """Catch-all for any unhandled exception; never leak tracebacks."""
        # HTTP errors raised via abort() keep their own status
        if hasattr(e, "code") and hasattr(e, "get_response") and isinstance(e.code, int) and e.code < 500:
            return jsonify({"error": e.name, "message": e.description}), e.code
        error_logger.error(
            "Unhandled exception: %s\n%s", str(e), traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    # ─────────────────────────────────────────────────────────────────

    # Health check
    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    return app
