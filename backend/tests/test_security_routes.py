"""
Tests for the security API blueprint and the scan-record store.

Apps are built with an in-memory SQLite database and an httpx.MockTransport
injected through SCAN_PROBE_CONFIG, so no request leaves the process.
"""

from __future__ import annotations

import socket
from datetime import timedelta

import httpx
import pytest

from secscan.scanner.analyzers.tls_inspector import TLSInspector
from secscan.scanner.analyzers.vuln_prober import SENSITIVE_PATHS

from conftest import (
    FIXED_NOW,
    SECURE_HEADERS,
    make_certificate,
    make_jwt,
    mock_transport,
    refusing_transport,
)


def leaky_site(request: httpx.Request) -> httpx.Response:
    """Missing most headers, announces its server, no CORS headers, no exposed paths."""
    if request.url.path in SENSITIVE_PATHS:
        return httpx.Response(404, text="")
    return httpx.Response(200, headers={"Server": "Apache/2.4.1"}, text="<html>ok</html>")


@pytest.fixture
def client(app_factory):
    app = app_factory(SCAN_PROBE_CONFIG={"transport": mock_transport(leaky_site)})
    return app.test_client()


class TestScanEndpoint:
    """POST /security/scan and scan history."""

    def test_full_scan_is_scored_and_stored(self, client) -> None:
        resp = client.post("/security/scan", json={"url": "http://target.example/"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "completed"
        assert body["scanType"] == "full"
        assert isinstance(body["scanId"], int)
        assert set(body["results"]) == {"headers", "vulnerabilities", "cors"}
        assert body["summary"]["total"] == len(body["findings"])
        assert 0 <= body["securityScore"] < 100
        assert body["grade"] in {"A", "B", "C", "D", "F"}
        assert len(body["recommendations"]) <= 10

        listing = client.get("/security/scans").get_json()["scans"]
        assert [s["id"] for s in listing] == [body["scanId"]]
        assert listing[0]["securityScore"] == body["securityScore"]

        stored = client.get(f"/security/scans/{body['scanId']}").get_json()
        assert stored["status"] == "completed"
        assert len(stored["findings"]) == len(body["findings"])
        assert stored["findings"][0]["title"] == body["findings"][0]["title"]

    def test_scan_type_headers(self, client) -> None:
        resp = client.post("/security/scan", json={"url": "http://target.example/", "scanType": "headers"})

        body = resp.get_json()
        assert list(body["results"]) == ["headers"]
        assert "Server Header Present" in [f["title"] for f in body["findings"]]

    def test_list_is_newest_first_and_limited(self, client) -> None:
        ids = [
            client.post("/security/scan", json={"url": "http://target.example/", "scanType": "headers"}).get_json()["scanId"]
            for _ in range(3)
        ]

        listing = client.get("/security/scans?limit=2").get_json()["scans"]
        assert [s["id"] for s in listing] == list(reversed(ids))[:2]

    def test_invalid_limit(self, client) -> None:
        resp = client.get("/security/scans?limit=abc")
        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "limit"

    def test_unknown_scan_is_404(self, client) -> None:
        assert client.get("/security/scans/9999").status_code == 404


class TestValidation:
    """Input validation and SSRF guard."""

    @pytest.mark.parametrize("payload,field", [
        ({}, "url"),
        ({"url": "ftp://target.example"}, "url"),
        ({"url": "not a url"}, "url"),
        ({"url": "http://" + "a" * 2050 + ".com"}, "url"),
        ({"url": "http://target.example", "scanType": "deep"}, "scanType"),
    ])
    def test_bad_scan_input(self, client, payload, field) -> None:
        resp = client.post("/security/scan", json=payload)

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "Validation failed"
        assert body["errors"][0]["field"] == field

    def test_private_targets_are_blocked(self, app_factory) -> None:
        app = app_factory(with_db=False, SCAN_ALLOW_PRIVATE_TARGETS=False)
        client = app.test_client()

        for url in ("http://127.0.0.1/", "http://10.1.2.3:8080/", "http://[::1]/", "http://169.254.169.254/"):
            resp = client.post("/security/scan", json={"url": url})
            assert resp.status_code == 403, url

    def test_unresolvable_host_is_scanned(self, app_factory, monkeypatch) -> None:
        def no_such_host(*args, **kwargs):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", no_such_host)
        app = app_factory(
            with_db=False,
            SCAN_ALLOW_PRIVATE_TARGETS=False,
            SCAN_PROBE_CONFIG={"transport": refusing_transport()},
        )

        resp = app.test_client().post(
            "/security/scan", json={"url": "http://no-such-host.invalid/", "scanType": "headers"}
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "completed"
        assert [f["title"] for f in body["findings"]] == ["Connection Failed"]
        assert body["securityScore"] == 75

    def test_host_resolving_to_private_address_is_blocked(self, app_factory, monkeypatch) -> None:
        def internal_only(*args, **kwargs):
            return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0))]

        monkeypatch.setattr(socket, "getaddrinfo", internal_only)
        app = app_factory(with_db=False, SCAN_ALLOW_PRIVATE_TARGETS=False)

        resp = app.test_client().post("/security/scan", json={"url": "http://intranet.example/"})

        assert resp.status_code == 403

    def test_bad_ssl_input(self, client) -> None:
        resp = client.post("/security/ssl", json={"hostname": "example.com", "port": 70000})

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "port"

    def test_jwt_with_out_of_range_exp(self, client) -> None:
        token = make_jwt({"alg": "HS256"}, {"iat": 1, "exp": 99999999999999})

        resp = client.post("/security/jwt", json={"token": token})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is False
        assert body["findings"][0]["title"] == "JWT Decode Error"

    def test_missing_token(self, client) -> None:
        resp = client.post("/security/jwt", json={"token": ""})
        assert resp.status_code == 400


class TestSingleChecks:
    """Single-module endpoints."""

    def test_headers(self, client) -> None:
        body = client.post("/security/headers", json={"url": "http://target.example/"}).get_json()

        assert body["success"] is True
        assert body["headers"]["server"] == "Apache/2.4.1"
        assert body["status_code"] == 200

    def test_cors(self, app_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Access-Control-Allow-Origin": "*"})

        app = app_factory(with_db=False, SCAN_PROBE_CONFIG={"transport": mock_transport(handler)})
        body = app.test_client().post("/security/cors", json={"url": "https://api.example"}).get_json()

        assert body["success"] is True
        assert [f["title"] for f in body["findings"]] == ["Wildcard CORS Origin"]

    def test_ssl(self, client, monkeypatch) -> None:
        der = make_certificate(FIXED_NOW - timedelta(days=1), FIXED_NOW + timedelta(days=3650))

        async def fake_handshake(self, hostname, port, timeout):
            assert (hostname, port) == ("example.com", 8443)
            return {"der": der, "protocol": "TLSv1", "cipher": "AES128-SHA"}

        async def fake_trust(self, hostname, port, timeout):
            return False, "self-signed certificate"

        monkeypatch.setattr(TLSInspector, "_handshake", fake_handshake)
        monkeypatch.setattr(TLSInspector, "_verify_trust", fake_trust)

        body = client.post("/security/ssl", json={"hostname": "Example.com", "port": 8443}).get_json()

        assert body["success"] is True
        assert body["connection"]["authorizationError"] == "self-signed certificate"
        assert body["certificate"]["subject"]["CN"] == "example.com"
        assert [f["title"] for f in body["findings"]] == ["Untrusted Certificate", "Weak TLS Version"]

    def test_jwt(self, client) -> None:
        token = make_jwt({"alg": "none"}, {"sub": "1"}, signature="")

        body = client.post("/security/jwt", json={"token": token}).get_json()

        assert body["success"] is True
        assert body["decoded"]["header"] == {"alg": "none"}
        assert body["findings"][0]["severity"] == "critical"


class TestAppWithoutDatabase:
    """Scan history is optional."""

    def test_history_unavailable(self, app_factory) -> None:
        app = app_factory(with_db=False)
        client = app.test_client()

        assert client.get("/security/scans").status_code == 503
        assert client.get("/security/scans/1").status_code == 503

    def test_scan_still_works(self, app_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SECURE_HEADERS)

        app = app_factory(with_db=False, SCAN_PROBE_CONFIG={"transport": mock_transport(handler)})
        body = app.test_client().post(
            "/security/scan", json={"url": "http://target.example/", "scanType": "headers"}
        ).get_json()

        assert body["scanId"] is None
        assert body["securityScore"] == 100


class TestAppBasics:
    """Health check and JSON error handlers."""

    def test_health(self, app_factory) -> None:
        resp = app_factory(with_db=False).test_client().get("/health")
        assert resp.status_code == 200

    def test_unknown_route_is_json_404(self, app_factory) -> None:
        resp = app_factory(with_db=False).test_client().get("/nope")

        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Not found"

    def test_wrong_method_is_json_405(self, app_factory) -> None:
        resp = app_factory(with_db=False).test_client().get("/security/scan")
        assert resp.status_code == 405

    def test_invalid_probe_mode_is_rejected(self, app_factory) -> None:
        with pytest.raises(RuntimeError):
            app_factory(with_db=False, SCAN_PROBE_MODE="aggressive")
