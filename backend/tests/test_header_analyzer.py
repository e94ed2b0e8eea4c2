"""
Tests for the HTTP security header analyzer.
"""

from __future__ import annotations

import httpx

from secscan.scanner.analyzers.header_analyzer import (
    SECURITY_HEADERS,
    HeaderAnalyzer,
    analyze_headers,
)
from secscan.scanner.base import Category, Severity, parse_target

from conftest import SECURE_HEADERS, mock_transport, refusing_transport, run


class TestAnalyzeHeaders:
    """Test the pure header evaluation."""

    def test_secure_headers_produce_no_findings(self) -> None:
        assert analyze_headers(SECURE_HEADERS) == []

    def test_every_missing_header_is_reported_in_registry_order(self) -> None:
        findings = analyze_headers({})

        assert [f.title for f in findings] == [
            f"Missing {policy.display_name}" for policy in SECURITY_HEADERS
        ]
        assert all(f.category == Category.SECURITY_HEADERS for f in findings)
        assert all(f.owasp_category == "A05" for f in findings)

    def test_missing_severities(self) -> None:
        by_title = {f.title: f.severity for f in analyze_headers({})}

        assert by_title["Missing Strict-Transport-Security"] == Severity.HIGH
        assert by_title["Missing Content-Security-Policy"] == Severity.HIGH
        assert by_title["Missing X-Frame-Options"] == Severity.MEDIUM
        assert by_title["Missing X-Content-Type-Options"] == Severity.MEDIUM
        assert by_title["Missing Referrer-Policy"] == Severity.LOW
        assert by_title["Missing Permissions-Policy"] == Severity.LOW
        assert by_title["Missing X-XSS-Protection"] == Severity.INFO

    def test_header_names_are_case_insensitive(self) -> None:
        lowered = {k.lower(): v for k, v in SECURE_HEADERS.items()}
        assert analyze_headers(lowered) == []

    def test_short_hsts_max_age_is_weak(self) -> None:
        headers = dict(SECURE_HEADERS)
        headers["Strict-Transport-Security"] = "max-age=3600"

        findings = analyze_headers(headers)

        assert len(findings) == 1
        assert findings[0].title == "Weak HSTS Configuration"
        assert findings[0].severity == Severity.MEDIUM
        assert "3600" in findings[0].description

    def test_hsts_without_max_age_is_weak(self) -> None:
        headers = dict(SECURE_HEADERS)
        headers["Strict-Transport-Security"] = "includeSubDomains"

        assert [f.title for f in analyze_headers(headers)] == ["Weak HSTS Configuration"]

    def test_allow_from_frame_options_is_deprecated(self) -> None:
        headers = dict(SECURE_HEADERS)
        headers["X-Frame-Options"] = "allow-from https://partner.example"

        findings = analyze_headers(headers)

        assert [f.title for f in findings] == ["Deprecated X-Frame-Options Value"]
        assert findings[0].severity == Severity.MEDIUM

    def test_disclosure_headers(self) -> None:
        headers = dict(SECURE_HEADERS)
        headers["Server"] = "nginx/1.18.0"
        headers["X-Powered-By"] = "Express"

        findings = analyze_headers(headers)
        by_title = {f.title: f for f in findings}

        assert by_title["Server Header Present"].severity == Severity.INFO
        assert by_title["X-Powered-By Header Present"].severity == Severity.LOW
        assert by_title["Server Header Present"].category == Category.INFORMATION_DISCLOSURE
        assert "nginx/1.18.0" in by_title["Server Header Present"].description

    def test_deterministic(self) -> None:
        headers = {"Server": "Apache", "X-Frame-Options": "SAMEORIGIN"}
        assert analyze_headers(headers) == analyze_headers(dict(headers))


class TestHeaderAnalyzerProbe:
    """Test the network-facing probe."""

    def test_collects_headers_and_findings(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Server": "nginx"}, text="<html></html>")

        result = run(HeaderAnalyzer().run(
            parse_target("https://example.com/"),
            {"transport": mock_transport(handler)},
        ))

        assert result.success is True
        assert result.data["status_code"] == 200
        assert result.data["headers"]["server"] == "nginx"
        assert len(result.findings) == len(SECURITY_HEADERS) + 1

    def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/":
                return httpx.Response(301, headers={"Location": "https://example.com/home"})
            return httpx.Response(200, headers=SECURE_HEADERS)

        result = run(HeaderAnalyzer().run(
            parse_target("https://example.com/"),
            {"transport": mock_transport(handler)},
        ))

        assert result.data["final_url"] == "https://example.com/home"
        assert result.findings == []

    def test_connection_failure_yields_single_finding(self) -> None:
        result = run(HeaderAnalyzer().run(
            parse_target("http://unreachable.example/"),
            {"transport": refusing_transport()},
        ))

        assert result.success is False
        assert result.error
        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.title == "Connection Failed"
        assert finding.severity == Severity.CRITICAL
        assert finding.category == Category.CONNECTION

    def test_to_dict_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers=SECURE_HEADERS)

        result = run(HeaderAnalyzer().run(
            parse_target("https://example.com/"),
            {"transport": mock_transport(handler)},
        ))
        body = result.to_dict()

        assert body["success"] is True
        assert body["findings"] == []
        assert "duration" in body
        assert body["headers"]["x-frame-options"] == "DENY"
        assert "error" not in body
