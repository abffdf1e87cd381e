"""Tests for application-wide middleware."""


def test_security_headers(test_client):
    response = test_client.get("/api/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "img-src 'self' data:" in response.headers["Content-Security-Policy"]


def test_cors_preflight_allows_csrf_header(test_client):
    response = test_client.options(
        "/api/batches",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-Requested-With",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_unknown_route(test_client):
    assert test_client.get("/api/nothing-here").status_code == 404
