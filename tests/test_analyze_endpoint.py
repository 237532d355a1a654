"""Tests for POST /api/analyze."""

import base64

import pytest

from income_verifier.errors import UpstreamError
from income_verifier.schemas.analysis import MAX_TOTAL_UPLOAD_BYTES
from tests.conftest import PDF_DATA, analyze_body

GENERIC_FAILURE = "Failed to analyze documents. Please try again."


class TestSessionGate:
    def test_missing_header(self, client, analyzer):
        response = client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert analyzer.calls == []

    def test_malformed_header(self, client):
        response = client.post(
            "/api/analyze", json=analyze_body(), headers={"Authorization": "Basic abc"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_unknown_token(self, client):
        response = client.post(
            "/api/analyze", json=analyze_body(), headers={"Authorization": "Bearer deadbeef"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Session expired"}

    def test_token_valid_just_before_expiry(self, client, auth_headers, clock):
        clock.advance(24 * 60 * 60 - 0.001)
        response = client.post("/api/analyze", json=analyze_body(), headers=auth_headers)
        assert response.status_code == 200

    def test_expired_token_evicted(self, client, auth_headers, clock, app, token):
        clock.advance(24 * 60 * 60 + 0.001)
        response = client.post("/api/analyze", json=analyze_body(), headers=auth_headers)

        assert response.status_code == 401
        assert response.json() == {"error": "Session expired"}
        assert token not in app.state.sessions


class TestValidation:
    @pytest.mark.parametrize(
        "body, message",
        [
            (analyze_body(files=[]), "No files provided."),
            ({"householdSize": 2}, "No files provided."),
            ({"files": None, "householdSize": 2}, "No files provided."),
            ({"files": [{"mimeType": "application/pdf", "data": PDF_DATA}]},
             "Valid household size is required."),
            (analyze_body(household_size=0), "Household size must be between 1 and 20."),
            (analyze_body(household_size=21), "Household size must be between 1 and 20."),
            (analyze_body(household_size=2.5), "Valid household size is required."),
            (analyze_body(household_size="3"), "Valid household size is required."),
            (analyze_body(household_size=True), "Valid household size is required."),
        ],
    )
    def test_bad_input_is_400(self, client, auth_headers, analyzer, body, message):
        response = client.post("/api/analyze", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"message": message}
        assert analyzer.calls == []

    def test_unsupported_mime_type(self, client, auth_headers):
        files = [{"mimeType": "text/html", "data": PDF_DATA}]
        response = client.post("/api/analyze", json=analyze_body(files=files), headers=auth_headers)

        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["message"]

    def test_data_must_be_base64(self, client, auth_headers):
        files = [{"mimeType": "image/png", "data": "not base64!"}]
        response = client.post("/api/analyze", json=analyze_body(files=files), headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"message": "File data must be base64 encoded."}

    def test_too_many_files(self, client, auth_headers):
        files = [{"mimeType": "application/pdf", "data": PDF_DATA}] * 11
        response = client.post("/api/analyze", json=analyze_body(files=files), headers=auth_headers)

        assert response.status_code == 400
        assert "at most 10" in response.json()["message"]

    def test_total_upload_size_capped(self, client, auth_headers):
        blob = base64.b64encode(b"\0" * (MAX_TOTAL_UPLOAD_BYTES // 2 + 1)).decode()
        files = [{"mimeType": "image/jpeg", "data": blob}] * 2
        response = client.post("/api/analyze", json=analyze_body(files=files), headers=auth_headers)

        assert response.status_code == 400
        assert "too large" in response.json()["message"]

    def test_empty_files_400_even_when_rate_limited(self, client, auth_headers):
        for _ in range(10):
            client.post("/api/analyze", json=analyze_body(), headers=auth_headers)

        response = client.post("/api/analyze", json=analyze_body(files=[]), headers=auth_headers)
        assert response.status_code == 400


class TestAnalysis:
    def test_result_merges_fpl_figures(self, client, auth_headers, analyzer):
        response = client.post("/api/analyze", json=analyze_body(household_size=9), headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "isEligible": True,
            "annualIncome": 28000.0,
            "reasoning": "Bi-weekly base pay of $1,076.92 annualizes to $28,000.",
            "documentType": "Pay Stub",
            "householdSize": 9,
            "povertyLevel": 58100,
            "povertyThreshold": 116200,
        }

        call = analyzer.calls[0]
        assert call["household_size"] == 9
        assert call["poverty_level"] == 58100
        assert call["poverty_threshold"] == 116200
        assert call["files"][0].mime_type == "application/pdf"
        assert call["files"][0].content() == b"%PDF-1.4"

    def test_null_income_passes_through(self, client, auth_headers, analyzer):
        analyzer.assessment = analyzer.assessment.model_copy(update={"annual_income": None})
        response = client.post("/api/analyze", json=analyze_body(household_size=1), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["annualIncome"] is None
        assert response.json()["povertyThreshold"] == 30120

    def test_eleventh_call_in_an_hour_is_429(self, client, auth_headers, analyzer):
        for _ in range(10):
            assert client.post("/api/analyze", json=analyze_body(), headers=auth_headers).status_code == 200

        response = client.post("/api/analyze", json=analyze_body(), headers=auth_headers)

        assert response.status_code == 429
        body = response.json()
        assert body["message"] == "Analysis rate limit exceeded. Maximum 10 analyses per hour."
        assert 0 < body["retryAfter"] <= 3600
        assert response.headers["Retry-After"] == str(body["retryAfter"])
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert len(analyzer.calls) == 10

    def test_analyze_limit_resets_after_an_hour(self, client, auth_headers, clock):
        for _ in range(10):
            client.post("/api/analyze", json=analyze_body(), headers=auth_headers)
        assert client.post("/api/analyze", json=analyze_body(), headers=auth_headers).status_code == 429

        clock.advance(60 * 60)
        assert client.post("/api/analyze", json=analyze_body(), headers=auth_headers).status_code == 200

    def test_upstream_error_is_generic_500(self, client, auth_headers, analyzer):
        analyzer.error = UpstreamError()
        response = client.post("/api/analyze", json=analyze_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"message": GENERIC_FAILURE}

    def test_unexpected_error_detail_never_leaks(self, client, auth_headers, analyzer):
        analyzer.error = RuntimeError("connection refused to 10.0.0.7 using key AIza-secret")
        response = client.post("/api/analyze", json=analyze_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"message": GENERIC_FAILURE}
        assert "AIza" not in response.text
