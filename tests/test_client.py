"""Unit tests for the core HTTP client: headers, decoding, error mapping, rate-limit warnings."""

import http.client
import json
import re
import urllib.error

import pytest

from billingo_cli.core.client import (
    DEFAULT_TIMEOUT,
    APIClient,
    APIError,
    ConfigurationError,
    ErrorKind,
    InputError,
    build_api_error,
    classify_status,
    extract_error_message,
)

API_KEY = "test-api-key-0123456789abcdef"
BASE_URL = "https://api.billingo.hu/v3"


@pytest.fixture
def client() -> APIClient:
    return APIClient(api_key=API_KEY, base_url=BASE_URL)


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    """The API key is injected into every request and required before any is sent."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.get("/partners", {"page": 1}),
            lambda c: c.post("/documents", {"partner_id": 1}),
            lambda c: c.put("/partners/1", {"name": "Acme"}),
            lambda c: c.delete("/partners/1"),
            lambda c: c.download("/documents/1/download"),
        ],
        ids=["get", "post", "put", "delete", "download"],
    )
    def test_missing_api_key_sends_nothing(self, fake_http, call):
        client = APIClient(api_key=None, base_url=BASE_URL)
        with pytest.raises(ConfigurationError) as exc_info:
            call(client)
        assert exc_info.value.kind is ErrorKind.CONFIGURATION
        assert "BILLINGO_API_KEY" in exc_info.value.message
        assert fake_http.requests == []

    def test_empty_api_key_is_missing(self, fake_http):
        with pytest.raises(ConfigurationError):
            APIClient(api_key="", base_url=BASE_URL).get("/organization")
        assert fake_http.requests == []

    def test_json_headers(self, client, fake_http):
        fake_http.respond({"id": 1})
        client.get("/organization")
        req = fake_http.last_request
        assert req.get_header("X-api-key") == API_KEY
        assert req.get_header("Accept") == "application/json"
        assert req.get_header("Content-type") == "application/json"

    def test_download_omits_content_type(self, client, fake_http):
        fake_http.respond(raw=b"%PDF-1.4")
        client.download("/documents/1/download")
        req = fake_http.last_request
        assert req.get_header("X-api-key") == API_KEY
        assert req.get_header("Content-type") is None

    def test_fixed_timeout(self, client, fake_http):
        fake_http.respond({})
        client.get("/organization")
        assert fake_http.timeouts == [DEFAULT_TIMEOUT]
        assert DEFAULT_TIMEOUT == 30


# =============================================================================
# Requests and successful responses
# =============================================================================


class TestRequests:
    def test_get_returns_body_unchanged(self, client, fake_http):
        body = {"data": [{"id": 1, "name": "Acme", "address": {"city": "Budapest"}}], "total": 1}
        fake_http.respond(body)
        assert client.get("/partners") == body

    def test_list_body_unchanged(self, client, fake_http):
        fake_http.respond([{"code": "HUF"}, {"code": "EUR"}])
        assert client.get("/currencies") == [{"code": "HUF"}, {"code": "EUR"}]

    def test_empty_body_returns_none(self, client, fake_http):
        fake_http.respond(status=204)
        assert client.delete("/partners/1") is None
        assert fake_http.last_request.get_method() == "DELETE"

    def test_query_params_drop_none(self, client, fake_http):
        fake_http.respond({"data": []})
        client.get("/documents", {"page": 2, "per_page": 10, "partner_id": None, "payment_status": "paid"})
        assert fake_http.last_request.full_url == (
            f"{BASE_URL}/documents?page=2&per_page=10&payment_status=paid"
        )

    def test_trailing_slash_in_base_url(self, fake_http):
        fake_http.respond({})
        APIClient(api_key=API_KEY, base_url=f"{BASE_URL}/").get("/organization")
        assert fake_http.last_request.full_url == f"{BASE_URL}/organization"

    def test_body_forwarded_unmodified(self, client, fake_http):
        payload = {
            "partner_id": 42,
            "fulfillment_date": "2024-01-31",
            "electronic": False,
            "items": [{"name": "Tanácsadás", "unit_price": 15000.5, "quantity": 2, "vat": "27%"}],
            "comment": None,
        }
        fake_http.respond({"id": 1})
        client.post("/documents", payload)
        assert fake_http.last_request.get_method() == "POST"
        assert fake_http.last_body() == payload

    def test_put(self, client, fake_http):
        fake_http.respond({"id": 7, "name": "New"})
        assert client.put("/partners/7", {"name": "New"}) == {"id": 7, "name": "New"}
        assert fake_http.last_request.get_method() == "PUT"
        assert fake_http.last_request.full_url == f"{BASE_URL}/partners/7"

    def test_post_without_body(self, client, fake_http):
        fake_http.respond({"id": 9})
        client.post("/documents/1/cancel")
        assert fake_http.last_request.data is None

    def test_download_returns_exact_bytes(self, client, fake_http):
        raw = json.dumps({"looks": "like json"}).encode("utf-8")
        fake_http.respond(raw=raw)
        result = client.download("/documents/1/download")
        assert isinstance(result, bytes)
        assert result == raw

    def test_invalid_json_response(self, client, fake_http):
        fake_http.respond(raw=b"<html>oops</html>")
        with pytest.raises(APIError, match="Invalid JSON response"):
            client.get("/organization")


# =============================================================================
# Error mapping
# =============================================================================


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.AUTHENTICATION),
            (403, ErrorKind.AUTHORIZATION),
            (404, ErrorKind.NOT_FOUND),
            (422, ErrorKind.VALIDATION),
            (429, ErrorKind.RATE_LIMIT),
            (500, ErrorKind.SERVER),
            (502, ErrorKind.SERVER),
            (503, ErrorKind.SERVER),
            (400, ErrorKind.UNCLASSIFIED),
            (409, ErrorKind.UNCLASSIFIED),
        ],
    )
    def test_classify_status(self, status, kind):
        assert classify_status(status) is kind

    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.get("/documents/1"),
            lambda c: c.post("/partners", {"name": "x"}),
            lambda c: c.put("/products/1", {"name": "x"}),
            lambda c: c.delete("/bank-accounts/1"),
            lambda c: c.download("/documents/1/download"),
        ],
        ids=["get", "post", "put", "delete", "download"],
    )
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.AUTHENTICATION),
            (403, ErrorKind.AUTHORIZATION),
            (404, ErrorKind.NOT_FOUND),
            (422, ErrorKind.VALIDATION),
            (429, ErrorKind.RATE_LIMIT),
        ],
    )
    def test_kind_independent_of_method(self, client, fake_http, call, status, kind):
        fake_http.respond({"message": "nope"}, status=status)
        with pytest.raises(APIError) as exc_info:
            call(client)
        assert exc_info.value.kind is kind
        assert exc_info.value.status == status

    def test_messages(self, client, fake_http):
        expected = {
            401: "Authentication failed",
            403: "Access denied",
            404: "Resource not found",
            500: "Server error (500)",
        }
        for status, text in expected.items():
            fake_http.respond({}, status=status)
            with pytest.raises(APIError, match=re.escape(text)):
                client.get("/organization")

    def test_validation_detail_echoed(self, client, fake_http):
        fake_http.respond({"message": "The partner_id field is required."}, status=422)
        with pytest.raises(APIError) as exc_info:
            client.post("/documents", {})
        assert exc_info.value.message == "Validation error: The partner_id field is required."
        assert exc_info.value.details == {"message": "The partner_id field is required."}

    def test_validation_without_message_dumps_body(self, client, fake_http):
        fake_http.respond({"errors": [{"field": "name"}]}, status=422)
        with pytest.raises(APIError) as exc_info:
            client.post("/partners", {})
        assert '"field": "name"' in exc_info.value.message

    def test_rate_limit_retry_after(self, client, fake_http):
        fake_http.respond({"message": "Too Many Attempts."}, status=429, headers={"retry-after": "30"})
        with pytest.raises(APIError) as exc_info:
            client.get("/partners")
        assert exc_info.value.kind is ErrorKind.RATE_LIMIT
        assert "30" in exc_info.value.message

    def test_rate_limit_without_retry_after(self, client, fake_http):
        fake_http.respond({}, status=429)
        with pytest.raises(APIError, match="Rate limit exceeded"):
            client.get("/partners")

    @pytest.mark.parametrize(
        ("body", "raw", "expected"),
        [
            ({"message": "Conflict with existing document"}, None, "Conflict with existing document"),
            ({"error": "bad_request"}, None, "bad_request"),
            ({"error": {"message": "nested detail"}}, None, "nested detail"),
            ({"code": 17}, None, '{"code": 17}'),
            (None, b"plain text failure", "plain text failure"),
        ],
    )
    def test_unclassified_message_extraction(self, client, fake_http, body, raw, expected):
        fake_http.respond(body, status=409, raw=raw)
        with pytest.raises(APIError) as exc_info:
            client.get("/documents")
        assert exc_info.value.kind is ErrorKind.UNCLASSIFIED
        assert "409" in exc_info.value.message
        assert expected in exc_info.value.message

    def test_no_retry_on_server_error(self, client, fake_http):
        fake_http.respond({}, status=503)
        fake_http.respond({"ok": True})
        with pytest.raises(APIError):
            client.get("/organization")
        assert len(fake_http.requests) == 1

    def test_no_retry_on_rate_limit(self, client, fake_http):
        fake_http.respond({}, status=429, headers={"Retry-After": "1"})
        with pytest.raises(APIError):
            client.get("/organization")
        assert len(fake_http.requests) == 1

    def test_connection_error(self, client, fake_http):
        fake_http.fail(urllib.error.URLError("Name or service not known"))
        with pytest.raises(APIError) as exc_info:
            client.get("/organization")
        assert exc_info.value.kind is ErrorKind.TRANSPORT
        assert exc_info.value.status == 0
        assert "No response from server" in exc_info.value.message

    def test_timeout(self, client, fake_http):
        fake_http.fail(TimeoutError("timed out"))
        with pytest.raises(APIError) as exc_info:
            client.get("/organization")
        assert exc_info.value.kind is ErrorKind.TRANSPORT

    @pytest.mark.parametrize(
        "error",
        [http.client.IncompleteRead(b"x", 5), http.client.BadStatusLine("garbage")],
        ids=["truncated-body", "bad-status-line"],
    )
    def test_broken_response(self, client, fake_http, error):
        fake_http.fail(error)
        with pytest.raises(APIError) as exc_info:
            client.download("/documents/1/download")
        assert exc_info.value.kind is ErrorKind.TRANSPORT
        assert exc_info.value.status == 0
        assert "No response from server" in exc_info.value.message


class TestErrorHelpers:
    def test_extract_error_message_prefers_message(self):
        assert extract_error_message({"message": "m", "error": "e"}) == "m"

    def test_build_api_error_keeps_list_details(self):
        error = build_api_error(400, [{"field": "x"}])
        assert error.details == [{"field": "x"}]
        assert error.kind is ErrorKind.UNCLASSIFIED

    def test_to_dict(self):
        error = APIError("Resource not found.", kind=ErrorKind.NOT_FOUND, status=404)
        assert error.to_dict() == {"error": "Resource not found.", "kind": "not_found", "status": 404}

    def test_local_errors_have_no_status(self):
        assert InputError("Invalid JSON").to_dict() == {"error": "Invalid JSON", "kind": "input"}
        assert ConfigurationError("missing").to_dict()["kind"] == "configuration"


# =============================================================================
# Rate-limit warning
# =============================================================================


class TestRateLimitWarning:
    def test_low_remaining_warns_once(self, client, fake_http, capsys):
        body = {"id": 1}
        fake_http.respond(body, headers={"X-RateLimit-Remaining": "3", "X-RateLimit-Limit": "60"})
        assert client.get("/organization") == body
        err = capsys.readouterr().err
        assert err.count("Warning:") == 1
        assert "3/60" in err

    def test_header_names_are_case_insensitive(self, client, fake_http, capsys):
        fake_http.respond({}, headers={"x-ratelimit-remaining": "0"})
        client.get("/organization")
        assert "Warning: Only 0/" in capsys.readouterr().err

    def test_fractional_remaining_warns(self, client, fake_http, capsys):
        fake_http.respond({}, headers={"X-RateLimit-Remaining": "9.0", "X-RateLimit-Limit": "60"})
        client.get("/organization")
        assert "Warning: Only 9/60" in capsys.readouterr().err

    @pytest.mark.parametrize("remaining", ["10", "10.0", "59", "abc", "inf", ""])
    def test_no_warning(self, client, fake_http, capsys, remaining):
        fake_http.respond({}, headers={"X-RateLimit-Remaining": remaining})
        client.get("/organization")
        assert capsys.readouterr().err == ""

    def test_no_header_no_warning(self, client, fake_http, capsys):
        fake_http.respond({})
        client.get("/organization")
        assert capsys.readouterr().err == ""

    def test_download_unaffected(self, client, fake_http, capsys):
        fake_http.respond(raw=b"%PDF", headers={"X-RateLimit-Remaining": "1"})
        assert client.download("/documents/1/download") == b"%PDF"
        assert capsys.readouterr().err.count("Warning:") == 1
