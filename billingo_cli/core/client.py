"""
Core HTTP client for the Billingo API v3.

Handles authentication, request/response decoding, rate-limit warnings and
error normalization. Every failed call raises exactly once; nothing is retried.
"""

import http.client
import json
import logging
import sys
import urllib.error
import urllib.parse
import urllib.request
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Configuration
DEFAULT_BASE_URL = "https://api.billingo.hu/v3"
DEFAULT_TIMEOUT = 30
RATE_LIMIT_WARNING_THRESHOLD = 10

MISSING_API_KEY_MESSAGE = (
    "API key not configured. Set it with: billingo config set apiKey <your-api-key> "
    "or set the BILLINGO_API_KEY environment variable. "
    "Get your API key at: https://app.billingo.hu/api-key"
)


class ErrorKind(str, Enum):
    """Every way a CLI operation can fail."""

    CONFIGURATION = "configuration"
    INPUT = "input"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    UNCLASSIFIED = "unclassified"
    TRANSPORT = "transport"


class CLIError(Exception):
    """Base error class for CLI errors."""

    kind = ErrorKind.UNCLASSIFIED

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result: dict[str, Any] = {"error": self.message, "kind": self.kind.value}
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(CLIError):
    """No usable API key; raised before any request is sent."""

    kind = ErrorKind.CONFIGURATION


class InputError(CLIError):
    """Local input problem (bad JSON payload, unreadable file, unknown key)."""

    kind = ErrorKind.INPUT


class APIError(CLIError):
    """API or transport error with its kind and HTTP status (0 when no response)."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNCLASSIFIED,
        status: int = 0,
        details: Any = None,
    ):
        super().__init__(message, details)
        self.kind = kind
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result = super().to_dict()
        if self.status:
            result["status"] = self.status
        return result


def classify_status(status: int) -> ErrorKind:
    """Map an HTTP error status to its error kind."""
    if status == 401:
        return ErrorKind.AUTHENTICATION
    if status == 403:
        return ErrorKind.AUTHORIZATION
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 422:
        return ErrorKind.VALIDATION
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if 500 <= status < 600:
        return ErrorKind.SERVER
    return ErrorKind.UNCLASSIFIED


def extract_error_message(body: Any, raw: str = "") -> str:
    """Best-effort server message: ``message``, then ``error``, then the whole body."""
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    if body is not None:
        return json.dumps(body, ensure_ascii=False)
    return raw


def build_api_error(status: int, body: Any, raw: str = "", retry_after: str | None = None) -> APIError:
    """Build the APIError for a non-2xx response."""
    kind = classify_status(status)

    if kind is ErrorKind.AUTHENTICATION:
        message = "Authentication failed. Check your API key."
    elif kind is ErrorKind.AUTHORIZATION:
        message = "Access denied. Insufficient permissions."
    elif kind is ErrorKind.NOT_FOUND:
        message = "Resource not found."
    elif kind is ErrorKind.VALIDATION:
        detail = body.get("message") if isinstance(body, dict) and body.get("message") else body
        if detail is None:
            detail = raw
        elif not isinstance(detail, str):
            detail = json.dumps(detail, ensure_ascii=False)
        message = f"Validation error: {detail}"
    elif kind is ErrorKind.RATE_LIMIT:
        if retry_after:
            message = f"Rate limit exceeded. Retry after {retry_after} seconds."
        else:
            message = "Rate limit exceeded. Please wait before retrying."
    elif kind is ErrorKind.SERVER:
        message = f"Server error ({status}). Please try again later."
    else:
        message = f"API error ({status}): {extract_error_message(body, raw)}"

    return APIError(message, kind=kind, status=status, details=body if isinstance(body, (dict, list)) else None)


class APIClient:
    """
    Low-level HTTP client for the Billingo API.

    Handles:
    - Authentication via the X-API-KEY header
    - HTTP methods (GET, POST, PUT, DELETE) and binary downloads
    - Error normalization into ErrorKind-tagged exceptions
    - Low remaining-quota warnings
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the API client.

        Args:
            api_key: Billingo API key; checked lazily on every call
            base_url: API base URL
            timeout: Request timeout in seconds

        """
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _ensure_api_key(self) -> str:
        """Ensure API key is configured."""
        if not self.api_key:
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)
        return self.api_key

    def _build_url(self, path: str, params: dict[str, Any] | None = None) -> str:
        """Build full URL from path and query parameters."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        if params:
            # Filter out None values and URL-encode
            filtered_params = {k: v for k, v in params.items() if v is not None}
            if filtered_params:
                separator = "&" if "?" in url else "?"
                url = f"{url}{separator}{urllib.parse.urlencode(filtered_params)}"
        return url

    def _headers(self, binary: bool = False) -> dict[str, str]:
        headers = {
            "X-API-KEY": self._ensure_api_key(),
            "Accept": "application/json",
        }
        if not binary:
            headers["Content-Type"] = "application/json"
        return headers

    def _warn_rate_limit(self, headers: Any) -> None:
        """Print a warning when few calls remain in the current rate-limit window."""
        if headers is None:
            return
        remaining = headers.get("X-RateLimit-Remaining")
        if remaining is None:
            return
        try:
            remaining_count = int(float(str(remaining).strip()))
        except (ValueError, OverflowError):
            return
        if remaining_count < RATE_LIMIT_WARNING_THRESHOLD:
            limit = headers.get("X-RateLimit-Limit") or "?"
            print(
                f"Warning: Only {remaining_count}/{limit} API calls remaining in this window",
                file=sys.stderr,
            )

    def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: Any = None,
        binary: bool = False,
    ) -> Any:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path (e.g., /partners/42)
            params: Query parameters (None values are dropped)
            data: JSON-serializable request body
            binary: Return the raw response bytes instead of decoded JSON

        Returns:
            Parsed JSON response (None for an empty body), or bytes when binary

        Raises:
            ConfigurationError: When no API key is configured (no request is sent)
            APIError: On HTTP, transport or parsing errors

        """
        headers = self._headers(binary=binary)
        url = self._build_url(path, params)
        body = json.dumps(data).encode("utf-8") if data is not None else None

        logger.debug("%s %s", method, url)
        try:
            req = urllib.request.Request(url, data=body, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                payload = response.read()
                logger.debug("%s %s -> %s (%d bytes)", method, url, getattr(response, "status", "?"), len(payload))
                self._warn_rate_limit(response.headers)

        except urllib.error.HTTPError as e:
            logger.debug("%s %s -> %s", method, url, e.code)
            raw = ""
            try:
                raw = e.read().decode("utf-8", errors="replace")
            except OSError as read_error:
                logger.debug("Could not read error body: %s", read_error)
            try:
                error_body = json.loads(raw) if raw else None
            except json.JSONDecodeError:
                error_body = None
            retry_after = e.headers.get("Retry-After") if e.headers is not None else None
            raise build_api_error(e.code, error_body, raw, retry_after) from e

        except urllib.error.URLError as e:
            raise APIError(
                f"No response from server. Check your connection. ({e.reason})",
                kind=ErrorKind.TRANSPORT,
            ) from e

        except TimeoutError as e:
            raise APIError(
                f"No response from server within {self.timeout} seconds. Check your connection.",
                kind=ErrorKind.TRANSPORT,
            ) from e

        except ConnectionError as e:
            raise APIError(
                f"No response from server. Check your connection. ({e})",
                kind=ErrorKind.TRANSPORT,
            ) from e

        except http.client.HTTPException as e:
            # Truncated body or malformed status line
            raise APIError(
                f"No response from server. Check your connection. ({e!r})",
                kind=ErrorKind.TRANSPORT,
            ) from e

        if binary:
            return payload
        if not payload:
            return None
        try:
            return json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise APIError(f"Invalid JSON response: {e}") from e

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request."""
        return self._make_request("GET", path, params=params)

    def post(self, path: str, data: Any = None) -> Any:
        """Make a POST request."""
        return self._make_request("POST", path, data=data)

    def put(self, path: str, data: Any = None) -> Any:
        """Make a PUT request."""
        return self._make_request("PUT", path, data=data)

    def delete(self, path: str) -> Any:
        """Make a DELETE request."""
        return self._make_request("DELETE", path)

    def download(self, path: str, params: dict[str, Any] | None = None) -> bytes:
        """Download a binary resource, returning the exact response bytes."""
        return self._make_request("GET", path, params=params, binary=True)
