"""Pytest configuration - loads .env for integration tests and fakes the network for unit tests."""

import io
import json
import urllib.error
import urllib.request
from email.message import Message
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


def make_headers(headers: dict[str, Any] | None = None) -> Message:
    """Case-insensitive header mapping, like http.client.HTTPMessage."""
    message = Message()
    for key, value in (headers or {}).items():
        message[key] = str(value)
    return message


class FakeResponse:
    """Stand-in for the object returned by urllib.request.urlopen."""

    def __init__(self, status: int, payload: bytes, headers: Message):
        self.status = status
        self.headers = headers
        self._payload = payload

    def read(self) -> bytes:
        return self._payload

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *args: Any) -> None:
        return None


class FakeHTTP:
    """Records every request and replays queued responses in order."""

    def __init__(self) -> None:
        self.requests: list[urllib.request.Request] = []
        self.timeouts: list[Any] = []
        self._queue: list[Any] = []

    def respond(
        self,
        body: Any = None,
        status: int = 200,
        headers: dict[str, Any] | None = None,
        raw: bytes | None = None,
    ) -> None:
        """Queue a response; ``raw`` bytes are sent verbatim instead of JSON-encoding ``body``."""
        if raw is None:
            raw = b"" if body is None else json.dumps(body).encode("utf-8")
        self._queue.append((status, raw, headers))

    def fail(self, error: BaseException) -> None:
        """Queue a transport-level failure."""
        self._queue.append(error)

    @property
    def last_request(self) -> urllib.request.Request:
        return self.requests[-1]

    def last_body(self) -> Any:
        data = self.last_request.data
        return json.loads(data.decode("utf-8")) if data is not None else None

    def __call__(self, req: urllib.request.Request, timeout: Any = None) -> FakeResponse:
        self.requests.append(req)
        self.timeouts.append(timeout)
        if not self._queue:
            raise AssertionError(f"Unexpected request: {req.get_method()} {req.full_url}")

        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item

        status, raw, headers = item
        if status >= 400:
            raise urllib.error.HTTPError(req.full_url, status, "error", make_headers(headers), io.BytesIO(raw))
        return FakeResponse(status, raw, make_headers(headers))


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep tests away from the real config file, credentials and any .env in the repo."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("BILLINGO_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("BILLINGO_API_KEY", raising=False)
    monkeypatch.delenv("BILLINGO_BASE_URL", raising=False)
    monkeypatch.chdir(tmp_path)
    return config_dir


@pytest.fixture
def fake_http(monkeypatch: pytest.MonkeyPatch) -> FakeHTTP:
    """Replace urllib.request.urlopen so no request leaves the process."""
    fake = FakeHTTP()
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Provide an API key through the environment."""
    key = "test-api-key-0123456789abcdef"
    monkeypatch.setenv("BILLINGO_API_KEY", key)
    return key
