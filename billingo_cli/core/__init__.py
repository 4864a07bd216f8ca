"""
Core layer - HTTP client, error taxonomy and response types.

This layer provides:
- Low-level HTTP client with auth, rate-limit warnings and error handling
- ErrorKind-tagged exceptions for every failure path
- A typed view of the Billingo list envelope
"""

from billingo_cli.core.client import (
    APIClient,
    APIError,
    CLIError,
    ConfigurationError,
    ErrorKind,
    InputError,
    classify_status,
)
from billingo_cli.core.types import PaginatedResponse

__all__ = [
    "APIClient",
    "APIError",
    "CLIError",
    "ConfigurationError",
    "ErrorKind",
    "InputError",
    "PaginatedResponse",
    "classify_status",
]
