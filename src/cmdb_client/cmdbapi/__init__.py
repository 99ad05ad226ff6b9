"""CMDB REST API client package.

Provides an HTTP client for the CMDB v3 API that handles authentication,
Link header pagination, Count header parsing and uniform error reporting.

Exports:
    Cmdb: HTTP client with one method per CMDB endpoint.
    types: Module containing Pydantic models used by the client.
    DEFAULT_API: Production CMDB API base URL.
    DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
"""

from . import types
from .client import DEFAULT_API, DEFAULT_TIMEOUT, Cmdb
from .diagnostics import DiagnosticLogger, NullLogger
from .errors import (
    CmdbError,
    ConfigurationError,
    InvalidBodyError,
    ResponseError,
    UpstreamError,
)
from .links import LinkHeaderParseError, parse_link_header

__all__ = [
    "DEFAULT_API",
    "DEFAULT_TIMEOUT",
    "Cmdb",
    "CmdbError",
    "ConfigurationError",
    "DiagnosticLogger",
    "InvalidBodyError",
    "LinkHeaderParseError",
    "NullLogger",
    "ResponseError",
    "UpstreamError",
    "parse_link_header",
    "types",
]
