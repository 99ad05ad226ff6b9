"""Error types raised by the CMDB API client.

Every error raised by the client derives from :class:`CmdbError`. Errors
built from an upstream response carry the response metadata so callers
can branch on the status code or inspect the body the API returned.
"""

from typing import Any, TypeVar

import httpx

T = TypeVar("T")


class CmdbError(Exception):
    """Base class for all CMDB client errors."""


class ConfigurationError(CmdbError, ValueError):
    """Raised when a required construction or call parameter is missing."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"The config parameter '{parameter}' is required")


class ResponseError(CmdbError):
    """Raised when the CMDB API answers with a response the client rejects.

    Attributes:
        status_code: HTTP status code of the response.
        status_text: Reason phrase of the response.
        headers: Response headers (ordered, case-insensitive).
    """

    def __init__(self, message: str, response: httpx.Response):
        super().__init__(message)
        self.status_code: int = response.status_code
        self.status_text: str = response.reason_phrase
        self.headers: httpx.Headers = response.headers


class InvalidBodyError(ResponseError):
    """The response body could not be parsed as JSON.

    Has no ``body`` attribute, since there is nothing parsed to attach.
    """

    def __init__(self, response: httpx.Response):
        super().__init__("Received response with invalid body from CMDB", response)


class UpstreamError(ResponseError):
    """The response status signals failure.

    Attributes:
        body: The parsed JSON error payload returned by the API.
    """

    def __init__(self, response: httpx.Response, body: Any):
        super().__init__(f"Received {response.status_code} response from CMDB", response)
        self.body = body


def require(value: T | None, name: str) -> T:
    """Return ``value``, raising :class:`ConfigurationError` if it is None."""
    if value is None:
        raise ConfigurationError(name)
    return value
