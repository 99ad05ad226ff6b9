"""Data types exchanged with the CMDB API client.

Pydantic models describing the caller identity, a single outgoing request
and the document count reported by collection endpoints.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Method = Literal["GET", "PUT", "POST", "DELETE"]


class RequestContext(BaseModel):
    """Identity of the user on whose behalf a request is made.

    When ``identity`` is set, requests carry an ``FT-Forwarded-Auth`` header
    so the CMDB can attribute changes to that user.
    """

    model_config = ConfigDict(frozen=True)

    identity: str | None = None


class RequestDescriptor(BaseModel):
    """A single request to the CMDB API, fixed once built."""

    model_config = ConfigDict(frozen=True)

    path: str
    query: dict[str, Any] = Field(default_factory=dict)
    method: Method = "GET"
    body: Any = None
    timeout: float = Field(gt=0)


class DocumentCount(BaseModel):
    """Number of pages and items a collection query would return."""

    model_config = ConfigDict(frozen=True)

    pages: int = Field(0, ge=0)
    items: int = Field(0, ge=0)
