"""CMDB REST API client.

Provides an HTTP client for the CMDB v3 API with API key authentication,
uniform error reporting, Link header pagination and Count header parsing.
"""

import threading
import time
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, quote, urlencode

import httpx
import structlog

from .diagnostics import DiagnosticLogger, NullLogger
from .errors import InvalidBodyError, ResponseError, UpstreamError, require
from .links import LinkHeaderParseError, parse_link_header
from .types import DocumentCount, Method, RequestContext, RequestDescriptor

DEFAULT_API = "https://cmdb.in.ft.com/v3/"

# Seconds.
DEFAULT_TIMEOUT = 12.0

# Already encoded by the server in every ``next`` link.
PAGINATION_PARAMS = ("limit", "page")


def merge_query(path: str, query: Mapping[str, Any] | None) -> str:
    """Merge query parameters into a path that may already carry a query string.

    Parameters already present in ``path`` take precedence over those in
    ``query``. The path is returned untouched when ``query`` is empty.

    Args:
        path: Relative path, optionally ending in ``?key=value&...``.
        query: Extra query parameters to add.

    Returns:
        The path with a single merged query string.
    """
    if not query:
        return path
    base, _, existing = path.partition("?")
    merged: dict[str, Any] = dict(query)
    merged.update(parse_qs(existing, keep_blank_values=True))
    return f"{base}?{urlencode(merged, doseq=True, quote_via=quote)}"


def parse_count_header(header: str | None) -> tuple[int, int] | None:
    """Parse a ``Count`` header of the form ``Pages: <n>, Items: <m>``.

    Returns:
        Tuple of (pages, items), or None if the header has any other shape.
    """
    if not header:
        return None
    counts = header.split(",")
    if len(counts) != 2:  # noqa: PLR2004
        return None
    try:
        pages, items = (int(count.split(":")[1].strip()) for count in counts)
    except (IndexError, ValueError):
        return None
    if pages < 0 or items < 0:
        return None
    return pages, items


def _join_path(*segments: str) -> str:
    """Join every segment, empty ones included, into a percent-encoded path."""
    return "/".join(quote(str(segment), safe="") for segment in segments)


def _to_path(*segments: str | None) -> str:
    """Join the non-empty segments into a percent-encoded path."""
    return _join_path(*(segment for segment in segments if segment))


def _is_not_found(error: ResponseError) -> bool:
    return error.status_code == httpx.codes.NOT_FOUND


class Cmdb:
    """HTTP client for the CMDB API.

    Every public method maps to one CMDB endpoint. Collection endpoints are
    followed across pages, and a 404 from them is read as "no items".
    Failures are raised as :class:`~cmdb_client.cmdbapi.errors.ResponseError`
    subclasses carrying the response status, headers and (when it parsed)
    the body.

    Thread-safe through thread-local storage of httpx.Client instances.
    Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        apikey: str | None,
        api: str = DEFAULT_API,
        timeout: float = DEFAULT_TIMEOUT,
        verbose: bool = False,  # noqa: FBT001, FBT002
        logger: DiagnosticLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the CMDB client.

        Args:
            apikey: API key sent with every request.
            api: Base URL of the CMDB API (defaults to production).
            timeout: Default per-request timeout in seconds.
            verbose: Whether to emit diagnostic log events.
            logger: structlog-compatible logger used when ``verbose`` is set.
                Defaults to a structlog logger named ``cmdb_client``.
            transport: Optional httpx transport, e.g. a mock transport in tests.

        Raises:
            ConfigurationError: If apikey or api is missing.
            ValueError: If timeout is not positive.
        """
        self.apikey = require(apikey, "apikey")
        api = require(api or None, "api")
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.api = api if api.endswith("/") else f"{api}/"
        self.timeout = timeout
        self.verbose = verbose
        self._transport = transport

        if verbose:
            self._logger: DiagnosticLogger = logger or structlog.get_logger("cmdb_client")
        else:
            self._logger = NullLogger()

        # Use thread-local storage for httpx.Client (thread safety)
        self._local = threading.local()

    @property
    def client(self) -> httpx.Client:
        """Get or create thread-local httpx client.

        Returns:
            Thread-local httpx.Client instance.
        """
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.api,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def _build_headers(self, context: RequestContext | None, body: Any) -> dict[str, str]:
        """Build the authentication and content headers for a request."""
        headers = {"apikey": self.apikey, "x-api-key": self.apikey}
        if body is not None:
            headers["Content-Type"] = "application/json"
        if context is not None and context.identity:
            headers["FT-Forwarded-Auth"] = f"ad:{context.identity}"
        return headers

    def _parse_response_body(self, path: str, method: str, response: httpx.Response) -> Any:
        """Parse a CMDB response, raising on failure.

        The body is parsed as JSON whatever the status, since error responses
        usually carry a JSON payload explaining the failure.

        Args:
            path: Request path, for logging.
            method: Request method, for logging.
            response: The response to parse.

        Returns:
            The parsed JSON body of a successful response.

        Raises:
            InvalidBodyError: If the body is not valid JSON.
            UpstreamError: If the status is not 2xx.
        """
        if not response.is_success:
            self._logger.info(
                "CMDB_ERROR",
                path=path,
                method=method,
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )

        content_type = response.headers.get("content-type", "")
        try:
            body = response.json()
        except ValueError as error:
            self._logger.info(
                "CMDB_CONTENT_TYPE_MISMATCH",
                path=path,
                method=method,
                error=str(error),
                expected_content_type=content_type,
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )
            raise InvalidBodyError(response) from error

        if not response.is_success:
            raise UpstreamError(response, body)
        return body

    def _fetch(
        self,
        context: RequestContext | None,
        path: str,
        query: Mapping[str, Any] | None = None,
        method: Method = "GET",
        body: Any = None,
        timeout: float | None = None,
        parse_body: bool = True,  # noqa: FBT001, FBT002
    ) -> Any:
        """Make a single HTTP request to the CMDB API.

        Args:
            context: Identity of the calling user, if any.
            path: Path relative to the API base, may carry a query string.
            query: Query parameters merged into the path. Parameters already
                in ``path`` win.
            method: HTTP method.
            body: JSON-serialisable request body.
            timeout: Request timeout in seconds (default: client timeout).
            parse_body: If false, return the raw httpx.Response.

        Returns:
            The parsed JSON body, or the raw response when parse_body is false.

        Raises:
            httpx.HTTPError: If the request fails at the transport level.
            ResponseError: If the response is rejected (parse_body only).
            ValueError: If timeout is not positive.
        """
        if timeout is not None and timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        request = RequestDescriptor(
            path=path,
            query=dict(query or {}),
            method=method,
            body=body,
            timeout=timeout if timeout is not None else self.timeout,
        )
        target = merge_query(request.path, request.query)
        start_time = time.time()

        try:
            self._logger.debug("CMDB_REQUEST", method=request.method, path=target)
            response = self.client.request(
                request.method,
                target,
                headers=self._build_headers(context, request.body),
                json=request.body,
                timeout=request.timeout,
            )
        except httpx.HTTPError:
            self._logger.exception(
                "CMDB_REQUEST_FAILED",
                method=request.method,
                path=target,
                duration_seconds=round(time.time() - start_time, 3),
            )
            raise

        self._logger.debug(
            "CMDB_RESPONSE",
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )
        if not parse_body:
            return response
        return self._parse_response_body(target, request.method, response)

    def _fetch_all(
        self,
        context: RequestContext | None,
        path: str,
        query: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> list[Any]:
        """Fetch every page of a collection by following ``next`` links.

        Pages are requested one after another and concatenated in the order
        they were fetched. A 404 ends the walk with the items gathered so far,
        since the CMDB answers 404 rather than an empty list when nothing
        matches.

        Args:
            context: Identity of the calling user, if any.
            path: Collection path relative to the API base.
            query: Query parameters for the first page.
            timeout: Per-page timeout in seconds.

        Returns:
            All items of the collection.

        Raises:
            httpx.HTTPError: If a page request fails at the transport level.
            ResponseError: If a page is rejected with a status other than 404.
            LinkHeaderParseError: If a Link header is malformed.
        """
        results: list[Any] = []
        query = dict(query or {})

        while True:
            try:
                response = self._fetch(context, path, query, "GET", timeout=timeout, parse_body=False)
                body = self._parse_response_body(path, "GET", response)
                links = parse_link_header(response.headers.get("link"))
            except ResponseError as error:
                if _is_not_found(error):
                    return results
                self._logger.error("CMDB_PAGINATION_FAILED", path=path, error=str(error))
                raise
            except (httpx.HTTPError, LinkHeaderParseError) as error:
                self._logger.error("CMDB_PAGINATION_FAILED", path=path, error=str(error))
                raise

            if isinstance(body, list):
                results.extend(body)
            else:
                results.append(body)

            next_url = links.get("next")
            if not next_url:
                return results
            path = next_url.replace(self.api, "", 1)
            query = {k: v for k, v in query.items() if k not in PAGINATION_PARAMS}

    def _fetch_count(
        self,
        context: RequestContext | None,
        path: str,
        query: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> DocumentCount:
        """Fetch the page and item count of a collection.

        Counts come from the ``Count`` response header. Without a usable
        header the response is taken to be a single page and the items are
        counted from the body.

        Raises:
            httpx.HTTPError: If the request fails at the transport level.
            ResponseError: If the response is rejected with a status other than 404.
        """
        try:
            response = self._fetch(context, path, query, "GET", timeout=timeout, parse_body=False)
            body = self._parse_response_body(path, "GET", response)
        except ResponseError as error:
            if _is_not_found(error):
                return DocumentCount(pages=0, items=0)
            raise

        pages = 1
        items = len(body) if isinstance(body, list) else 0
        if counts := parse_count_header(response.headers.get("Count")):
            pages, items = counts
        return DocumentCount(pages=pages, items=items)

    def _fetch_page(
        self,
        context: RequestContext | None,
        path: str,
        query: Mapping[str, Any],
        timeout: float | None,
    ) -> Any:
        """Fetch a single page of a collection, reading 404 as an empty page."""
        try:
            return self._fetch(context, path, query, timeout=timeout)
        except ResponseError as error:
            if _is_not_found(error):
                return []
            raise

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def get_item(
        self,
        context: RequestContext | None,
        item_type: str | None,
        key: str | None,
        timeout: float | None = None,
    ) -> Any:
        """Get a single item.

        Args:
            context: Identity of the calling user, if any.
            item_type: Type of the item.
            key: Key of the item.
            timeout: Request timeout in seconds.

        Returns:
            The item as held in the CMDB.

        Raises:
            ConfigurationError: If item_type or key is missing.
            UpstreamError: If the item does not exist (404) or the call fails.
        """
        path = _join_path("items", require(item_type, "item_type"), require(key, "key"))
        return self._fetch(context, path, timeout=timeout)

    def get_item_fields(
        self,
        context: RequestContext | None,
        item_type: str | None,
        key: str | None,
        fields: list[str] | None = None,
        related_fields: str | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Get a single item, restricted to the given output fields.

        Args:
            fields: Names of the fields to return.
            related_fields: Whether to include nested relationship data
                (``"True"``/``"False"``).
        """
        path = _join_path("items", require(item_type, "item_type"), require(key, "key"))
        query: dict[str, Any] = {}
        if fields:
            query["outputfields"] = ",".join(fields)
        if related_fields:
            query["show_related"] = related_fields
        return self._fetch(context, path, query, timeout=timeout)

    def put_item(
        self,
        context: RequestContext | None,
        item_type: str | None,
        key: str | None,
        body: dict[str, Any] | None,
        timeout: float | None = None,
    ) -> Any:
        """Create or update an item and return the stored version."""
        path = _join_path("items", require(item_type, "item_type"), require(key, "key"))
        body = require(body, "body")
        return self._fetch(context, path, method="PUT", body=body, timeout=timeout)

    def delete_item(
        self,
        context: RequestContext | None,
        item_type: str | None,
        key: str | None,
        timeout: float | None = None,
    ) -> Any:
        """Delete an item and return the data it held."""
        path = _join_path("items", require(item_type, "item_type"), require(key, "key"))
        return self._fetch(context, path, method="DELETE", timeout=timeout)

    def get_all_items(
        self,
        context: RequestContext | None,
        item_type: str | None = None,
        criteria: Mapping[str, Any] | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> list[Any]:
        """Get every item of a type, across all pages.

        Args:
            context: Identity of the calling user, if any.
            item_type: Type of items to fetch. All items when omitted.
            criteria: Query parameters restricting the items.
            limit: Items per underlying page request.
            timeout: Per-page timeout in seconds.

        Returns:
            The matching items, empty if there are none.
        """
        path = _to_path("items", item_type)
        query: dict[str, Any] = dict(criteria or {})
        if limit:
            query["limit"] = limit
        return self._fetch_all(context, path, query, timeout)

    def get_all_item_fields(
        self,
        context: RequestContext | None,
        item_type: str | None,
        fields: list[str] | None = None,
        criteria: Mapping[str, Any] | None = None,
        related_fields: str | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> list[Any]:
        """Get every item of a type with only the given fields, across all pages."""
        path = _join_path("items", require(item_type, "item_type"))
        query: dict[str, Any] = {}
        if fields:
            query["outputfields"] = ",".join(fields)
        query.update(criteria or {})
        if related_fields:
            query["show_related"] = related_fields
        if limit:
            query["limit"] = limit
        return self._fetch_all(context, path, query, timeout)

    def get_item_count(
        self,
        context: RequestContext | None,
        item_type: str | None,
        criteria: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> DocumentCount:
        """Count the pages and items of a type.

        Returns:
            The count, zero pages and zero items if the type has no items.
        """
        path = _join_path("items", require(item_type, "item_type"))
        # Related items are not needed for a count
        query: dict[str, Any] = {"page": 1, "outputfields": "", "show_related": "False"}
        query.update(criteria or {})
        return self._fetch_count(context, path, query, timeout)

    def get_item_page(
        self,
        context: RequestContext | None,
        item_type: str | None,
        page: int = 1,
        criteria: Mapping[str, Any] | None = None,
        related_fields: str | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Get one page of items of a type.

        Returns:
            The items on the page, empty if the page does not exist.
        """
        path = _join_path("items", require(item_type, "item_type"))
        query: dict[str, Any] = {"page": page}
        if related_fields:
            query["show_related"] = related_fields
        query.update(criteria or {})
        if limit:
            query["limit"] = limit
        return self._fetch_page(context, path, query, timeout)

    def get_item_page_fields(
        self,
        context: RequestContext | None,
        item_type: str | None,
        page: int = 1,
        fields: list[str] | None = None,
        criteria: Mapping[str, Any] | None = None,
        related_fields: str | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Get one page of items of a type with only the given fields."""
        path = _join_path("items", require(item_type, "item_type"))
        query: dict[str, Any] = {"page": page}
        if fields:
            query["outputfields"] = ",".join(fields)
        if related_fields:
            query["show_related"] = related_fields
        query.update(criteria or {})
        if limit:
            query["limit"] = limit
        return self._fetch_page(context, path, query, timeout)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def get_relationships(
        self,
        context: RequestContext | None,
        subject_type: str | None,
        subject_id: str | None,
        rel_type: str | None = None,
        timeout: float | None = None,
    ) -> Any:
        """List the relationships of an item, optionally of one type only."""
        path = _to_path(
            "relationships",
            require(subject_type, "subject_type"),
            require(subject_id, "subject_id"),
            rel_type,
        )
        return self._fetch(context, path, timeout=timeout)

    def _relationship_path(
        self,
        subject_type: str | None,
        subject_id: str | None,
        rel_type: str | None,
        object_type: str | None,
        object_id: str | None,
    ) -> str:
        return _to_path(
            "relationships",
            require(subject_type, "subject_type"),
            require(subject_id, "subject_id"),
            require(rel_type, "rel_type"),
            require(object_type, "object_type"),
            require(object_id, "object_id"),
        )

    def get_relationship(
        self,
        context: RequestContext | None,
        subject_type: str | None,
        subject_id: str | None,
        rel_type: str | None,
        object_type: str | None,
        object_id: str | None,
        timeout: float | None = None,
    ) -> Any:
        """Get a relationship between two items.

        Args:
            context: Identity of the calling user, if any.
            subject_type: Type of the source item.
            subject_id: Key of the source item.
            rel_type: Relationship type.
            object_type: Type of the destination item.
            object_id: Key of the destination item.
            timeout: Request timeout in seconds.
        """
        path = self._relationship_path(subject_type, subject_id, rel_type, object_type, object_id)
        return self._fetch(context, path, timeout=timeout)

    def put_relationship(
        self,
        context: RequestContext | None,
        subject_type: str | None,
        subject_id: str | None,
        rel_type: str | None,
        object_type: str | None,
        object_id: str | None,
        timeout: float | None = None,
    ) -> Any:
        """Create a relationship between two items."""
        path = self._relationship_path(subject_type, subject_id, rel_type, object_type, object_id)
        return self._fetch(context, path, method="POST", body={}, timeout=timeout)

    def delete_relationship(
        self,
        context: RequestContext | None,
        subject_type: str | None,
        subject_id: str | None,
        rel_type: str | None,
        object_type: str | None,
        object_id: str | None,
        timeout: float | None = None,
    ) -> Any:
        """Delete a relationship between two items."""
        path = self._relationship_path(subject_type, subject_id, rel_type, object_type, object_id)
        return self._fetch(context, path, method="DELETE", body={}, timeout=timeout)
