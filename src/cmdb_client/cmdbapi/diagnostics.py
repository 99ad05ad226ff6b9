"""Diagnostic logging capability used by the CMDB client.

The client only emits diagnostic events; it never changes behaviour based
on logging. Any structlog bound logger satisfies :class:`DiagnosticLogger`.
"""

from typing import Any, Protocol


class DiagnosticLogger(Protocol):
    """Minimal logger interface (a subset of structlog's BoundLogger API)."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...

    def exception(self, event: str, **kw: Any) -> Any: ...


class NullLogger:
    """Logger that discards every call."""

    def debug(self, event: str, **kw: Any) -> None:
        pass

    def info(self, event: str, **kw: Any) -> None:
        pass

    def error(self, event: str, **kw: Any) -> None:
        pass

    def exception(self, event: str, **kw: Any) -> None:
        pass
