"""Exceptions raised by the live-update subsystem."""

from __future__ import annotations


class UpstreamError(Exception):
    """An upstream provider call failed.

    ``status`` is the HTTP status code, or None when the request never got
    a response (DNS failure, connection refused, ...).
    """

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(f"{status or 'network'}: {message}")
        self.status = status
        self.message = message


class BuildError(Exception):
    """A snapshot could not be assembled for a watch key."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail
