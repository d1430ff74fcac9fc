"""Typed failures raised while resolving, decoding and selecting pages."""

from __future__ import annotations


class ViewerError(Exception):
    exit_code = 3


class InvalidRange(ViewerError, ValueError):
    exit_code = 2


class NoPagesSelected(ViewerError):
    pass


class UnsupportedFormat(ViewerError):
    pass


class DecodeFailed(ViewerError):
    def __init__(self, message: str, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number


class CollaboratorUnavailable(ViewerError):
    def __init__(self, dependency: str, hint: str = "") -> None:
        message = f"{dependency} is required but not available"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)
        self.dependency = dependency


class CacheIOError(ViewerError):
    pass
