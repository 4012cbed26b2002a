"""Error taxonomy for collection sort runs."""

from __future__ import annotations


class SortError(RuntimeError):
    pass


class ConfigurationError(SortError):
    """Missing or invalid settings; raised before any network call."""


class MalformedRecordError(SortError):
    """One input line could not be turned into a sales record."""

    def __init__(self, reason: str, *, line_number: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.line_number = line_number


class NoIdentifiableProductsError(SortError):
    pass


class CollectionNotFoundError(SortError):
    def __init__(self, handle: str) -> None:
        super().__init__(f'Collection with handle "{handle}" not found.')
        self.handle = handle


class TransportError(SortError):
    """Network, HTTP or GraphQL-level failure of one remote call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(TransportError):
    pass


TERMINAL_ERRORS = (
    ConfigurationError,
    FileNotFoundError,
    NoIdentifiableProductsError,
    CollectionNotFoundError,
)
