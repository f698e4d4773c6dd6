"""Error types shared across the routing package."""

from __future__ import annotations


class InvalidInput(ValueError):
    """Raised when a depot or stop cannot be used for optimization."""


class ProviderUnavailable(ConnectionError):
    """Raised when a travel-cost provider cannot answer a request.

    ``retryable`` is False for failures that repeating the request cannot fix,
    such as a rejected API key.
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
