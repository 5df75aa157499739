"""RateLimiterPort — abstract interface for request rate limiting."""

from abc import ABC, abstractmethod


class RateLimiterPort(ABC):
    @abstractmethod
    def admit(self, identity: str, max_requests: int, window_seconds: float) -> bool:
        """Return True if request is allowed, False if rate-limited."""

    @abstractmethod
    def remaining(self, identity: str, max_requests: int) -> int:
        """Return number of remaining requests in current window."""

    @abstractmethod
    def sweep(self) -> int:
        """Drop expired windows. Returns the number of entries removed."""
