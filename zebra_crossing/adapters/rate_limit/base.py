"""Rate limiter interfaces and shared value types.

The HTTP layer depends on these abstractions (not the concrete
implementations) so the storage backend can be swapped (in-memory, Redis,
scripted Redis) with no changes to the middleware.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass

from zebra_crossing.core.errors import InvalidConfigurationError, MalformedRecordError

DEFAULT_KEY_PREFIX = "rate-limit:"


@dataclass(frozen=True)
class RateLimiterOptions:
    """Limiter configuration, validated on construction.

    Attributes:
        window_ms: Window length in milliseconds.
        max_requests: Admitted requests per window.
        key_prefix: Namespace prepended to client keys in the shared store.
        reset_expiry_on_change: Refresh the record's storage TTL on every
            admitted write instead of only when a window starts.

    Raises:
        InvalidConfigurationError: If window_ms or max_requests is not a
            positive integer.
    """

    window_ms: int
    max_requests: int
    key_prefix: str = DEFAULT_KEY_PREFIX
    reset_expiry_on_change: bool = False

    def __post_init__(self) -> None:
        for name in ("window_ms", "max_requests"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise InvalidConfigurationError(
                    code="invalid_configuration",
                    message=f"{name} must be a positive integer",
                    details={"field": name, "actual_value": value},
                )

    def storage_key(self, client_key: str) -> str:
        """Namespace a client key for the shared store."""
        return f"{self.key_prefix}{client_key}"


@dataclass(frozen=True)
class WindowState:
    """Persisted state of one client's current window.

    Attributes:
        hits: Requests observed in the current window.
        expires_at: Epoch milliseconds at which the window ends.
    """

    hits: int
    expires_at: int

    def is_expired(self, now_ms: int) -> bool:
        """Return True once ``now_ms`` is strictly past the window end."""
        return now_ms > self.expires_at

    def to_json(self) -> str:
        """Serialize to the wire format shared by every store."""
        return json.dumps({"hits": self.hits, "expiresAt": self.expires_at})

    @classmethod
    def from_json(cls, raw: str | bytes) -> "WindowState":
        """Decode a stored record.

        Args:
            raw: JSON text as written by :meth:`to_json`.

        Returns:
            Decoded WindowState.

        Raises:
            MalformedRecordError: If the payload is not a valid record.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError, UnicodeDecodeError) as exc:
            raise MalformedRecordError(
                code="malformed_record",
                message="Stored window record is not valid JSON",
            ) from exc

        if not isinstance(data, dict):
            raise MalformedRecordError(
                code="malformed_record",
                message="Stored window record is not an object",
            )

        hits = data.get("hits")
        expires_at = data.get("expiresAt")
        for name, value in (("hits", hits), ("expiresAt", expires_at)):
            # bool is an int subclass; reject it explicitly
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise MalformedRecordError(
                    code="malformed_record",
                    message="Stored window record has an invalid field",
                    details={"field": name, "actual_value": value},
                )

        return cls(hits=hits, expires_at=expires_at)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        admitted: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when rejected).
        reset_at: Epoch milliseconds when the current window ends.
        retry_after_seconds: Suggested wait when rejected, else None.
    """

    admitted: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None


class AbstractWindowStore(ABC):
    """Key-value store holding one WindowState per storage key.

    Implementations must tolerate concurrent use from many coroutines
    without external locking.
    """

    @abstractmethod
    async def get(self, key: str) -> WindowState | None:
        """Return the stored state, or None when absent or malformed.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(
        self,
        key: str,
        state: WindowState,
        ttl_ms: int,
        *,
        keep_ttl: bool = False,
    ) -> None:
        """Write ``state`` under ``key``.

        Every write leaves a record that expires: ``ttl_ms`` applies unless
        ``keep_ttl`` is set and the record still has an expiry of its own.

        Args:
            key: Storage key.
            state: State to persist.
            ttl_ms: Storage-level expiry in milliseconds.
            keep_ttl: Keep the record's current expiry when it has one.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release underlying resources. No-op by default."""


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @property
    @abstractmethod
    def options(self) -> RateLimiterOptions:
        """Configuration the limiter enforces."""
        raise NotImplementedError

    @abstractmethod
    async def check(self, client_key: str) -> RateLimitDecision:
        """Count one request for ``client_key`` and decide admission.

        Args:
            client_key: Resolved caller identity (e.g., IP address).

        Returns:
            RateLimitDecision describing whether the request is admitted.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, client_key: str) -> None:
        """Drop the current window for ``client_key``."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release the underlying store. No-op by default."""
