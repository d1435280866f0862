"""
Bounded retry for vendor I/O.

Every handler's network call goes through the same ``RetryPolicy`` so that
attempt counts and backoff are identical across FTP, REST and SOAP vendors.
Only ``TransientVendorError`` is retried; authentication, configuration and
data errors surface on the first attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Tuple, Type, TypeVar

from catalog_sync.core.exceptions import RetryExhaustedError, TransientVendorError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = 3,
        delays: Sequence[float] = (5.0, 10.0),
        retry_on: Tuple[Type[BaseException], ...] = (TransientVendorError,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delays = tuple(delays)
        self.retry_on = retry_on
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> "RetryPolicy":
        return cls(
            max_attempts=settings.SYNC_RETRY_MAX_ATTEMPTS,
            delays=settings.retry_delays,
            sleep=sleep,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt; the last delay repeats."""
        if not self.delays:
            return 0.0
        return self.delays[min(attempt - 1, len(self.delays) - 1)]

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        description: Optional[str] = None,
        vendor_slug: Optional[str] = None,
        tenant_id: Optional[str] = None,
        **kwargs,
    ) -> T:
        """
        Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

        Raises:
            RetryExhaustedError: every attempt failed with a retryable error.
                The last error is attached as ``last_error`` and ``__cause__``.
        """
        label = description or getattr(func, "__qualname__", "vendor call")
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except self.retry_on as exc:
                last_error = exc
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "Attempt %s/%s of %s failed: %s; retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    label,
                    exc,
                    delay,
                )
                await self._sleep(delay)

        logger.error("Giving up on %s after %s attempts: %s", label, self.max_attempts, last_error)
        raise RetryExhaustedError(
            f"{label} failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
            last_error=last_error,
            vendor_slug=vendor_slug or getattr(last_error, "vendor_slug", None),
            tenant_id=tenant_id,
        ) from last_error
