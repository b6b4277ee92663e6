"""
Idempotent retry of remote gateway operations.

One logical operation (a payment creation, or a capture) gets one
idempotency key, generated up front and sent unchanged with every attempt.
The gateway collapses repeated attempts carrying the same key into a single
effect, so a retry after a lost answer never charges twice.
"""
import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from kassa_checkout.core.errors import TransportError
from kassa_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def new_idempotency_key() -> str:
    """Generate a key for a new logical operation."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded fixed-delay retry: ``max_attempts`` includes the first call."""

    max_attempts: int = 4
    delay_seconds: float = 2.0

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            delay_seconds=settings.retry_delay_seconds,
        )


class IdempotentRetryExecutor:
    """
    Runs a remote call under a stable idempotency key with bounded retries.

    Features:
    - Same key on every attempt of one operation
    - Retries on an empty answer and on transport errors only
    - Fixed non-blocking delay between attempts (``asyncio.sleep``)
    - Never raises: failures are logged and reported as ``None``
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize executor.

        Args:
            policy: Retry policy, defaults to 4 attempts 2 seconds apart
            sleep: Awaitable sleep, replaceable in tests
        """
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    async def execute(
        self,
        operation: str,
        call: Callable[[str], Awaitable[Optional[T]]],
        idempotency_key: Optional[str] = None,
    ) -> Optional[T]:
        """
        Invoke ``call(idempotency_key)`` until it returns a result.

        Args:
            operation: Operation name for logs and metrics
            call: Remote operation taking the idempotency key
            idempotency_key: Key to reuse, a new one is generated if omitted

        Returns:
            Optional[T]: First non-empty result, or None on failure
        """
        key = idempotency_key or new_idempotency_key()

        def before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            error = outcome.exception() if outcome is not None and outcome.failed else None
            metrics.record_retry(operation)
            logger.warning(
                "gateway_attempt_failed",
                operation=operation,
                idempotency_key=key,
                attempt=retry_state.attempt_number,
                error=str(error) if error else None,
                retry_in=self.policy.delay_seconds,
            )

        def give_up(retry_state: RetryCallState) -> None:
            logger.error(
                "gateway_attempts_exhausted",
                operation=operation,
                idempotency_key=key,
                attempts=retry_state.attempt_number,
            )
            return None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_fixed(self.policy.delay_seconds),
            retry=(
                retry_if_result(lambda result: result is None)
                | retry_if_exception_type(TransportError)
            ),
            before_sleep=before_sleep,
            retry_error_callback=give_up,
            sleep=self.sleep,
        )

        try:
            return await retrying(call, key)
        except Exception as e:
            # non-retryable: protocol errors and anything unexpected
            logger.error(
                "gateway_operation_failed",
                operation=operation,
                idempotency_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
