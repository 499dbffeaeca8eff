import time
import logging
from enum import Enum
from typing import Awaitable, Callable, Any, Optional, TypeVar

from app.services.sync_errors import CircuitOpenError, is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Stops calling a provider that keeps failing with transient errors.

    Only retryable failures count towards the threshold; an authentication
    error from one tenant says nothing about the provider's health.
    """

    def __init__(
        self,
        name: str,
        fail_threshold: int = 5,
        recovery_timeout: float = 30,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fail_threshold = fail_threshold
        self.recovery_timeout = recovery_timeout
        self._monotonic = monotonic

        self.state = CircuitState.CLOSED
        self.fail_count = 0
        self.last_fail_time: Optional[float] = None

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if self.state == CircuitState.OPEN:
            if self._monotonic() - (self.last_fail_time or 0) > self.recovery_timeout:
                logger.info(f"Circuit {self.name} entering HALF_OPEN")
                self.state = CircuitState.HALF_OPEN
            else:
                logger.warning(f"Circuit {self.name} is OPEN. Blocking call.")
                raise CircuitOpenError(f"Circuit {self.name} is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if is_retryable_error(e):
                self._record_failure(e)
            raise

        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit {self.name} restored to CLOSED")
        self.state = CircuitState.CLOSED
        self.fail_count = 0
        return result

    def _record_failure(self, error: Exception) -> None:
        self.fail_count += 1
        self.last_fail_time = self._monotonic()
        logger.error(f"Circuit {self.name} failure {self.fail_count}/{self.fail_threshold}: {error}")

        if self.state == CircuitState.HALF_OPEN or self.fail_count >= self.fail_threshold:
            logger.error(f"Circuit {self.name} tripped to OPEN")
            self.state = CircuitState.OPEN
