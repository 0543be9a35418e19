"""Circuit breakers for external services."""
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from app.core.errors import (
    CircuitOpenError,
    ErrorCategory,
    ErrorReport,
    ErrorSeverity,
    ErrorType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class CircuitState(str, Enum):
    """Breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail-fast guard around one external service.

    Consecutive failures while closed are counted; reaching the threshold opens
    the circuit. While open, calls are rejected without running the operation
    until ``reset_timeout_ms`` has passed since the last failure. The next call
    then runs as a trial: success closes the circuit, failure re-opens it.
    """

    def __init__(
        self,
        service_name: str,
        threshold: int = 5,
        reset_timeout_ms: int = 60000,
        category: ErrorCategory = ErrorCategory.DIALER,
        recorder: Optional[Any] = None,
        clock: Callable[[], float] = _monotonic_ms,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
    ):
        self.service_name = service_name
        self.threshold = threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.category = category
        self.recorder = recorder
        self.ignored_exceptions = ignored_exceptions
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._trial_in_flight = False

    @property
    def is_open(self) -> bool:
        return self.state != CircuitState.CLOSED

    def _reset_timeout_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._clock() - self.last_failure_time > self.reset_timeout_ms

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation through the breaker.

        Raises:
            CircuitOpenError: if the circuit is open (or a trial is already
                running), without calling the operation
        """
        is_trial = False
        if self.state == CircuitState.OPEN and self._reset_timeout_elapsed():
            self.state = CircuitState.HALF_OPEN
            logger.info(
                f"[CIRCUIT BREAKER] {self.service_name} HALF_OPEN - allowing trial call"
            )

        if self.state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                await self._reject()
            is_trial = True
            self._trial_in_flight = True
        elif self.state == CircuitState.OPEN:
            await self._reject()

        try:
            result = await operation()
        except self.ignored_exceptions:
            if is_trial:
                # Inconclusive trial; stay half-open for the next caller
                self._trial_in_flight = False
            raise
        except Exception:
            await self._on_failure(is_trial)
            raise

        self._on_success(is_trial)
        return result

    def reset(self) -> None:
        """Manually close the circuit."""
        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self._trial_in_flight = False
        logger.info(f"[CIRCUIT BREAKER] {self.service_name} manually reset")

    def _on_success(self, is_trial: bool) -> None:
        if is_trial:
            self._trial_in_flight = False
            logger.info(f"[CIRCUIT BREAKER] {self.service_name} CLOSED - recovery confirmed")
        elif self.failure_count > 0:
            logger.info(f"[CIRCUIT BREAKER] {self.service_name} recovered")
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    async def _on_failure(self, is_trial: bool) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if is_trial:
            self._trial_in_flight = False
            self.state = CircuitState.OPEN
            logger.error(
                f"[CIRCUIT BREAKER] {self.service_name} trial call failed - circuit re-opened"
            )
            return

        if self.failure_count >= self.threshold and self.state == CircuitState.CLOSED:
            self.state = CircuitState.OPEN
            logger.error(
                f"[CIRCUIT BREAKER] {self.service_name} OPENED - "
                f"failures: {self.failure_count}, threshold: {self.threshold}"
            )
            await self._record(
                f"Circuit breaker opened after {self.failure_count} failures"
            )

    async def _reject(self) -> None:
        error = CircuitOpenError(self.service_name, self.failure_count)
        logger.critical(
            f"[CIRCUIT BREAKER] Rejecting call to {self.service_name} - circuit open, "
            f"failures: {self.failure_count}"
        )
        await self._record(error.message)
        raise error

    async def _record(self, message: str) -> None:
        if self.recorder is None:
            return
        try:
            await self.recorder.record_error(
                ErrorReport(
                    error_type=ErrorType.EXTERNAL_API,
                    category=self.category,
                    message=message,
                    context={
                        "service": self.service_name,
                        "failures": self.failure_count,
                        "threshold": self.threshold,
                    },
                    severity=ErrorSeverity.CRITICAL,
                )
            )
        except Exception:
            logger.exception("[CIRCUIT BREAKER] Failed to record breaker event")


class CircuitBreakerRegistry:
    """Owns one breaker per service name for the registry's lifetime."""

    def __init__(
        self,
        recorder: Optional[Any] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.recorder = recorder
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def create_circuit_breaker(
        self,
        service_name: str,
        threshold: int = 5,
        reset_timeout_ms: int = 60000,
        category: ErrorCategory = ErrorCategory.DIALER,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
    ) -> CircuitBreaker:
        """Return the breaker for a service, creating it on first use."""
        breaker = self._breakers.get(service_name)
        if breaker is None:
            breaker = CircuitBreaker(
                service_name,
                threshold=threshold,
                reset_timeout_ms=reset_timeout_ms,
                category=category,
                recorder=self.recorder,
                clock=self._clock,
                ignored_exceptions=ignored_exceptions,
            )
            self._breakers[service_name] = breaker
            logger.info(
                f"[CIRCUIT BREAKER] Created breaker for {service_name} - "
                f"threshold: {threshold}, reset_timeout_ms: {reset_timeout_ms}"
            )
        return breaker

    def get(self, service_name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(service_name)

    def states(self) -> Dict[str, str]:
        return {name: breaker.state.value for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
