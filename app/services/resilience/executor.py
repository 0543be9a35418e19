"""Retry executor for calls to external services."""
import asyncio
import logging
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from app.core.errors import (
    CallEndedError,
    ErrorCategory,
    ErrorReport,
    ErrorSeverity,
    ErrorType,
    OperationTimeoutError,
    categorize_error,
    determine_severity,
)
from app.services.resilience.policies import (
    DEFAULT_RETRY_POLICIES,
    RetryPolicy,
    compute_delay_ms,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Runs async operations under a per-category retry policy.

    The executor knows nothing about what an operation does. Each attempt is
    raced against the policy timeout, failures are retried with the policy's
    backoff, and the terminal outcome is handed to the audit recorder.
    """

    def __init__(
        self,
        policies: Optional[Dict[ErrorCategory, RetryPolicy]] = None,
        recorder: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policies: Dict[ErrorCategory, RetryPolicy] = dict(DEFAULT_RETRY_POLICIES)
        if policies:
            self.policies.update(policies)
        self.recorder = recorder
        self._sleep = sleep

    def get_policy(self, category: ErrorCategory) -> RetryPolicy:
        """Look up the retry policy for a category."""
        policy = self.policies.get(category)
        if policy is None:
            raise KeyError(f"No retry policy configured for category '{category.value}'")
        return policy

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        category: ErrorCategory,
        context: Optional[Dict[str, Any]] = None,
        *,
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        should_continue: Optional[Callable[[], bool]] = None,
        policy_override: Optional[RetryPolicy] = None,
    ) -> T:
        """
        Execute an operation, retrying failures according to policy.

        Args:
            operation: Zero-argument callable returning an awaitable
            category: Error category, selects the retry policy
            context: Diagnostic fields attached to logs and audit rows
            is_retryable: Predicate; returning False propagates the error
                immediately. Every failure is retried when omitted.
            should_continue: Liveness check evaluated before each retry;
                returning False aborts the sequence with CallEndedError
            policy_override: Policy to use instead of the category default

        Returns:
            The operation's result

        Raises:
            The last error raised by the operation, with ``retry_attempts``
            and ``retry_category`` attributes attached.
        """
        policy = policy_override or self.get_policy(category)
        context = dict(context or {})
        last_error: Optional[Exception] = None
        attempt = 0

        while True:
            try:
                result = await self._with_timeout(operation(), policy.timeout_ms, category)
            except Exception as e:
                last_error = e
                attempt += 1
                retryable = is_retryable(e) if is_retryable is not None else True
                is_last_attempt = attempt > policy.max_retries or not retryable

                logger.warning(
                    f"[RETRY] Operation failed - category: {category.value}, "
                    f"attempt: {attempt}/{policy.max_retries + 1}, "
                    f"error: {type(e).__name__}: {e}, will_retry: {not is_last_attempt}, "
                    f"context: {context}"
                )

                if is_last_attempt:
                    await self._record_terminal_failure(e, category, context, attempt, policy)
                    e.retry_attempts = attempt
                    e.retry_category = category.value
                    raise

                delay_ms = compute_delay_ms(attempt, policy)
                logger.debug(
                    f"[RETRY] Retrying in {delay_ms}ms - category: {category.value}, "
                    f"attempt: {attempt}"
                )
                await self._sleep(delay_ms / 1000)

                if should_continue is not None and not should_continue():
                    ended = CallEndedError(context.get("call_id"))
                    logger.warning(
                        f"[RETRY] Abandoning retries, call session is gone - "
                        f"category: {category.value}, attempts: {attempt}, context: {context}"
                    )
                    await self._record(
                        ErrorReport(
                            error_type=ended.error_type,
                            category=category,
                            message=f"{ended.message}; last error: {last_error}",
                            call_id=context.get("call_id"),
                            context=context,
                            retry_attempt=attempt,
                            max_retries=policy.max_retries,
                            retry_successful=False,
                            severity=ErrorSeverity.WARNING,
                        )
                    )
                    raise ended from last_error
                continue

            if attempt > 0:
                logger.info(
                    f"[RETRY] Operation recovered after retry - category: {category.value}, "
                    f"attempts: {attempt + 1}, context: {context}"
                )
                await self._record(
                    ErrorReport(
                        error_type=ErrorType.EXTERNAL_API,
                        category=category,
                        message=str(last_error) if last_error else "Unknown error",
                        call_id=context.get("call_id"),
                        context=context,
                        retry_attempt=attempt,
                        max_retries=policy.max_retries,
                        retry_successful=True,
                        severity=ErrorSeverity.WARNING,
                    )
                )
            return result

    async def _with_timeout(
        self, awaitable: Awaitable[T], timeout_ms: Optional[int], category: ErrorCategory
    ) -> T:
        """Race an attempt against the policy timeout."""
        if not timeout_ms:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(timeout_ms, category)

    async def _record_terminal_failure(
        self,
        error: Exception,
        category: ErrorCategory,
        context: Dict[str, Any],
        attempt: int,
        policy: RetryPolicy,
    ) -> None:
        severity = determine_severity(error, category)
        logger.error(
            f"[RETRY] Operation failed permanently - category: {category.value}, "
            f"attempts: {attempt}, severity: {severity.value}, "
            f"error: {type(error).__name__}: {error}"
        )
        await self._record(
            ErrorReport(
                error_type=categorize_error(error),
                category=category,
                message=str(error) or type(error).__name__,
                stack="".join(traceback.format_exception(type(error), error, error.__traceback__)),
                call_id=context.get("call_id"),
                context=context,
                retry_attempt=attempt - 1,
                max_retries=policy.max_retries,
                retry_successful=False,
                severity=severity,
            )
        )

    async def _record(self, report: ErrorReport) -> None:
        if self.recorder is None:
            return
        try:
            await self.recorder.record_error(report)
        except Exception:
            logger.exception("[RETRY] Failed to record error report")
