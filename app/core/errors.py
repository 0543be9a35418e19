"""Error taxonomy shared by the orchestrator components."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorType(str, Enum):
    """What kind of failure occurred."""

    NETWORK = "network"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    EXTERNAL_API = "external_api"


class ErrorCategory(str, Enum):
    """Which external collaborator the failure belongs to.

    Also used as the lookup key for retry policies.
    """

    DIALER = "dialer"
    CRM = "crm"
    SMS = "sms"
    DATABASE = "database"
    VOICE_PLATFORM = "voice-platform"


class ErrorSeverity(str, Enum):
    """How loudly a failure should be reported."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class OrchestratorError(Exception):
    """Base class for errors raised by the orchestrator."""

    error_type: ErrorType = ErrorType.BUSINESS_LOGIC
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(self, message: str, category: Optional[ErrorCategory] = None):
        super().__init__(message)
        self.message = message
        self.category = category


class OperationTimeoutError(OrchestratorError):
    """An attempt exceeded its policy timeout."""

    error_type = ErrorType.NETWORK
    severity = ErrorSeverity.WARNING

    def __init__(self, timeout_ms: int, category: Optional[ErrorCategory] = None):
        super().__init__(f"Operation timed out after {timeout_ms}ms", category)
        self.timeout_ms = timeout_ms


class CircuitOpenError(OrchestratorError):
    """A call was rejected because the service's circuit breaker is open."""

    error_type = ErrorType.EXTERNAL_API
    severity = ErrorSeverity.CRITICAL

    def __init__(self, service_name: str, failure_count: int):
        super().__init__(f"Circuit breaker open for {service_name}")
        self.service_name = service_name
        self.failure_count = failure_count


class DialerAPIError(OrchestratorError):
    """The dialer answered with an error status or an unusable body."""

    error_type = ErrorType.EXTERNAL_API

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, ErrorCategory.DIALER)
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        """4xx responses other than rate limiting are the caller's fault."""
        return (
            self.status_code is not None
            and 400 <= self.status_code < 500
            and self.status_code != 429
        )


class ExtensionPoolExhaustedError(OrchestratorError):
    """No agent extension is free for a new call."""

    def __init__(self, pool_size: int):
        super().__init__(f"All {pool_size} agent extensions are leased")
        self.pool_size = pool_size


class CallEndedError(OrchestratorError):
    """A retry sequence was abandoned because its call session has ended."""

    severity = ErrorSeverity.WARNING

    def __init__(self, call_id: Optional[str]):
        super().__init__(f"Call session {call_id} ended before the operation completed")
        self.call_id = call_id


class ErrorReport(BaseModel):
    """A failure as it is written to the audit store."""

    error_type: ErrorType
    category: ErrorCategory
    message: str
    stack: Optional[str] = None
    call_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    retry_attempt: int = 0
    max_retries: int = 0
    retry_successful: Optional[bool] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Substrings that mark a failure as transient
RETRYABLE_PATTERNS = [
    "econnrefused",
    "etimedout",
    "enotfound",
    "econnreset",
    "epipe",
    "connection reset",
    "connection refused",
    "timeout",
    "timed out",
    "network",
    "5xx",
    "rate limit",
    "too many requests",
]


def is_retryable_error(error: BaseException) -> bool:
    """Check whether an error looks transient."""
    if isinstance(error, (OperationTimeoutError, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, DialerAPIError) and error.status_code is not None:
        return not error.is_client_error

    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_PATTERNS)


def categorize_error(error: BaseException) -> ErrorType:
    """Derive an ErrorType from an exception."""
    if isinstance(error, OrchestratorError):
        return error.error_type
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorType.NETWORK

    message = str(error).lower()
    if any(word in message for word in ("network", "econnrefused", "timeout", "enotfound")):
        return ErrorType.NETWORK
    if "validation" in message or "invalid" in message:
        return ErrorType.VALIDATION
    if "api" in message or "external" in message:
        return ErrorType.EXTERNAL_API
    return ErrorType.BUSINESS_LOGIC


def determine_severity(error: BaseException, category: ErrorCategory) -> ErrorSeverity:
    """Storage failures and open circuits are critical regardless of message."""
    if category == ErrorCategory.DATABASE or isinstance(error, CircuitOpenError):
        return ErrorSeverity.CRITICAL

    message = str(error).lower()
    if "critical" in message or "fatal" in message:
        return ErrorSeverity.CRITICAL
    if isinstance(error, OperationTimeoutError) or any(
        word in message for word in ("validation", "retry", "timeout")
    ):
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR
