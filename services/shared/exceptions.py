"""
Lumen Shared - Exception Hierarchy.
Structured exception handling with correlation tracking for voice chat services.
"""
from __future__ import annotations
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, Field
import structlog

logger = structlog.get_logger(__name__)


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXTERNAL_SERVICE = "external_service"
    DATABASE = "database"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class ErrorContext(BaseModel):
    """Structured context for error tracking."""
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    service_name: str = Field(default="lumen-voice-chat")
    operation: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    additional_data: dict[str, Any] = Field(default_factory=dict)
    model_config = {"frozen": True}

    def with_operation(self, operation: str) -> ErrorContext:
        return self.model_copy(update={"operation": operation})

    def with_session(self, session_id: str, user_id: str | None = None) -> ErrorContext:
        return self.model_copy(update={"session_id": session_id, "user_id": user_id or self.user_id})


class LumenError(Exception):
    """Base exception for all Lumen errors with structured tracking."""
    error_code: str = "LUMEN_ERROR"
    category: ErrorCategory = ErrorCategory.INTERNAL
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, *, user_message: str | None = None,
                 context: ErrorContext | None = None, cause: Exception | None = None,
                 details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or "An error occurred. Please try again."
        self.context = context or ErrorContext()
        self.cause = cause
        self.details = details or {}
        self._log_error()

    def _log_error(self) -> None:
        log_data = {
            "error_code": self.error_code, "category": self.category.value,
            "severity": self.severity.value, "correlation_id": self.context.correlation_id,
            "operation": self.context.operation, "details": self.details,
        }
        if self.context.session_id:
            log_data["session_id"] = self.context.session_id
        if self.cause:
            log_data["cause_type"] = type(self.cause).__name__
            log_data["cause_message"] = str(self.cause)
        if self.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.error(self.message, **log_data)
        else:
            logger.warning(self.message, **log_data)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.error_code, "message": self.user_message,
                          "correlation_id": self.context.correlation_id,
                          "timestamp": self.context.timestamp.isoformat()}}


# Domain errors
class DomainError(LumenError):
    error_code = "DOMAIN_ERROR"
    category = ErrorCategory.INTERNAL


class ValidationError(DomainError):
    error_code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, *, field: str | None = None, value: Any = None,
                 **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        user_message = f"Invalid value for {field}" if field else "Validation failed"
        super().__init__(message, user_message=user_message, details=details, **kwargs)
        self.field, self.value = field, value


class SessionNotFoundError(DomainError):
    """Raised for any operation on an unknown or ended session."""
    error_code = "SESSION_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW

    def __init__(self, session_id: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["session_id"] = session_id
        super().__init__(
            f"Voice session '{session_id}' not found or already ended",
            user_message="Your session has expired. Please start a new session.",
            details=details, **kwargs,
        )
        self.session_id = session_id


class SessionAlreadyExistsError(DomainError):
    error_code = "SESSION_ALREADY_EXISTS"
    category = ErrorCategory.CONFLICT

    def __init__(self, session_id: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["session_id"] = session_id
        super().__init__(
            f"Voice session '{session_id}' was already initialized",
            user_message="This session has already been started.",
            details=details, **kwargs,
        )
        self.session_id = session_id


# Infrastructure errors
class InfrastructureError(LumenError):
    error_code = "INFRASTRUCTURE_ERROR"
    category = ErrorCategory.EXTERNAL_SERVICE
    severity = ErrorSeverity.HIGH


class DurablePersistenceError(InfrastructureError):
    """Durable session storage write or read failed."""
    error_code = "DURABLE_PERSISTENCE_ERROR"
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, *, operation: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if operation:
            details["db_operation"] = operation
        super().__init__(message, user_message="A storage error occurred", details=details, **kwargs)


class ExternalServiceError(InfrastructureError):
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service_name: str, message: str, *,
                 status_code: int | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["service_name"] = service_name
        if status_code:
            details["upstream_status"] = status_code
        kwargs.setdefault("user_message", "An external service is temporarily unavailable")
        super().__init__(message, details=details, **kwargs)
        self.service_name = service_name


class AdapterUnavailableError(ExternalServiceError):
    """Live conversation adapter could not connect or answer."""
    error_code = "ADAPTER_UNAVAILABLE"
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(service_name="live_adapter", message=message, **kwargs)


class HistoryFetchError(ExternalServiceError):
    error_code = "HISTORY_FETCH_ERROR"
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(service_name="user_history", message=message, **kwargs)


class JournalPersistenceError(ExternalServiceError):
    error_code = "JOURNAL_PERSISTENCE_ERROR"

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(service_name="journal_store", message=message, **kwargs)


class ConfigurationError(InfrastructureError):
    error_code = "CONFIGURATION_ERROR"
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, *, config_key: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, user_message="Service configuration error", details=details, **kwargs)
