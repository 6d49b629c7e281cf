"""
Lumen Shared Services Module.
Common base classes and error hierarchy shared by Lumen services.
"""
from .exceptions import (
    AdapterUnavailableError,
    ConfigurationError,
    DurablePersistenceError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    HistoryFetchError,
    JournalPersistenceError,
    LumenError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    ValidationError,
)
from .service_base import ServiceBase

__all__ = [
    "AdapterUnavailableError",
    "ConfigurationError",
    "DurablePersistenceError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "HistoryFetchError",
    "JournalPersistenceError",
    "LumenError",
    "SessionAlreadyExistsError",
    "SessionNotFoundError",
    "ValidationError",
    "ServiceBase",
]
