"""Error classification, recovery and suggestions."""

from skillcore.recovery.handler import (
    DefaultErrorClassifier,
    ErrorClassification,
    ErrorClassifier,
    ErrorHandler,
    ErrorHandlingResult,
    RecoverySuggestion,
    wrap_exception,
)
from skillcore.recovery.strategies import (
    ErrorContext,
    ExecutionRecoveryStrategy,
    FallbackResult,
    RecoveryResult,
    RecoveryStrategy,
    RegistryRecoveryStrategy,
    ValidationRecoveryStrategy,
)

__all__ = [
    "DefaultErrorClassifier",
    "ErrorClassification",
    "ErrorClassifier",
    "ErrorContext",
    "ErrorHandler",
    "ErrorHandlingResult",
    "ExecutionRecoveryStrategy",
    "FallbackResult",
    "RecoveryResult",
    "RecoveryStrategy",
    "RecoverySuggestion",
    "RegistryRecoveryStrategy",
    "ValidationRecoveryStrategy",
    "wrap_exception",
]
