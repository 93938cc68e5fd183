"""
Exception hierarchy for template rendering and sandboxed execution.

Each class maps onto one ``ErrorType``; plain Python errors raised by
expressions (NameError, TypeError, ...) are mapped by the error classifier.
"""

from enum import Enum


class ErrorType(str, Enum):
    SYNTAX = "SYNTAX_ERROR"
    REFERENCE = "REFERENCE_ERROR"
    TYPE = "TYPE_ERROR"
    SECURITY = "SECURITY_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    NESTING_EXCEEDED = "NESTING_ERROR"
    ITERATION_EXCEEDED = "ITERATION_ERROR"
    MODULE_NOT_ALLOWED = "MODULE_ERROR"
    HELPER_INVALID = "HELPER_ERROR"
    JSON_PARSE = "JSON_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class TemplateEngineError(Exception):
    """Base class for errors raised by promptbox itself."""

    error_type: ErrorType = ErrorType.UNKNOWN


class SecurityViolationError(TemplateEngineError):
    """Source was rejected by the security scanner or a sandbox guard."""

    error_type = ErrorType.SECURITY

    def __init__(self, message: str, *, category: str | None = None, snippet: str | None = None) -> None:
        super().__init__(message)
        self.category = category
        self.snippet = snippet


class ExecutionTimeoutError(TemplateEngineError, TimeoutError):
    """Raised when an expression, helper or async call exceeds its budget."""

    error_type = ErrorType.TIMEOUT


class NestingDepthExceededError(TemplateEngineError):
    error_type = ErrorType.NESTING_EXCEEDED


class IterationLimitExceededError(TemplateEngineError):
    error_type = ErrorType.ITERATION_EXCEEDED


class UnclosedExpressionError(TemplateEngineError, SyntaxError):
    """A ``{{`` without a matching ``}}``."""

    error_type = ErrorType.SYNTAX

    def __init__(self, message: str, *, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class ModuleNotAllowedError(TemplateEngineError, ImportError):
    error_type = ErrorType.MODULE_NOT_ALLOWED


class HelperInvalidError(TemplateEngineError):
    """Helper source is not a function or does not return a value."""

    error_type = ErrorType.HELPER_INVALID


class ArgumentLimitError(TemplateEngineError, ValueError):
    """A helper argument is too large, too deep or otherwise out of bounds."""

    error_type = ErrorType.TYPE
