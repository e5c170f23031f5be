"""
Custom Exceptions Module.

This module defines all custom exceptions used throughout the receipt
pipeline. Stages raise these internally and convert them into failed
AgentResult envelopes at their boundary; only ImageDecodeFailure,
AllStrategiesExhausted and DeadlineExceeded end a run (`terminal`).
ProviderTimeout is the one failure worth repeating (`retryable`).

Exception Hierarchy:
    ReceiptPipelineError (base)
    ├── ConfigurationError
    ├── InputError
    │   ├── UnsupportedFileTypeError
    │   └── ImageDecodeFailure
    ├── ProviderError
    │   ├── ProviderUnavailable
    │   └── ProviderTimeout
    ├── ParsingError
    │   ├── LowConfidenceParse
    │   ├── MalformedResponse
    │   └── ValidationFailure
    └── PipelineError
        ├── BudgetExceeded
        ├── AllStrategiesExhausted
        └── DeadlineExceeded
"""


class ReceiptPipelineError(Exception):
    """
    Base exception for all receipt pipeline errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
        terminal: Class flag; the run ends and no fallback is attempted.
        retryable: Class flag; the same call may succeed if repeated.
    """

    terminal = False
    retryable = False

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ReceiptPipelineError):
    """Raised when a configuration value is missing or out of range."""

    def __init__(self, key: str, value, reason: str = None):
        message = f"Invalid configuration value for '{key}'"
        details = {"key": key, "value": value, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InputError(ReceiptPipelineError):
    """Base exception for input handling errors."""
    pass


class UnsupportedFileTypeError(InputError):
    """
    Raised when an unsupported file type is provided.

    Example:
        >>> raise UnsupportedFileTypeError(".doc", [".pdf", ".jpg"])
    """

    def __init__(self, file_type: str, supported_types: list):
        message = f"Unsupported file type: '{file_type}'"
        details = {"file_type": file_type, "supported_types": supported_types}
        super().__init__(message, details)


class ImageDecodeFailure(InputError):
    """Raised when a receipt image or PDF cannot be decoded. Terminal."""

    terminal = True

    def __init__(self, source: str, reason: str = None):
        message = f"Could not decode receipt image: {source}"
        details = {"source": source, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# PROVIDER ERRORS
# =============================================================================

class ProviderError(ReceiptPipelineError):
    """Base exception for recognition and text-understanding collaborators."""
    pass


class ProviderUnavailable(ProviderError):
    """Raised when a provider is not installed, not configured or unreachable."""

    def __init__(self, provider: str, reason: str = None):
        message = f"Provider not available: {provider}"
        details = {"provider": provider, "reason": reason}
        super().__init__(message, details)


class ProviderTimeout(ProviderError):
    """Raised when a provider call exceeds its timeout."""

    retryable = True

    def __init__(self, operation: str, timeout_s: float):
        message = f"{operation} timed out after {timeout_s:.1f}s"
        details = {"operation": operation, "timeout_s": timeout_s}
        super().__init__(message, details)


# =============================================================================
# PARSING ERRORS
# =============================================================================

class ParsingError(ReceiptPipelineError):
    """Base exception for parsing and quality errors."""
    pass


class LowConfidenceParse(ParsingError):
    """Raised when a parse result fails the quality gate."""

    def __init__(self, score: float, threshold: float, reasons: list = None):
        message = f"Parse quality {score:.1f} below threshold {threshold:.1f}"
        details = {"score": score, "threshold": threshold, "reasons": reasons or []}
        super().__init__(message, details)


class MalformedResponse(ParsingError):
    """Raised when a collaborator returns unparsable structured data."""

    def __init__(self, provider: str, reason: str = None):
        message = f"Malformed response from {provider}"
        details = {"provider": provider, "reason": reason}
        super().__init__(message, details)


class ValidationFailure(ParsingError):
    """Raised when required fields are still missing after coercion."""

    def __init__(self, missing_fields: list):
        message = f"Required fields missing: {', '.join(missing_fields)}"
        details = {"missing_fields": missing_fields}
        super().__init__(message, details)


# =============================================================================
# PIPELINE ERRORS
# =============================================================================

class PipelineError(ReceiptPipelineError):
    """Base exception for orchestration-level conditions."""
    pass


class BudgetExceeded(PipelineError):
    """Cost ceiling crossed. Logged as a warning, never raised past a stage."""

    def __init__(self, spent: float, budget: float, stage: str = None):
        message = f"Cost ${spent:.4f} exceeds budget ${budget:.4f}"
        details = {"spent": spent, "budget": budget, "stage": stage}
        super().__init__(message, details)


class AllStrategiesExhausted(PipelineError):
    """Raised when every fallback strategy failed or the budget ran out."""

    terminal = True

    def __init__(self, attempted: list):
        message = "All fallback strategies exhausted"
        details = {"attempted": attempted}
        super().__init__(message, details)


class DeadlineExceeded(PipelineError):
    """Raised when the caller-supplied deadline passes at a stage boundary."""

    terminal = True

    def __init__(self, stage: str):
        message = f"Deadline exceeded after stage '{stage}'"
        details = {"stage": stage}
        super().__init__(message, details)


__all__ = [
    'ReceiptPipelineError',
    'ConfigurationError',
    'InputError',
    'UnsupportedFileTypeError',
    'ImageDecodeFailure',
    'ProviderError',
    'ProviderUnavailable',
    'ProviderTimeout',
    'ParsingError',
    'LowConfidenceParse',
    'MalformedResponse',
    'ValidationFailure',
    'PipelineError',
    'BudgetExceeded',
    'AllStrategiesExhausted',
    'DeadlineExceeded',
]
