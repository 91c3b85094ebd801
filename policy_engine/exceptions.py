"""
Exception hierarchy for the policy engine.

All errors raised by the engine derive from PolicyEngineError. Errors that
carry diagnostic detail (the key involved, the underlying error, a map of
per-item failures) derive from PolicyEngineDetailError.
"""

from typing import Dict, Optional


class PolicyEngineError(Exception):
    """Base exception for all policy engine errors.

    Attributes:
        message: Human readable description of the failure.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class PolicyEngineDetailError(PolicyEngineError):
    """Policy engine error with contextual diagnostic information.

    Attributes:
        key: The specific key or field that caused the error, if applicable.
        original_error: The underlying error that led to this one, if any.
        errors: Field-specific failures collected during processing, if any.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        errors: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.original_error = original_error
        self.errors = errors

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.key is not None:
            parts.append(f"(key: {self.key})")
        if self.original_error is not None:
            parts.append(f"(original: {self.original_error})")
        if self.errors:
            parts.append(f"({len(self.errors)} total errors)")
        return " ".join(parts)


class StorageError(PolicyEngineDetailError):
    """Raised when a policy storage backend cannot load, save or clear policies.

    Covers an unreachable backend, corrupted or unparseable contents, a
    backend that is not writable, and payloads that fail backend validation.
    """

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        errors: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message, key=key, original_error=original_error, errors=errors)
        self.backend = backend


class JsonParseError(PolicyEngineDetailError):
    """Raised when JSON input cannot be parsed into the expected structure."""


class JsonSerializeError(PolicyEngineDetailError):
    """Raised when values cannot be serialized to a JSON-compatible structure."""


class ConfigurationError(PolicyEngineError):
    """Raised when the engine configuration file is unreadable or invalid."""


def summarize_errors(errors: Dict[str, str], limit: int = 3) -> str:
    """Render the first few per-key errors as "key: message" pairs."""
    return ", ".join(f"{key}: {message}" for key, message in list(errors.items())[:limit])
