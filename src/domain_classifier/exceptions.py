"""
Exception classes for the domain classifier system.

All exceptions inherit from DomainClassifierError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DomainClassifierError(Exception):
    """Base exception for all domain classifier errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class RuleFileError(DomainClassifierError):
    """Raised when a rule document cannot be read or is structurally invalid."""

    pass


class ConfigurationError(DomainClassifierError):
    """Raised when configuration values are invalid."""

    pass


class NetworkError(DomainClassifierError):
    """Raised when network operations fail."""

    pass


class ProtocolError(DomainClassifierError):
    """Raised when a categorization reply is malformed."""

    pass


class WorkerError(DomainClassifierError):
    """Raised when a background worker cannot be started."""

    pass
