"""
Enumeration types for the domain classifier system.

These enums provide type-safe constants for service categories, transport
protocols, status codes and error codes throughout the system.
"""

from enum import Enum


class ServiceCategory(Enum):
    """Classification outcome for a traffic endpoint."""

    SMALL = "small"
    UNCLASSIFIED = "unclassified"
    GAMING = "gaming"
    STREAMING_TCP = "streaming_tcp"
    STREAMING_UDP = "streaming_udp"
    STREAMING_VIDEO = "streaming_video"
    BROWSING = "browsing"
    LIVE_STREAMING_UDP = "live_streaming_udp"
    UPLOAD_TCP = "upload_tcp"
    UPLOAD_UDP = "upload_udp"
    UNTRUSTED = "untrusted"
    UNDEFINED = "undefined"
    # Resolution in flight; never a final answer
    PENDING = "pending"

    @property
    def is_final(self) -> bool:
        """True for every category a caller may cache."""
        return self is not ServiceCategory.PENDING

    @property
    def is_resolved(self) -> bool:
        """True when the value names a real category."""
        return self not in (
            ServiceCategory.UNCLASSIFIED,
            ServiceCategory.PENDING,
        )


class TransportProtocol(Enum):
    """Transport protocol of an endpoint."""

    UDP = "udp"
    TCP = "tcp"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class RuleFileErrorCode(Enum):
    """Error codes for rule file loading failures."""

    UNREADABLE = "unreadable"
    INVALID_JSON = "invalid_json"
    INVALID_DOCUMENT = "invalid_document"
    UNKNOWN_CATEGORY = "unknown_category"
    INVALID_DESCRIPTOR = "invalid_descriptor"
    INVALID_DOMAIN = "invalid_domain"
    INVALID_PORT_RANGE = "invalid_port_range"
    DUPLICATE_DOMAIN = "duplicate_domain"


class CategorizationErrorCode(Enum):
    """Error codes for categorization API calls."""

    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    TIMEOUT = "timeout"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    RESPONSE_TOO_LARGE = "response_too_large"
    PARSE_ERROR = "parse_error"


class CategorizationStatus(Enum):
    """Categorization API query result status."""

    CLASSIFIED = "classified"
    UNCLASSIFIED = "unclassified"
    ERROR = "error"
