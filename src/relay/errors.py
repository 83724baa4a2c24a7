"""Error types for the relay.

These exceptions form a closed taxonomy. Each type carries the HTTP status
the relay answers with, and the application's exception handlers render
them as ``{"error": {"message": ..., ...details}}``. ``UpstreamRejected`` is
the one exception: the upstream body is returned verbatim.
"""

from enum import Enum
from typing import Any, Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict:
        """Render the error as a JSON-serializable response body."""
        return {"error": {"message": self.message, **self.details}}


class ConfigurationMissing(RelayError):
    """Raised when a required endpoint or setting is not configured.

    HTTP: 500 Internal Server Error
    """

    def __init__(self, setting: str, message: Optional[str] = None):
        super().__init__(message or f"{setting} not set", {"setting": setting})
        self.setting = setting


class CredentialMissingError(ConfigurationMissing):
    """Raised when an endpoint requires a credential and none is available.

    Detected before any network call is made.

    HTTP: 401 Unauthorized
    """

    status_code = 401

    def __init__(self, setting: str, endpoint: str = ""):
        message = f"No credential available: {setting} not set"
        super().__init__(setting, message)
        if endpoint:
            self.details["endpoint"] = endpoint
        self.endpoint = endpoint


class TransportFault(str, Enum):
    """Network-level failure tags assigned by the transport layer."""

    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    DNS_FAILURE = "dns_failure"
    TLS_FAILURE = "tls_failure"
    NETWORK_UNREACHABLE = "network_unreachable"
    FETCH_FAILED = "fetch_failed"
    SOCKET_CLOSED = "socket_closed"
    INVALID_REQUEST = "invalid_request"

    @property
    def is_transient(self) -> bool:
        return self is not TransportFault.INVALID_REQUEST


class TransportError(RelayError):
    """Raised when the request never produced an HTTP response.

    HTTP: 504 Gateway Timeout for timeouts, 502 Bad Gateway otherwise
    """

    def __init__(self, fault: TransportFault, message: str, endpoint: str = ""):
        details = {"fault": fault.value}
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, details)
        self.fault = fault
        self.endpoint = endpoint
        self.status_code = 504 if fault is TransportFault.TIMEOUT else 502

    @property
    def is_transient(self) -> bool:
        """Check if this error is safe to retry."""
        return self.fault.is_transient


class UpstreamRejected(RelayError):
    """Raised when the upstream answered non-2xx with a JSON body.

    HTTP: the upstream status, body passed through unchanged
    """

    def __init__(self, status_code: int, body: Any):
        super().__init__(
            f"Upstream rejected request with HTTP {status_code}",
            {"upstream_status": status_code},
        )
        self.status_code = status_code
        self.body = body

    def to_payload(self) -> Any:
        return self.body


class MalformedUpstreamBody(RelayError):
    """Raised when the upstream body is not valid JSON.

    HTTP: 502 Bad Gateway
    """

    status_code = 502

    def __init__(self, upstream_status: int, excerpt: str = ""):
        message = f"Upstream returned a non-JSON body (HTTP {upstream_status})"
        details = {"upstream_status": upstream_status}
        if excerpt:
            details["body_excerpt"] = excerpt
        super().__init__(message, details)
        self.upstream_status = upstream_status
