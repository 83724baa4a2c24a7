"""Upstream gateway: the relay's single way of calling out.

Issues one HTTP request per call with a per-attempt timeout and a bounded
retry loop for transient transport faults. Everything else (non-2xx
answers, undecodable bodies, missing credentials) is surfaced immediately
as a typed ``RelayError``.

When no endpoint is configured the gateway answers locally with an offline
simulation instead of calling out, tagged ``mode="mock"`` in its
diagnostics.
"""

import errno
import logging
import socket
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from .config import Settings
from .errors import (
    CredentialMissingError,
    MalformedUpstreamBody,
    TransportError,
    TransportFault,
    UpstreamRejected,
)
from .timeouts import Timeouts
from .utils import credential_fingerprint

logger = logging.getLogger(__name__)

AUTH_MODE_NONE = "none"
AUTH_MODE_HEADER = "header"
AUTH_MODE_ENV = "env"

MOCK_STEPS = ("parse", "analyze", "summarize")

BODY_EXCERPT_LENGTH = 200

DIAGNOSTIC_HEADERS = (
    "X-Relay-Mode",
    "X-Relay-Auth-Mode",
    "X-Relay-Auth-Bearer",
    "X-Relay-Auth-Len",
    "X-Relay-Auth-Hash",
)


@dataclass
class ForwardOptions:
    """Per-call settings for ``UpstreamGateway.forward``.

    Attributes:
        timeout_seconds: Timeout armed afresh for every attempt.
        max_attempts: Total attempts, first try included.
        retry_backoff_seconds: Fixed pause between attempts.
        require_auth: Refuse to call out without a credential.
        method: HTTP method. ``GET`` sends no body.
        params: Query parameters. Never carries the credential.
        auth_header: Header carrying the credential.
        auth_scheme: Prefix before the credential; empty sends it raw.
        credential_setting: Setting name reported when the credential is missing.
    """

    timeout_seconds: float = Timeouts.UPSTREAM_REQUEST
    max_attempts: int = Timeouts.UPSTREAM_MAX_ATTEMPTS
    retry_backoff_seconds: float = Timeouts.RETRY_BACKOFF
    require_auth: bool = False
    method: str = "POST"
    params: Optional[Dict[str, str]] = None
    auth_header: str = "Authorization"
    auth_scheme: str = "Bearer"
    credential_setting: str = "credential"

    @property
    def uses_bearer(self) -> bool:
        return self.auth_scheme.strip().lower() == "bearer"


@dataclass
class AuthDiagnostics:
    """What kind of credential a call used, without the credential itself."""

    mode: str
    auth_mode: str = AUTH_MODE_NONE
    bearer: bool = False
    auth_len: int = 0
    auth_hash: str = ""

    def as_headers(self) -> Dict[str, str]:
        """Render the diagnostics as response headers."""
        values = (
            self.mode,
            self.auth_mode,
            "true" if self.bearer else "false",
            str(self.auth_len),
            self.auth_hash,
        )
        return dict(zip(DIAGNOSTIC_HEADERS, values))


@dataclass
class GatewayResult:
    """A decoded 2xx upstream answer (or the offline simulation)."""

    status: int
    body: Any
    diagnostics: AuthDiagnostics
    attempts: int = 0

    @property
    def is_mock(self) -> bool:
        return self.diagnostics.mode == "mock"


def resolve_credential(
    override: Optional[str],
    configured: Optional[str],
) -> Tuple[Optional[str], str]:
    """Pick the credential for a call and report where it came from.

    A caller-supplied override wins over the configured default.

    Returns:
        ``(token, auth_mode)`` with auth_mode one of none/header/env.
    """
    override = (override or "").strip()
    if override:
        return override, AUTH_MODE_HEADER
    configured = (configured or "").strip()
    if configured:
        return configured, AUTH_MODE_ENV
    return None, AUTH_MODE_NONE


def describe_credential(
    token: Optional[str],
    auth_mode: str,
    mode: str,
    bearer: bool,
) -> AuthDiagnostics:
    """Build diagnostics for ``token`` (length and fingerprint only)."""
    if not token:
        return AuthDiagnostics(mode=mode)
    return AuthDiagnostics(
        mode=mode,
        auth_mode=auth_mode,
        bearer=bearer,
        auth_len=len(token),
        auth_hash=credential_fingerprint(token),
    )


def _exception_chain(exc: BaseException):
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(exc: Exception) -> TransportFault:
    """Map an httpx transport exception to a fault tag.

    The underlying OS error (kept on the exception chain by httpx and
    httpcore) decides between DNS, TLS, reset and unreachable faults.
    """
    if isinstance(exc, httpx.TimeoutException):
        return TransportFault.TIMEOUT
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.LocalProtocolError, httpx.InvalidURL)):
        return TransportFault.INVALID_REQUEST
    if isinstance(exc, httpx.RemoteProtocolError):
        return TransportFault.SOCKET_CLOSED
    if isinstance(exc, httpx.CloseError):
        return TransportFault.SOCKET_CLOSED

    for cause in _exception_chain(exc):
        if isinstance(cause, ssl.SSLError):
            return TransportFault.TLS_FAILURE
        if isinstance(cause, socket.gaierror):
            return TransportFault.DNS_FAILURE
        if isinstance(cause, (ConnectionResetError, ConnectionRefusedError, ConnectionAbortedError)):
            return TransportFault.CONNECTION_RESET
        if isinstance(cause, OSError) and cause.errno in (errno.ENETUNREACH, errno.EHOSTUNREACH):
            return TransportFault.NETWORK_UNREACHABLE

    if isinstance(exc, (httpx.ReadError, httpx.WriteError)):
        return TransportFault.CONNECTION_RESET
    return TransportFault.FETCH_FAILED


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.is_transient


def offline_simulation(payload: Any, now: datetime) -> dict:
    """Answer an AI Pipe request locally, echoing the caller's input."""
    received = payload.get("input", "") if isinstance(payload, dict) else ""
    summary = (
        f'AI Pipe mock processed: "{received}"'
        if received
        else "AI Pipe mock: no input provided."
    )
    timestamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return {
        "ok": True,
        "engine": "mock",
        "received_input": received,
        "steps": [{"name": name, "status": "ok"} for name in MOCK_STEPS],
        "summary": summary,
        "timestamp": timestamp.replace("+00:00", "Z"),
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpstreamGateway:
    """Sends JSON requests to upstream providers and tools.

    One instance per application. The httpx client (and its connection
    pool) is created lazily and shared by concurrent requests.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._clock = clock or _utcnow
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.upstream_timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def tool_options(self, **overrides: Any) -> ForwardOptions:
        """Options for short tool calls (search, AI Pipe)."""
        values = {
            "timeout_seconds": self.settings.upstream_timeout_seconds,
            "max_attempts": self.settings.upstream_max_attempts,
            "retry_backoff_seconds": self.settings.upstream_retry_backoff_seconds,
        }
        values.update(overrides)
        return ForwardOptions(**values)

    def chat_options(self, **overrides: Any) -> ForwardOptions:
        """Options for LLM chat completions."""
        values = {
            "timeout_seconds": self.settings.chat_timeout_seconds,
            "max_attempts": self.settings.chat_max_attempts,
            "retry_backoff_seconds": self.settings.upstream_retry_backoff_seconds,
            "require_auth": True,
        }
        values.update(overrides)
        return ForwardOptions(**values)

    async def forward(
        self,
        endpoint: Optional[str],
        payload: Any = None,
        auth_token: Optional[str] = None,
        options: Optional[ForwardOptions] = None,
        auth_mode: Optional[str] = None,
    ) -> GatewayResult:
        """Send ``payload`` to ``endpoint`` and decode the JSON answer.

        Args:
            endpoint: Target URL. Empty means answer with the offline simulation.
            payload: JSON body (ignored for GET).
            auth_token: Credential to attach, if any.
            options: Timeout, retry and auth header settings.
            auth_mode: Where the credential came from (see ``resolve_credential``).

        Returns:
            GatewayResult for a 2xx JSON answer or the offline simulation.

        Raises:
            CredentialMissingError: ``require_auth`` and no credential.
            TransportError: No HTTP response after the allowed attempts.
            UpstreamRejected: Non-2xx answer with a JSON body.
            MalformedUpstreamBody: Answer body is not JSON.
        """
        options = options or ForwardOptions()
        if auth_mode is None:
            auth_mode = AUTH_MODE_ENV if auth_token else AUTH_MODE_NONE

        if not endpoint:
            diagnostics = describe_credential(auth_token, auth_mode, "mock", options.uses_bearer)
            logger.info("[Gateway] No endpoint configured, answering with offline simulation")
            return GatewayResult(
                status=200,
                body=offline_simulation(payload, self._clock()),
                diagnostics=diagnostics,
            )

        if options.require_auth and not auth_token:
            logger.warning(
                "[Gateway] Refusing %s %s: %s not set",
                options.method,
                endpoint,
                options.credential_setting,
            )
            raise CredentialMissingError(options.credential_setting, endpoint)

        diagnostics = describe_credential(auth_token, auth_mode, "proxy", options.uses_bearer)
        headers = {"Content-Type": "application/json"}
        params = dict(options.params or {})
        if auth_token:
            scheme = options.auth_scheme.strip()
            headers[options.auth_header] = f"{scheme} {auth_token}" if scheme else auth_token

        attempts = 0
        response: Optional[httpx.Response] = None
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, options.max_attempts)),
            wait=wait_fixed(options.retry_backoff_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                response = await self._send(endpoint, payload, headers, params, options)

        logger.info(
            "[Gateway] %s %s -> %s (attempts=%s auth=%s hash=%s)",
            options.method,
            endpoint,
            response.status_code,
            attempts,
            diagnostics.auth_mode,
            diagnostics.auth_hash or "-",
        )
        return GatewayResult(
            status=response.status_code,
            body=self._decode(response),
            diagnostics=diagnostics,
            attempts=attempts,
        )

    async def _send(
        self,
        endpoint: str,
        payload: Any,
        headers: Dict[str, str],
        params: Dict[str, str],
        options: ForwardOptions,
    ) -> httpx.Response:
        """Issue one attempt, translating transport failures to fault tags."""
        method = options.method.upper()
        try:
            return await self.client.request(
                method,
                endpoint,
                json=None if method == "GET" else (payload if payload is not None else {}),
                params=params or None,
                headers=headers,
                timeout=httpx.Timeout(options.timeout_seconds),
            )
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            fault = classify_transport_error(exc)
            detail = str(exc) or type(exc).__name__
            raise TransportError(
                fault,
                f"Upstream request failed ({fault.value}): {detail}",
                endpoint,
            ) from exc

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            raise MalformedUpstreamBody(
                response.status_code, response.text[:BODY_EXCERPT_LENGTH]
            ) from None
        if not response.is_success:
            raise UpstreamRejected(response.status_code, body)
        return body
