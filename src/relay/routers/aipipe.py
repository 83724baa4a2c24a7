"""AI Pipe workflow-transform endpoint.

Proxies to ``AIPIPE_URL`` when configured. Without a URL the gateway
answers with its offline simulation, so the UI works with no external
service. Every answer carries the gateway's diagnostic headers.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import JSONResponse

from ..config import Settings
from ..dependencies import get_gateway, get_settings
from ..gateway import UpstreamGateway, resolve_credential

router = APIRouter(prefix="/api", tags=["aipipe"])


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


@router.post("/aipipe")
async def aipipe(
    payload: Any = Body(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    gateway: UpstreamGateway = Depends(get_gateway),
) -> Any:
    """Run an AI Pipe transform (or its offline simulation).

    A caller-supplied bearer token overrides the configured one.
    """
    token, auth_mode = resolve_credential(_bearer_token(authorization), settings.aipipe_token)
    result = await gateway.forward(
        settings.aipipe_url,
        payload if payload is not None else {},
        auth_token=token,
        options=gateway.tool_options(
            require_auth=settings.aipipe_require_auth,
            credential_setting="AIPIPE_TOKEN",
        ),
        auth_mode=auth_mode,
    )
    return JSONResponse(
        result.body,
        status_code=result.status,
        headers=result.diagnostics.as_headers(),
    )
