"""Web search snippets through Google Programmable Search.

Docs: https://developers.google.com/custom-search/v1/overview
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..config import Settings
from ..dependencies import get_gateway, get_settings
from ..errors import ConfigurationMissing
from ..gateway import UpstreamGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


def _snippets(body: Any) -> list:
    """Reduce a Custom Search response to title/link/snippet items."""
    items = body.get("items") if isinstance(body, dict) else None
    return [
        {
            "title": item.get("title"),
            "link": item.get("link"),
            "snippet": item.get("snippet"),
        }
        for item in items or []
        if isinstance(item, dict)
    ]


@router.get("/search")
async def search(
    q: str = "",
    settings: Settings = Depends(get_settings),
    gateway: UpstreamGateway = Depends(get_gateway),
) -> Any:
    query = q.strip()
    if not query:
        return JSONResponse({"error": "Missing q"}, status_code=400)
    if not settings.google_api_key or not settings.google_cse_id:
        raise ConfigurationMissing("GOOGLE_API_KEY/GOOGLE_CSE_ID")

    result = await gateway.forward(
        settings.google_search_url,
        auth_token=settings.google_api_key,
        options=gateway.tool_options(
            method="GET",
            params={"cx": settings.google_cse_id, "q": query},
            auth_header="x-goog-api-key",
            auth_scheme="",
            credential_setting="GOOGLE_API_KEY",
        ),
    )
    items = _snippets(result.body)
    logger.info("[Search] %s result(s)", len(items))
    return {"query": query, "items": items}
