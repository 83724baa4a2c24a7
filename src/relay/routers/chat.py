"""Chat endpoints.

File Summary:
- chat: OpenAI-compatible pass-through to the configured provider (Groq)
- gemini_chat: OpenAI-shaped request converted for the Gemini-style provider,
  answered as a chat.completion envelope so the UI handles both alike

Upstream error bodies are returned verbatim with the upstream status by the
application's ``UpstreamRejected`` handler.
"""

import logging
import re
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..adapter import (
    from_native_response,
    to_completion,
    to_native_request,
    to_passthrough_request,
)
from ..config import Settings
from ..dependencies import get_gateway, get_settings
from ..gateway import UpstreamGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

MODEL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]*$")


@router.post("/chat")
async def chat(
    payload: Any = Body(default=None),
    settings: Settings = Depends(get_settings),
    gateway: UpstreamGateway = Depends(get_gateway),
) -> Any:
    """Forward an OpenAI-style chat completion request.

    Body: ``{model?, messages, tools?, tool_choice?, temperature?}``. The
    model defaults to the configured one and the model decides when to use
    tools.
    """
    request_body = to_passthrough_request(payload, settings.default_model)
    logger.info(
        "[Chat] model=%s messages=%s tools=%s",
        request_body["model"],
        len(request_body["messages"]),
        len(request_body.get("tools", [])),
    )

    result = await gateway.forward(
        settings.chat_completions_url,
        request_body,
        settings.groq_api_key,
        gateway.chat_options(credential_setting="GROQ_API_KEY"),
    )
    return JSONResponse(
        result.body,
        status_code=result.status,
        headers=result.diagnostics.as_headers(),
    )


@router.post("/gemini/chat")
async def gemini_chat(
    payload: Any = Body(default=None),
    settings: Settings = Depends(get_settings),
    gateway: UpstreamGateway = Depends(get_gateway),
) -> Any:
    """Run an OpenAI-shaped chat request against the Gemini-style provider.

    Body: ``{model?, messages, tools?, system?, temperature?}``.
    """
    body = payload if isinstance(payload, dict) else {}

    model = body.get("model") or settings.gemini_model
    if not isinstance(model, str) or not MODEL_NAME_PATTERN.match(model):
        return JSONResponse({"error": {"message": "Invalid model name"}}, status_code=400)

    native_request = to_native_request(
        body.get("messages"),
        body.get("tools"),
        system_text=body.get("system"),
        temperature=body.get("temperature"),
    )
    logger.info(
        "[Chat] gemini model=%s contents=%s",
        model,
        len(native_request["contents"]),
    )

    result = await gateway.forward(
        settings.gemini_generate_url(model),
        native_request,
        settings.gemini_api_key,
        gateway.chat_options(
            auth_header="x-goog-api-key",
            auth_scheme="",
            credential_setting="GEMINI_API_KEY",
        ),
    )
    turn = from_native_response(result.body)
    return JSONResponse(
        to_completion(turn, model),
        headers=result.diagnostics.as_headers(),
    )
