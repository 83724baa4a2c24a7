"""Message-format adapter between OpenAI-style and Gemini-style payloads.

The neutral shape is the OpenAI chat format (``messages[]`` with
``tool_calls[]``, ``tools[].function``). The Gemini-style provider speaks
``contents[]`` with ``functionCall`` / ``functionResponse`` parts and
``functionDeclarations``.

File Summary:
- to_native_request: neutral turns + tool declarations -> generateContent body
- from_native_response: generateContent response -> neutral assistant turn
- to_passthrough_request: body for the OpenAI-compatible provider
- to_completion: neutral assistant turn -> chat.completion envelope

None of these raise on malformed input. Missing or ill-typed sub-fields
degrade to empty strings, empty objects or empty lists.

System instruction policy: an explicit ``system_text`` wins. Otherwise the
last system turn in the sequence wins and earlier ones are dropped.
"""

import json
import logging
import math
import time
from typing import Any, Iterable, List, Optional

from .models import (
    ChatCompletion,
    CompletionChoice,
    FunctionSpec,
    ToolCall,
    ToolCallFunction,
    Turn,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.3

SYSTEM_ROLES = ("system", "developer")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text_of(content: Any) -> str:
    """Flatten turn content into plain text.

    Strings pass through. OpenAI content-part lists contribute their text
    parts joined by newline. Anything else is treated as empty.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for block in content:
            if isinstance(block, str):
                texts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                texts.append(block["text"])
        return "\n".join(texts)
    return ""


def _resolve_temperature(temperature: Any) -> float:
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
        return DEFAULT_TEMPERATURE
    try:
        if not math.isfinite(temperature):
            return DEFAULT_TEMPERATURE
    except OverflowError:
        return DEFAULT_TEMPERATURE
    return temperature


def _finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError(f"Out of range number: {literal}")
    return value


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number: {name}")


def _loads_strict(text: str) -> Any:
    """Decode JSON that the provider can accept back (no NaN or Infinity).

    Raises:
        ValueError: Not JSON, or holds a non-finite number.
        RecursionError: Nested too deeply to decode.
    """
    return json.loads(text, parse_float=_finite_float, parse_constant=_reject_constant)


def _is_encodable(value: Any) -> bool:
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError, RecursionError):
        return False
    return True


def _parse_arguments(arguments: Any) -> dict:
    """Decode tool call arguments into an object, ``{}`` when impossible."""
    if isinstance(arguments, dict):
        return arguments if _is_encodable(arguments) else {}
    if isinstance(arguments, str) and arguments.strip():
        try:
            parsed = _loads_strict(arguments)
        except (ValueError, RecursionError):
            logger.debug("Dropping unparseable tool call arguments")
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def _function_result_payload(content: Any) -> dict:
    """Build a functionResponse payload that is always a JSON object.

    Text that does not decode to strict JSON is sent as-is under ``content``.
    """
    if isinstance(content, dict):
        return content if _is_encodable(content) else {"content": ""}
    text = _text_of(content)
    try:
        parsed = _loads_strict(text)
    except (ValueError, RecursionError):
        return {"content": text}
    if isinstance(parsed, dict):
        return parsed
    return {"content": parsed}


def _function_declaration(tool: Any) -> Optional[dict]:
    """Map one tool declaration to a native function declaration.

    Accepts the wrapped ``{"type": "function", "function": {...}}`` form
    and the bare ``{"name": ...}`` form.
    """
    tool = _as_dict(tool)
    spec = _as_dict(tool.get("function")) if "function" in tool else tool
    name = spec.get("name")
    if not isinstance(name, str) or not name:
        return None

    description = spec.get("description")
    parameters = spec.get("parameters")
    fields: dict = {"name": name}
    if isinstance(description, str):
        fields["description"] = description
    if isinstance(parameters, dict) and _is_encodable(parameters):
        fields["parameters"] = parameters
    return FunctionSpec(**fields).model_dump()


def _model_parts(turn: dict) -> List[dict]:
    parts: List[dict] = []
    text = _text_of(turn.get("content"))
    tool_calls = _as_list(turn.get("tool_calls"))

    calls = []
    for call in tool_calls:
        function = _as_dict(_as_dict(call).get("function"))
        name = function.get("name")
        if not isinstance(name, str) or not name:
            continue
        calls.append(
            {"functionCall": {"name": name, "args": _parse_arguments(function.get("arguments"))}}
        )

    if text or not calls:
        parts.append({"text": text})
    parts.extend(calls)
    return parts


def to_native_request(
    turns: Any,
    tool_declarations: Any = None,
    system_text: Optional[str] = None,
    temperature: Any = None,
) -> dict:
    """Translate a neutral conversation into a generateContent request body.

    Args:
        turns: Neutral turns (OpenAI ``messages``). Non-lists count as empty.
        tool_declarations: OpenAI ``tools`` entries.
        system_text: Explicit system instruction; overrides system turns.
        temperature: Sampling temperature, 0.3 when absent.

    Returns:
        The native request body. ``tools`` is omitted when no declaration
        is usable and ``systemInstruction`` when there is no instruction.
    """
    contents: List[dict] = []
    in_sequence_system: Optional[str] = None

    for turn in _as_list(turns):
        if not isinstance(turn, dict):
            continue
        role = turn.get("role")

        if role in SYSTEM_ROLES:
            if in_sequence_system is not None:
                logger.debug("Later system turn overrides an earlier one")
            in_sequence_system = _text_of(turn.get("content"))
            continue

        if role == "assistant":
            contents.append({"role": "model", "parts": _model_parts(turn)})
            continue

        if role == "tool":
            name = turn.get("name")
            contents.append(
                {
                    "role": "user",
                    "parts": [
                        {
                            "functionResponse": {
                                "name": name if isinstance(name, str) and name else "tool",
                                "response": _function_result_payload(turn.get("content")),
                            }
                        }
                    ],
                }
            )
            continue

        contents.append({"role": "user", "parts": [{"text": _text_of(turn.get("content"))}]})

    request: dict = {
        "contents": contents,
        "generationConfig": {"temperature": _resolve_temperature(temperature)},
    }

    instruction = system_text if isinstance(system_text, str) and system_text else in_sequence_system
    if instruction:
        request["systemInstruction"] = {"parts": [{"text": instruction}]}

    declarations = [
        declaration
        for declaration in map(_function_declaration, _as_list(tool_declarations))
        if declaration is not None
    ]
    if declarations:
        request["tools"] = [{"functionDeclarations": declarations}]

    return request


def _candidate_parts(native: Any) -> Iterable[dict]:
    candidates = _as_list(_as_dict(native).get("candidates"))
    if not candidates:
        return []
    content = _as_dict(_as_dict(candidates[0]).get("content"))
    return [part for part in _as_list(content.get("parts")) if isinstance(part, dict)]


def from_native_response(native: Any) -> dict:
    """Normalize a generateContent response into a neutral assistant turn.

    Only the first candidate is read. Text parts are joined by newline and
    every ``functionCall`` part becomes a tool call with a fresh id. The
    ``tool_calls`` key is present only when at least one call was found.
    """
    texts: List[str] = []
    tool_calls: List[ToolCall] = []

    for part in _candidate_parts(native):
        if isinstance(part.get("text"), str):
            texts.append(part["text"])
        call = part.get("functionCall")
        if isinstance(call, dict):
            name = call.get("name")
            tool_calls.append(
                ToolCall(
                    function=ToolCallFunction(
                        name=name if isinstance(name, str) else "",
                        arguments=json.dumps(_as_dict(call.get("args"))),
                    )
                )
            )

    turn = Turn(role="assistant", content="\n".join(texts), tool_calls=tool_calls or None)
    return turn.to_wire()


def to_passthrough_request(
    body: Any,
    default_model: str,
    temperature: Any = None,
) -> dict:
    """Prepare a request body for an OpenAI-compatible provider.

    The neutral turns already are the provider's ``messages``; tool
    declarations map 1:1 to ``tools`` entries.
    """
    request = dict(_as_dict(body))
    request["messages"] = _as_list(request.get("messages"))

    if not isinstance(request.get("model"), str) or not request.get("model"):
        request["model"] = default_model

    request["temperature"] = _resolve_temperature(
        request.get("temperature") if temperature is None else temperature
    )

    tools = [tool for tool in _as_list(request.pop("tools", None)) if isinstance(tool, dict)]
    if tools:
        request["tools"] = tools
        request.setdefault("tool_choice", "auto")
    else:
        request.pop("tool_choice", None)

    return request


def to_completion(turn: dict, model: str) -> dict:
    """Wrap a neutral assistant turn in a ``chat.completion`` envelope."""
    finish_reason = "tool_calls" if turn.get("tool_calls") else "stop"
    completion = ChatCompletion(
        created=int(time.time()),
        model=model,
        choices=[CompletionChoice(message=turn, finish_reason=finish_reason)],
    )
    return completion.model_dump()
