from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ...models.conversation_types import ConversationMessage, MessagePart, PartType, TurnRole
from ...models.requests import CompletionRequest, ToolDescriptor

DEFAULT_MAX_TOKENS = 4096
DEFAULT_THINKING_BUDGET = 2048


def _block(part: MessagePart, role: TurnRole) -> Optional[Dict[str, Any]]:
    if part.type == PartType.TEXT:
        return {"type": "text", "text": part.text or ""}
    if part.type == PartType.IMAGE:
        if part.data.get("base64"):
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": part.data.get("media_type", "image/png"),
                    "data": part.data["base64"],
                },
            }
        url = part.data.get("url")
        if url:
            return {"type": "image", "source": {"type": "url", "url": url}}
        return None
    if part.type == PartType.REASONING:
        # Thinking blocks are only accepted back when signed
        signature = part.data.get("signature")
        if role == TurnRole.ASSISTANT and signature:
            return {"type": "thinking", "thinking": part.text or "", "signature": signature}
        return None
    if part.type == PartType.TOOL_CALL:
        return {
            "type": "tool_use",
            "id": part.data.get("tool_call_id", ""),
            "name": part.data.get("name", ""),
            "input": part.data.get("arguments", {}),
        }
    if part.type == PartType.TOOL_RESULT:
        result = part.data.get("result", part.text or "")
        return {
            "type": "tool_result",
            "tool_use_id": part.data.get("tool_call_id", ""),
            "content": result if isinstance(result, str) else str(result),
            "is_error": bool(part.data.get("is_error", False)),
        }
    return None


def split_system(messages: List[ConversationMessage],
                 system_prompt: Optional[str] = None) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Separate system text from the turn list and convert turns to Messages API blocks.

    Tool-role messages are sent as user turns carrying tool_result blocks.
    """
    system_parts = [system_prompt] if system_prompt else []
    formatted: List[Dict[str, Any]] = []

    for msg in messages:
        if msg.role == TurnRole.SYSTEM:
            system_parts.append(msg.get_text())
            continue
        role = "assistant" if msg.role == TurnRole.ASSISTANT else "user"
        if isinstance(msg.content, str):
            formatted.append({"role": role, "content": msg.content})
            continue
        blocks = [b for b in (_block(p, msg.role) for p in msg.content) if b is not None]
        if blocks:
            formatted.append({"role": role, "content": blocks})

    system = "\n\n".join(p for p in system_parts if p) or None
    return system, formatted


def format_tools(tools: Optional[List[ToolDescriptor]]) -> Optional[List[Dict[str, Any]]]:
    if not tools:
        return None
    return [
        {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema}
        for tool in tools
    ]


def build_messages_payload(request: CompletionRequest) -> Dict[str, Any]:
    """Build the ``messages.create`` keyword arguments for a streaming request.

    Drops system=None to satisfy SDK validators.
    """
    settings = request.assistant.settings
    system, messages = split_system(request.messages, request.assistant.prompt)
    max_tokens = settings.max_tokens or DEFAULT_MAX_TOKENS

    payload: Dict[str, Any] = {
        "model": request.model.id,
        "messages": messages,
        "max_tokens": max_tokens,
        "stream": True,
    }
    if system:
        payload["system"] = system
    if settings.enable_thinking:
        budget = min(DEFAULT_THINKING_BUDGET, max(max_tokens - 1, 1024))
        payload["thinking"] = {"type": "enabled", "budget_tokens": budget}
        if max_tokens <= budget:
            payload["max_tokens"] = budget + DEFAULT_MAX_TOKENS
    else:
        if settings.temperature is not None:
            payload["temperature"] = min(settings.temperature, 1.0)
        if settings.top_p is not None:
            payload["top_p"] = settings.top_p

    tools = format_tools(request.tools)
    if tools:
        payload["tools"] = tools
    return payload
