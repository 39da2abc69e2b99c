import json
from typing import Any, Dict, List, Optional

from ...models.conversation_types import ConversationMessage, MessagePart, PartType, TurnRole
from ...models.requests import CompletionRequest, ToolDescriptor


def _content_part(part: MessagePart) -> Optional[Dict[str, Any]]:
    if part.type == PartType.TEXT:
        return {"type": "text", "text": part.text or ""}
    if part.type == PartType.IMAGE:
        url = part.data.get("url") or part.data.get("image_url")
        if url:
            return {"type": "image_url", "image_url": {"url": url}}
    return None


def _tool_call(part: MessagePart) -> Dict[str, Any]:
    arguments = part.data.get("arguments", {})
    return {
        "id": part.data.get("tool_call_id", ""),
        "type": "function",
        "function": {
            "name": part.data.get("name", ""),
            "arguments": arguments if isinstance(arguments, str) else json.dumps(arguments),
        },
    }


def format_messages(messages: List[ConversationMessage], system_prompt: Optional[str] = None) -> List[Dict[str, Any]]:
    """Convert conversation messages to the Chat Completions message list.

    Reasoning parts are not sent back. Tool results become ``tool`` role
    messages and tool calls ride on the assistant message.
    """
    formatted: List[Dict[str, Any]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if isinstance(msg.content, str):
            formatted.append({"role": msg.role.value, "content": msg.content})
            continue

        content = []
        tool_calls = []
        for part in msg.content:
            if part.type == PartType.TOOL_RESULT:
                result = part.data.get("result", part.text or "")
                formatted.append({
                    "role": "tool",
                    "tool_call_id": part.data.get("tool_call_id", ""),
                    "content": result if isinstance(result, str) else str(result),
                })
            elif part.type == PartType.TOOL_CALL:
                tool_calls.append(_tool_call(part))
            else:
                converted = _content_part(part)
                if converted is not None:
                    content.append(converted)

        if not content and not tool_calls:
            continue
        entry: Dict[str, Any] = {"role": msg.role.value}
        if msg.role == TurnRole.SYSTEM or (content and all(c["type"] == "text" for c in content)):
            entry["content"] = "".join(c["text"] for c in content)
        else:
            entry["content"] = content or None
        if tool_calls:
            entry["tool_calls"] = tool_calls
        formatted.append(entry)
    return formatted


def format_tools(tools: Optional[List[ToolDescriptor]]) -> Optional[List[Dict[str, Any]]]:
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
    ]


def build_chat_payload(request: CompletionRequest) -> Dict[str, Any]:
    """Build the ``chat.completions.create`` keyword arguments for a streaming request."""
    settings = request.assistant.settings
    payload: Dict[str, Any] = {
        "model": request.model.id,
        "messages": format_messages(request.messages, request.assistant.prompt),
        "stream": True,
        "stream_options": {"include_usage": True},
    }
    if settings.temperature is not None:
        payload["temperature"] = settings.temperature
    if settings.top_p is not None:
        payload["top_p"] = settings.top_p
    if settings.max_tokens is not None:
        payload["max_tokens"] = settings.max_tokens
    if settings.reasoning_effort:
        payload["reasoning_effort"] = settings.reasoning_effort

    tools = format_tools(request.tools)
    if tools:
        payload["tools"] = tools
    return payload
