"""
Gemini provider adapter.

Maps LangChain messages and tool schemas onto the google-genai SDK and
turns function-call parts back into AIMessage tool calls. Server-side
failures are retried here; the engine never retries.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from .base import ChatModelProvider
from ..core.config import settings
from ..tools.registry import ToolSchema
from ..utils.helpers import async_retry
from ..utils.logger import get_logger


logger = get_logger()

# Raw model content is kept on the AIMessage so it can be replayed verbatim
# (function calls on thinking models carry signatures that must round-trip).
RAW_CONTENT_KEY = "gemini_content"


class GeminiChatModel(ChatModelProvider):
    """
    Chat completion through Google Gemini.

    The SDK client is created lazily on first use and dropped by
    ``aclose``; use the adapter as an async context manager to scope it.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[genai.Client] = None,
    ):
        defaults = settings.get_model_config()
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or defaults["model"]
        self.temperature = defaults["temperature"] if temperature is None else temperature
        self.max_tokens = max_tokens or defaults["max_tokens"]
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise RuntimeError(
                    "Gemini API key not configured (set STEPGRAPH_GEMINI_API_KEY)"
                )
            self._client = genai.Client(api_key=self.api_key)
            logger.with_component("Provider").debug(f"Gemini client created for {self.model}")
        return self._client

    async def aclose(self) -> None:
        """Close the SDK client's async and sync transports, then drop it."""
        client, self._client = self._client, None
        if client is None:
            return
        logger.with_component("Provider").debug("Closing Gemini client")
        aio = getattr(client, "aio", None)
        if aio is not None and hasattr(aio, "aclose"):
            await aio.aclose()
        if hasattr(client, "close"):
            client.close()

    @async_retry(
        max_retries=settings.llm_max_retries,
        delay=1.0,
        backoff=2.0,
        exceptions=(genai_errors.ServerError,),
    )
    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[ToolSchema]] = None,
    ) -> AIMessage:
        system, contents = self.to_contents(messages)
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            system_instruction=system,
            tools=self.to_tools(tools) if tools else None,
        )
        logger.with_component("Provider").debug(
            f"Calling {self.model} with {len(contents)} contents and {len(tools or [])} tools"
        )
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        return self.to_ai_message(response)

    # ==================== Conversion ====================

    @staticmethod
    def to_tools(tools: Sequence[ToolSchema]) -> List[types.Tool]:
        declarations = [
            types.FunctionDeclaration(
                name=schema["name"],
                description=schema["description"],
                parameters_json_schema=schema["parameters"],
            )
            for schema in tools
        ]
        return [types.Tool(function_declarations=declarations)]

    @staticmethod
    def to_contents(messages: Sequence[BaseMessage]) -> Tuple[Optional[str], List[types.Content]]:
        """Split out the system prompt and convert the rest to Gemini contents."""
        system_parts: List[str] = []
        contents: List[types.Content] = []

        for message in messages:
            if isinstance(message, SystemMessage):
                system_parts.append(message.text())
            elif isinstance(message, HumanMessage):
                contents.append(
                    types.Content(role="user", parts=[types.Part(text=message.text())])
                )
            elif isinstance(message, AIMessage):
                contents.append(GeminiChatModel._ai_content(message))
            elif isinstance(message, ToolMessage):
                part = types.Part(
                    function_response=types.FunctionResponse(
                        id=message.tool_call_id,
                        name=message.name or "tool",
                        response=_tool_response(message),
                    )
                )
                previous = contents[-1] if contents else None
                if previous is not None and previous.role == "user" and previous.parts and all(
                    p.function_response is not None for p in previous.parts
                ):
                    previous.parts.append(part)
                else:
                    contents.append(types.Content(role="user", parts=[part]))
            else:
                raise TypeError(f"Unsupported message type {type(message).__name__}")

        system = "\n\n".join(system_parts) if system_parts else None
        return system, contents

    @staticmethod
    def _ai_content(message: AIMessage) -> types.Content:
        raw = message.additional_kwargs.get(RAW_CONTENT_KEY)
        if raw:
            return types.Content.model_validate_json(raw)

        parts: List[types.Part] = []
        if message.text():
            parts.append(types.Part(text=message.text()))
        for call in message.tool_calls:
            parts.append(
                types.Part(
                    function_call=types.FunctionCall(
                        id=call.get("id"), name=call["name"], args=call["args"]
                    )
                )
            )
        return types.Content(role="model", parts=parts or [types.Part(text="")])

    def to_ai_message(self, response: types.GenerateContentResponse) -> AIMessage:
        if not response.candidates:
            raise RuntimeError("Gemini returned no candidates")
        candidate = response.candidates[0]
        content = candidate.content
        parts = (content.parts if content else None) or []

        text = "".join(part.text for part in parts if part.text and not part.thought)
        tool_calls: List[Dict[str, Any]] = []
        for part in parts:
            if part.function_call is None:
                continue
            tool_calls.append(
                {
                    "name": part.function_call.name,
                    "args": dict(part.function_call.args or {}),
                    "id": part.function_call.id or f"call_{uuid4().hex[:12]}",
                    "type": "tool_call",
                }
            )

        additional: Dict[str, Any] = {}
        if content is not None:
            additional[RAW_CONTENT_KEY] = content.model_dump_json(exclude_none=True)

        return AIMessage(
            content=text,
            tool_calls=tool_calls,
            additional_kwargs=additional,
            response_metadata={
                "model": self.model,
                "finish_reason": str(candidate.finish_reason) if candidate.finish_reason else None,
            },
        )


def _tool_response(message: ToolMessage) -> Dict[str, Any]:
    key = "error" if message.status == "error" else "result"
    return {key: message.text()}
