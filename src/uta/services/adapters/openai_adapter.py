"""
OpenAI runtime mode.

Chat Completions function calling. A streamed tool call arrives as
fragments keyed by ``index``: the id and name once, the JSON arguments in
pieces. Fragments are buffered per index and parsed only after the stream
reports a finish reason.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI

from uta.lib.config import OpenAIProviderConfig
from uta.lib.errors import AdapterUnavailableError, ProtocolError
from uta.lib.metrics import MetricsCollector
from uta.models.adapter_models import AdapterMessage, AdapterResult, AdapterStatus, RoutedIntent
from uta.services.adapters.base_adapter import BaseAdapter, TurnContext
from uta.services.event_factory import (
    create_message_event,
    create_stream_event,
    create_tool_result_event,
    create_tool_status_event,
    extract_primary_content,
    extract_voice_hint,
    serialize_tool_result,
)
from uta.services.history import HistoryRecord
from uta.services.tool_catalog import DEFAULT_ACTION, DEFAULT_TOOL, openai_tools
from uta.services.tool_dispatcher import ToolDispatcher


SYSTEM_PROMPT = (
    "You are the UTA assistant. Use the structured tools to execute business tasks "
    "(prospecting, pipeline updates, email campaigns, status summaries). Ask for "
    "clarification when inputs are ambiguous. After tools respond, summarize the "
    "outcomes and suggest next steps."
)

FALLBACK_MESSAGE = "Action completed."


@dataclass
class ToolCallBuffer:
    """Accumulated fragments for one streamed tool call."""

    index: int
    id: Optional[str] = None
    name: str = ""
    arguments: List[str] = field(default_factory=list)

    def add(self, fragment: Any) -> None:
        if getattr(fragment, "id", None):
            self.id = fragment.id
        function = getattr(fragment, "function", None)
        if function is None:
            return
        if getattr(function, "name", None):
            self.name += function.name
        if getattr(function, "arguments", None):
            self.arguments.append(function.arguments)

    @property
    def raw_arguments(self) -> str:
        return "".join(self.arguments)

    def to_intent(self) -> RoutedIntent:
        """Parse the completed call; malformed arguments degrade to defaults."""
        try:
            parsed = json.loads(self.raw_arguments) if self.raw_arguments else {}
        except json.JSONDecodeError:
            parsed = None

        if not isinstance(parsed, dict):
            return RoutedIntent(tool=self.name or DEFAULT_TOOL, action=DEFAULT_ACTION, confidence=0.5)

        action = parsed.get("action")
        parameters = parsed.get("parameters")
        return RoutedIntent(
            tool=self.name or DEFAULT_TOOL,
            action=action if isinstance(action, str) and action else DEFAULT_ACTION,
            parameters=parameters if isinstance(parameters, dict) else {},
            confidence=0.9
        )


@dataclass
class StreamedCompletion:
    text: str
    finish_reason: Optional[str]
    tool_calls: List[ToolCallBuffer]


class OpenAIAdapter(BaseAdapter):
    """Function-calling adapter over ``AsyncOpenAI``."""

    id = "openai"
    history_key = "openai_history"

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        config: Optional[OpenAIProviderConfig] = None,
        client: Optional[AsyncOpenAI] = None,
        max_tool_rounds: int = 8,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        super().__init__(dispatcher, metrics_collector)
        self.config = config or OpenAIProviderConfig()
        self.max_history = self.config.max_history
        self.max_tool_rounds = max_tool_rounds
        self.tools = openai_tools()

        if client is not None:
            self.client = client
        elif self.config.api_key:
            self.client = AsyncOpenAI(api_key=self.config.api_key)
        else:
            self.client = None

    def get_status(self) -> AdapterStatus:
        if self.client is None:
            return AdapterStatus(id=self.id, available=False, detail="Missing OPENAI_API_KEY environment variable")
        return AdapterStatus(id=self.id, available=True, detail=f"OpenAI model {self.config.model}")

    async def _run_turn(self, ctx: TurnContext, message: AdapterMessage) -> AdapterResult:
        if self.client is None:
            raise AdapterUnavailableError(self.id, "OPENAI_API_KEY missing")

        history = self._history(ctx.session)
        history.append({"role": "user", "content": message.content})

        last_intent: Optional[RoutedIntent] = None
        last_result: Any = None
        tool_rounds = 0

        while True:
            completion = await self._invoke(history, ctx)

            if not completion.tool_calls:
                final_text = completion.text.strip()
                history.append({"role": "assistant", "content": completion.text})
                break

            if tool_rounds >= self.max_tool_rounds:
                raise ProtocolError(
                    f"Exceeded {self.max_tool_rounds} tool rounds",
                    adapter_id=self.id,
                    attempts=tool_rounds
                )
            tool_rounds += 1

            calls: List[Tuple[str, RoutedIntent, ToolCallBuffer]] = []
            for buffer in completion.tool_calls:
                call_id = buffer.id or f"call_{uuid.uuid4().hex}"
                calls.append((call_id, buffer.to_intent(), buffer))

            history.append({
                "role": "assistant",
                "content": completion.text or None,
                "tool_calls": [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {"name": intent.tool, "arguments": buffer.raw_arguments or "{}"}
                    }
                    for call_id, intent, buffer in calls
                ]
            })

            for call_id, intent, _ in calls:
                last_intent = intent

                ctx.emit(create_tool_status_event(intent.tool, intent.action))
                last_result = await self._execute_tool(ctx, intent.tool, intent.action, intent.parameters)
                ctx.emit(create_tool_result_event(intent.tool, intent.action, last_result))

                history.append({
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": serialize_tool_result(last_result)
                })

        self._store_history(ctx.session, history)

        if not final_text:
            final_text = extract_primary_content(last_result) if last_result is not None else ""

        event = create_message_event(
            final_text or FALLBACK_MESSAGE,
            voice_hint=extract_voice_hint(last_result),
            intent=last_intent.as_payload() if last_intent else None
        )
        return AdapterResult(events=[event])

    async def _invoke(self, history: List[HistoryRecord], ctx: TurnContext) -> StreamedCompletion:
        """Stream one completion, forwarding text and buffering tool call fragments."""
        stream = await self.client.chat.completions.create(
            model=self.config.model,
            temperature=self.config.temperature,
            messages=[{"role": "system", "content": SYSTEM_PROMPT}, *history],
            tools=self.tools,
            stream=True
        )

        text: List[str] = []
        buffers: Dict[int, ToolCallBuffer] = {}
        finish_reason: Optional[str] = None

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None:
                if delta.content:
                    text.append(delta.content)
                    ctx.emit(create_stream_event(delta.content))

                for fragment in delta.tool_calls or []:
                    buffer = buffers.get(fragment.index)
                    if buffer is None:
                        buffer = buffers[fragment.index] = ToolCallBuffer(index=fragment.index)
                    buffer.add(fragment)

            if choice.finish_reason:
                finish_reason = choice.finish_reason

        if buffers and finish_reason is None:
            raise ProtocolError("Stream ended before tool calls completed", adapter_id=self.id)

        return StreamedCompletion(
            text="".join(text),
            finish_reason=finish_reason,
            tool_calls=[buffers[index] for index in sorted(buffers)]
        )
