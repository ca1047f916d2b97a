"""
Claude API runtime mode.

Uses the Anthropic Messages API with native tool use. Text deltas are
forwarded live; when the model stops for ``tool_use`` every requested call
is executed and all results go back in one user message before the next
round.
"""

from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from uta.lib.config import ClaudeProviderConfig
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
from uta.services.tool_catalog import DEFAULT_ACTION, claude_tools
from uta.services.tool_dispatcher import ToolDispatcher


CLAUDE_SYSTEM_PROMPT = """You are the UTA cloud assistant. You help solopreneurs manage leads, pipeline updates, outreach campaigns, and status reports.

You have direct access to structured tools that execute business actions. When the user asks for work, pick the correct tool, provide the action in the tool input, and include any required parameters. If you need more information, ask clarifying questions.

After tools return results, summarize the outcome for the user with clear next steps."""

FALLBACK_MESSAGE = "Action completed."


class ClaudeApiAdapter(BaseAdapter):
    """Native tool-use adapter over ``AsyncAnthropic``."""

    id = "claude-api"
    history_key = "claude_history"

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        config: Optional[ClaudeProviderConfig] = None,
        client: Optional[AsyncAnthropic] = None,
        max_tool_rounds: int = 8,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        super().__init__(dispatcher, metrics_collector)
        self.config = config or ClaudeProviderConfig()
        self.max_history = self.config.max_history
        self.max_tool_rounds = max_tool_rounds
        self.tools = claude_tools()

        if client is not None:
            self.client = client
        elif self.config.api_key:
            self.client = AsyncAnthropic(api_key=self.config.api_key)
        else:
            self.client = None

    def get_status(self) -> AdapterStatus:
        if self.client is None:
            return AdapterStatus(
                id=self.id,
                available=False,
                detail="Missing ANTHROPIC_API_KEY environment variable"
            )
        return AdapterStatus(id=self.id, available=True, detail=f"Anthropic model {self.config.model}")

    async def _run_turn(self, ctx: TurnContext, message: AdapterMessage) -> AdapterResult:
        if self.client is None:
            raise AdapterUnavailableError(self.id, "ANTHROPIC_API_KEY missing")

        history = self._history(ctx.session)
        history.append({"role": "user", "content": [{"type": "text", "text": message.content}]})

        last_intent: Optional[RoutedIntent] = None
        last_result: Any = None
        tool_rounds = 0

        while True:
            final_message, streamed_text = await self._invoke(history, ctx)
            content = [_block_to_dict(block) for block in final_message.content or []]
            content = [block for block in content if block is not None]
            history.append({"role": "assistant", "content": content})

            tool_calls = [block for block in content if block["type"] == "tool_use"]
            if final_message.stop_reason != "tool_use" or not tool_calls:
                final_text = streamed_text.strip() or _joined_text(content)
                break

            if tool_rounds >= self.max_tool_rounds:
                raise ProtocolError(
                    f"Exceeded {self.max_tool_rounds} tool rounds",
                    adapter_id=self.id,
                    attempts=tool_rounds
                )
            tool_rounds += 1

            results = []
            for call in tool_calls:
                intent = _parse_tool_input(call)
                last_intent = intent

                ctx.emit(create_tool_status_event(intent.tool, intent.action))
                last_result = await self._execute_tool(ctx, intent.tool, intent.action, intent.parameters)
                ctx.emit(create_tool_result_event(intent.tool, intent.action, last_result))

                results.append({
                    "type": "tool_result",
                    "tool_use_id": call["id"],
                    "content": serialize_tool_result(last_result)
                })

            history.append({"role": "user", "content": results})

        self._store_history(ctx.session, history)

        if not final_text:
            final_text = extract_primary_content(last_result) if last_result is not None else ""

        event = create_message_event(
            final_text or FALLBACK_MESSAGE,
            voice_hint=extract_voice_hint(last_result),
            intent=last_intent.as_payload() if last_intent else None
        )
        return AdapterResult(events=[event])

    async def _invoke(self, history: List[HistoryRecord], ctx: TurnContext):
        """Stream one completion; returns the final message and the streamed text."""
        streamed = []

        async with self.client.messages.stream(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            system=CLAUDE_SYSTEM_PROMPT,
            messages=history,
            tools=self.tools
        ) as stream:
            async for event in stream:
                if event.type != "content_block_delta" or getattr(event.delta, "type", None) != "text_delta":
                    continue
                delta = event.delta.text or ""
                if delta:
                    streamed.append(delta)
                    ctx.emit(create_stream_event(delta))

            final_message = await stream.get_final_message()

        return final_message, "".join(streamed)

    def _is_turn_start(self, record: HistoryRecord) -> bool:
        if record.get("role") != "user":
            return False
        content = record.get("content")
        if isinstance(content, str):
            return True
        return not any(block.get("type") == "tool_result" for block in content or [])


def _block_to_dict(block: Any) -> Optional[Dict[str, Any]]:
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": dict(block.input or {})}
    return None


def _joined_text(content: List[Dict[str, Any]]) -> str:
    parts = [block["text"].strip() for block in content if block["type"] == "text"]
    return "\n".join(part for part in parts if part).strip()


def _parse_tool_input(call: Dict[str, Any]) -> RoutedIntent:
    tool_input = call.get("input") or {}
    action = tool_input.get("action")
    parameters = tool_input.get("parameters")

    return RoutedIntent(
        tool=call["name"],
        action=action if isinstance(action, str) and action else DEFAULT_ACTION,
        parameters=parameters if isinstance(parameters, dict) else {},
        confidence=0.95
    )
