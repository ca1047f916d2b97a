"""
Ollama runtime mode.

Self-hosted models have no tool channel, so each turn runs a hand-rolled
protocol against ``/api/chat``:

1. Plan: a non-streaming call that must answer with a JSON decision
   (``tool`` or ``final``). Unparseable answers are retried once.
2. Execute: the chosen tool runs through the shared wrapper.
3. Summarize: a second, streaming call turns the tool result into prose.

Availability is empirical: it flips false on any plan or summary failure
and back to true on the next success.
"""

import json
import re
import uuid
from typing import Any, Dict, List, Optional

import httpx

from uta.lib.config import OllamaProviderConfig
from uta.lib.errors import AdapterUnavailableError, ProtocolError
from uta.lib.metrics import MetricsCollector
from uta.models.adapter_models import AdapterMessage, AdapterResult, AdapterStatus, PlanDecision
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
from uta.services.tool_catalog import text_catalog
from uta.services.tool_dispatcher import ToolDispatcher


BASE_SYSTEM_PROMPT = """You are the UTA local assistant. You help solopreneurs manage lead generation, pipeline updates, and email outreach.
Always operate in two steps:
1. Decide whether to call a tool or reply directly.
2. When instructed, summarize tool results for the user.
Keep reasoning internal; only output requested formats."""

PLANNER_PROMPT = text_catalog() + """

Respond ONLY with JSON in this shape:
{
  "decision": "tool" | "final",
  "tool": "<tool id>",
  "action": "<action string>",
  "parameters": { ... },
  "final_message": "<string when decision=final>",
  "reason": "<brief rationale>"
}

Rules:
- When decision="tool", provide tool/action/parameters and omit final_message.
- When replying directly, set decision="final" and provide final_message.
- Do not include prose outside the JSON object."""

SUMMARY_PROMPT = """Provide a clear spoken-style summary for the user based on the latest tool result.
Keep it under 4 sentences and suggest a concrete next step when helpful."""

DEFAULT_FINAL_MESSAGE = "Let me know if you need anything else."

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_plan_decision(content: str) -> Optional[PlanDecision]:
    """Parse the planner's JSON answer, tolerating code fences.

    Returns:
        PlanDecision, or None when the answer is not a usable decision
    """
    if not isinstance(content, str):
        return None

    try:
        parsed = json.loads(_FENCE_PATTERN.sub("", content).strip())
    except json.JSONDecodeError:
        return None

    if not isinstance(parsed, dict):
        return None

    reason = parsed.get("reason") if isinstance(parsed.get("reason"), str) else None

    if parsed.get("decision") == "final":
        final_message = parsed.get("final_message")
        return PlanDecision(
            decision="final",
            final_message=final_message if isinstance(final_message, str) else None,
            reason=reason
        )

    tool, action = parsed.get("tool"), parsed.get("action")
    if parsed.get("decision") == "tool" and isinstance(tool, str) and tool and isinstance(action, str) and action:
        parameters = parsed.get("parameters")
        return PlanDecision(
            decision="tool",
            tool=tool,
            action=action,
            parameters=parameters if isinstance(parameters, dict) else {},
            reason=reason
        )

    return None


class OllamaAdapter(BaseAdapter):
    """Plan/execute/summarize adapter over ``httpx.AsyncClient``."""

    id = "ollama"
    history_key = "ollama_history"

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        config: Optional[OllamaProviderConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        super().__init__(dispatcher, metrics_collector)
        self.config = config or OllamaProviderConfig()
        self.max_history = self.config.max_history
        self.client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.request_timeout
        )

        # The one piece of adapter-level state: last observed reachability
        if self.config.model:
            self._available = True
            self._detail = "awaiting first request"
        else:
            self._available = False
            self._detail = "Set OLLAMA_MODEL to enable the ollama adapter"

    def get_status(self) -> AdapterStatus:
        return AdapterStatus(id=self.id, available=self._available, detail=self._detail)

    def _mark_healthy(self) -> None:
        self._available = True
        self._detail = f"Ollama model {self.config.model}"

    def _mark_unhealthy(self, detail: str) -> None:
        self._available = False
        self._detail = detail

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def _run_turn(self, ctx: TurnContext, message: AdapterMessage) -> AdapterResult:
        if not self.config.model:
            raise AdapterUnavailableError(self.id, "OLLAMA_MODEL not set")

        history = self._history(ctx.session)
        history.append({"role": "user", "content": message.content})

        plan = await self._plan(history, ctx)

        if not plan.wants_tool:
            final_message = plan.final_message or DEFAULT_FINAL_MESSAGE
            ctx.emit(create_stream_event(final_message))

            history.append({"role": "assistant", "content": final_message})
            self._store_history(ctx.session, history)
            return AdapterResult(events=[create_message_event(final_message)])

        ctx.emit(create_tool_status_event(plan.tool, plan.action))
        result = await self._execute_tool(ctx, plan.tool, plan.action, plan.parameters)
        ctx.emit(create_tool_result_event(plan.tool, plan.action, result))

        history.append({
            "role": "assistant",
            "content": json.dumps({
                "tool_call": {"tool": plan.tool, "action": plan.action, "parameters": plan.parameters}
            })
        })
        history.append({
            "role": "tool",
            "tool_call_id": str(uuid.uuid4()),
            "content": serialize_tool_result(result)
        })

        summary = await self._summarize(history, result, ctx)
        content = summary or extract_primary_content(result)

        history.append({"role": "assistant", "content": content})
        self._store_history(ctx.session, history)

        event = create_message_event(
            content,
            voice_hint=extract_voice_hint(result),
            intent={"tool": plan.tool, "action": plan.action, "parameters": plan.parameters}
        )
        return AdapterResult(events=[event])

    async def _plan(self, history: List[HistoryRecord], ctx: TurnContext) -> PlanDecision:
        """Ask for a decision, retrying once on an unusable answer."""
        messages = [_system(BASE_SYSTEM_PROMPT), *history, _system(PLANNER_PROMPT)]
        attempts = self.config.max_plan_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self._metrics.record_plan_retry(self.id, attempt)

            try:
                content = await self._chat(messages)
            except Exception as e:
                last_error = e
                self.logger.warning(
                    f"Planning attempt {attempt} failed: {e}",
                    extra={"session_id": ctx.session.id, "attempt": attempt}
                )
                continue

            plan = parse_plan_decision(content)
            if plan is not None:
                self._mark_healthy()
                return plan

            last_error = None
            self.logger.warning(
                f"Planning attempt {attempt} returned an unparseable decision",
                extra={"session_id": ctx.session.id, "attempt": attempt}
            )

        self._mark_unhealthy("Failed to parse plan from Ollama response")
        raise ProtocolError(
            f"Ollama planning failed after {attempts} attempts",
            adapter_id=self.id,
            attempts=attempts
        ) from last_error

    async def _summarize(self, history: List[HistoryRecord], result: Any, ctx: TurnContext) -> str:
        """Stream a natural-language summary; returns '' on failure."""
        messages = [
            _system(BASE_SYSTEM_PROMPT),
            *history,
            _system(SUMMARY_PROMPT),
            _system(
                f"Tool execution output:\n{serialize_tool_result(result)}\n\n"
                "Write a concise spoken-ready update summarizing what happened and suggest a next step."
            )
        ]

        try:
            text = await self._chat_stream(messages, ctx)
        except Exception as e:
            self.logger.error(
                f"Summary generation failed: {e}",
                extra={"session_id": ctx.session.id}
            )
            self._mark_unhealthy("Failed to generate summary")
            return ""

        self._mark_healthy()
        return text.strip()

    def _request_body(self, messages: List[HistoryRecord], stream: bool) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.config.model,
            "stream": stream,
            "messages": [{"role": msg["role"], "content": msg["content"]} for msg in messages]
        }
        if self.config.options:
            body["options"] = self.config.options
        return body

    async def _chat(self, messages: List[HistoryRecord]) -> str:
        response = await self.client.post("/api/chat", json=self._request_body(messages, stream=False))
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object from Ollama, got {type(payload).__name__}")

        message = payload.get("message") or {}
        if not isinstance(message, dict):
            raise ValueError("Ollama response message is not an object")
        return message.get("content") or payload.get("response") or ""

    async def _chat_stream(self, messages: List[HistoryRecord], ctx: TurnContext) -> str:
        text: List[str] = []

        async with self.client.stream(
            "POST", "/api/chat", json=self._request_body(messages, stream=True)
        ) as response:
            response.raise_for_status()

            async for line in response.aiter_lines():
                line = line.strip()
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    self.logger.warning("Ollama stream chunk parse failed", extra={"line": line[:200]})
                    continue

                if not isinstance(chunk, dict):
                    raise ValueError(f"Expected a JSON object per stream line, got {type(chunk).__name__}")

                message = chunk.get("message")
                content = (message.get("content") or "") if isinstance(message, dict) else ""
                if content:
                    text.append(content)
                    ctx.emit(create_stream_event(content))

        return "".join(text)


def _system(content: str) -> HistoryRecord:
    return {"role": "system", "content": content}
