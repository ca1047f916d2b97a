"""
Unit tests for the Ollama adapter.

Requests go through ``httpx.MockTransport`` driven by a scripted handler,
so the plan and summary calls can be counted and inspected.
"""

import json

import httpx
import pytest

from fakes import OllamaScript, ollama_client
from uta.lib.config import OllamaProviderConfig
from uta.lib.errors import AdapterUnavailableError, ProtocolError
from uta.models.adapter_models import AdapterMessage
from uta.services.adapters.ollama_adapter import (
    DEFAULT_FINAL_MESSAGE,
    OllamaAdapter,
    parse_plan_decision,
)


TOOL_PLAN = json.dumps({
    "decision": "tool",
    "tool": "pipeline",
    "action": "stats",
    "parameters": {"range": "week"},
    "reason": "user asked for stats"
})


def _adapter(dispatcher, config, script):
    return OllamaAdapter(dispatcher, config=config, client=ollama_client(script))


class TestParsePlanDecision:
    """Test planner output parsing."""

    def test_tool_decision(self):
        plan = parse_plan_decision(TOOL_PLAN)

        assert plan.wants_tool
        assert (plan.tool, plan.action) == ("pipeline", "stats")
        assert plan.parameters == {"range": "week"}
        assert plan.reason == "user asked for stats"

    def test_fenced_json(self):
        plan = parse_plan_decision('```json\n{"decision": "final", "final_message": "Hi!"}\n```')

        assert plan.decision == "final"
        assert plan.final_message == "Hi!"

    @pytest.mark.parametrize("content", [
        "Sure! I'll check your pipeline.",
        "[]",
        '{"decision": "tool", "tool": "pipeline"}',
        '{"decision": "maybe"}',
        None,
    ])
    def test_unusable_answers(self, content):
        assert parse_plan_decision(content) is None

    def test_non_dict_parameters_dropped(self):
        plan = parse_plan_decision('{"decision": "tool", "tool": "tasks", "action": "add", "parameters": [1]}')
        assert plan.parameters == {}


class TestOllamaStatus:
    """Test empirical availability."""

    def test_initially_available(self, dispatcher, ollama_config):
        status = _adapter(dispatcher, ollama_config, OllamaScript()).get_status()

        assert status.available is True
        assert status.detail == "awaiting first request"

    def test_unavailable_without_model(self, dispatcher):
        adapter = _adapter(dispatcher, OllamaProviderConfig(model=""), OllamaScript())
        assert adapter.get_status().available is False

    @pytest.mark.asyncio
    async def test_turn_without_model_raises(self, dispatcher, session_store):
        adapter = _adapter(dispatcher, OllamaProviderConfig(model=""), OllamaScript())
        session = session_store.create_session("user-1", "ollama")

        with pytest.raises(AdapterUnavailableError):
            await adapter.process_message(session, AdapterMessage(content="hi"))


class TestOllamaPlanning:
    """Test the plan phase and its retry bound."""

    @pytest.mark.asyncio
    async def test_invalid_plan_twice_fails_turn(self, dispatcher, ollama_config, session_store):
        """Test exactly two planning requests, then a protocol error."""
        script = OllamaScript(plans=["I think you want stats", "Still not JSON"])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        with pytest.raises(ProtocolError) as exc_info:
            await adapter.process_message(session, AdapterMessage(content="stats please"))

        assert exc_info.value.attempts == 2
        assert len(script.plan_requests) == 2
        assert script.summary_requests == []
        dispatcher.execute_tool.assert_not_awaited()

        status = adapter.get_status()
        assert status.available is False
        assert status.detail == "Failed to parse plan from Ollama response"
        assert "ollama_history" not in session.metadata

    @pytest.mark.asyncio
    async def test_retry_recovers(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(
            plans=["not json", '{"decision": "final", "final_message": "Hello!"}']
        )
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="hi"))

        assert result.events[0].message.content == "Hello!"
        assert len(script.plan_requests) == 2
        assert adapter.get_status().available is True

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(
            plans=[httpx.ConnectError("connection refused"), '{"decision": "final", "final_message": "Back."}']
        )
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="hi"))

        assert result.events[0].message.content == "Back."
        assert adapter.get_status().detail == "Ollama model llama-test"

    @pytest.mark.asyncio
    async def test_transport_errors_exhaust_attempts(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(plans=[httpx.ConnectError("refused"), httpx.ConnectError("refused")])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        with pytest.raises(ProtocolError):
            await adapter.process_message(session, AdapterMessage(content="hi"))

        assert adapter.get_status().available is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        ["not", "an", "object"],
        {"message": "plain text"},
    ])
    async def test_non_object_reply_is_retried(self, dispatcher, ollama_config, session_store, body):
        """Test a JSON reply of the wrong shape counts as an unusable plan."""
        script = OllamaScript(plans=[httpx.Response(200, json=body), httpx.Response(200, json=body)])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        with pytest.raises(ProtocolError) as exc_info:
            await adapter.process_message(session, AdapterMessage(content="stats please"))

        assert exc_info.value.attempts == 2
        assert len(script.plan_requests) == 2
        assert adapter.get_status().available is False

    @pytest.mark.asyncio
    async def test_non_object_reply_then_valid_plan(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(plans=[
            httpx.Response(200, json=["not", "an", "object"]),
            '{"decision": "final", "final_message": "Hello!"}',
        ])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="hi"))

        assert result.events[0].message.content == "Hello!"
        assert adapter.get_status().available is True

    @pytest.mark.asyncio
    async def test_plan_request_shape(self, dispatcher, session_store):
        """Test the planner sees system prompt, history, then the catalog prompt."""
        config = OllamaProviderConfig(base_url="http://ollama.test", model="llama-test", options={"num_ctx": 4096})
        script = OllamaScript(plans=['{"decision": "final", "final_message": "Hi"}'])
        adapter = _adapter(dispatcher, config, script)
        session = session_store.create_session("user-1", "ollama")

        await adapter.process_message(session, AdapterMessage(content="hello"))

        body = script.plan_requests[0]
        assert body["model"] == "llama-test"
        assert body["stream"] is False
        assert body["options"] == {"num_ctx": 4096}
        assert [message["role"] for message in body["messages"]] == ["system", "user", "system"]
        assert body["messages"][1]["content"] == "hello"
        assert "Respond ONLY with JSON" in body["messages"][2]["content"]


class TestOllamaTurns:
    """Test direct answers and the tool path."""

    @pytest.mark.asyncio
    async def test_final_decision(self, dispatcher, ollama_config, session_store, recorded_events):
        script = OllamaScript(plans=['{"decision": "final", "final_message": "Hello!"}'])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="hi"), recorded_events.append)

        assert [event.payload.delta for event in recorded_events] == ["Hello!"]
        assert result.events[0].message.content == "Hello!"
        assert result.events[0].payload is None
        assert session.metadata["ollama_history"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello!"},
        ]

    @pytest.mark.asyncio
    async def test_final_without_message(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(plans=['{"decision": "final"}'])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="hi"))

        assert result.events[0].message.content == DEFAULT_FINAL_MESSAGE

    @pytest.mark.asyncio
    async def test_tool_path_streams_summary(self, dispatcher, ollama_config, session_store, recorded_events):
        script = OllamaScript(plans=[TOOL_PLAN], summaries=[["You have ", "12 open deals."]])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(
            session, AdapterMessage(content="pipeline stats"), recorded_events.append
        )

        dispatcher.execute_tool.assert_awaited_once_with("pipeline", "stats", {"range": "week"}, "user-1")

        kinds = ["delta" if event.is_stream_delta else event.type for event in recorded_events]
        assert kinds == ["status", "tool_result", "delta", "delta"]

        event = result.events[0]
        assert event.message.content == "You have 12 open deals."
        assert event.payload.tool == "pipeline"
        assert event.payload.parameters == {"range": "week"}

        summary = script.summary_requests[0]
        assert summary["stream"] is True
        assert summary["messages"][-1]["content"].startswith("Tool execution output:")

        history = session.metadata["ollama_history"]
        assert [record["role"] for record in history] == ["user", "assistant", "tool", "assistant"]
        assert json.loads(history[1]["content"])["tool_call"]["tool"] == "pipeline"
        assert history[-1]["content"] == "You have 12 open deals."
        assert not any(record["role"] == "system" for record in history)

    @pytest.mark.asyncio
    async def test_summary_failure_falls_back(self, dispatcher, ollama_config, session_store):
        """Test a failed summary still completes the turn with the tool's content."""
        script = OllamaScript(plans=[TOOL_PLAN], summaries=[httpx.ConnectError("dropped")])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="pipeline stats"))

        assert result.events[0].message.content == "12 open deals"
        status = adapter.get_status()
        assert status.available is False
        assert status.detail == "Failed to generate summary"

    @pytest.mark.asyncio
    async def test_tool_failure_is_summarized(self, dispatcher, ollama_config, session_store, recorded_events):
        dispatcher.execute_tool.side_effect = RuntimeError("db down")
        script = OllamaScript(plans=[TOOL_PLAN], summaries=[["The pipeline is unavailable right now."]])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(
            session, AdapterMessage(content="pipeline stats"), recorded_events.append
        )

        tool_result = next(event for event in recorded_events if event.type == "tool_result")
        assert tool_result.payload.data == {"status": "error", "message": "Tool execution failed"}
        assert result.events[0].message.content == "The pipeline is unavailable right now."

    @pytest.mark.asyncio
    async def test_non_object_summary_line_falls_back(self, dispatcher, ollama_config, session_store):
        script = OllamaScript(plans=[TOOL_PLAN], summaries=[httpx.Response(200, content=b'"partial"\n')])
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(session, AdapterMessage(content="pipeline stats"))

        assert result.events[0].message.content == "12 open deals"
        assert adapter.get_status().available is False
        assert session.metadata["ollama_history"][-1]["content"] == "12 open deals"

    @pytest.mark.asyncio
    async def test_summary_chunk_without_message_object_is_skipped(
        self, dispatcher, ollama_config, session_store, recorded_events
    ):
        lines = [
            json.dumps({"message": "ignored", "done": False}),
            json.dumps({"message": {"role": "assistant", "content": "Twelve deals."}, "done": True}),
        ]
        script = OllamaScript(
            plans=[TOOL_PLAN],
            summaries=[httpx.Response(200, content=("\n".join(lines) + "\n").encode())]
        )
        adapter = _adapter(dispatcher, ollama_config, script)
        session = session_store.create_session("user-1", "ollama")

        result = await adapter.process_message(
            session, AdapterMessage(content="pipeline stats"), recorded_events.append
        )

        assert result.events[0].message.content == "Twelve deals."
        assert [event.payload.delta for event in recorded_events if event.is_stream_delta] == ["Twelve deals."]
        assert adapter.get_status().available is True


class TestOllamaLifecycle:
    """Test client ownership."""

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, dispatcher, ollama_config):
        adapter = _adapter(dispatcher, ollama_config, OllamaScript())

        await adapter.aclose()

        assert adapter.client.is_closed
