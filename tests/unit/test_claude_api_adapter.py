"""
Unit tests for the Claude API adapter.

The Anthropic client is replaced by a scripted fake that records every
request, so tests can assert on the exact messages sent each round.
"""

import json

import pytest

from fakes import FakeAnthropicClient, claude_text_turn, claude_tool_turn
from uta.lib.config import ClaudeProviderConfig
from uta.lib.errors import AdapterUnavailableError, ProtocolError, ToolExecutionError
from uta.models.adapter_models import AdapterMessage
from uta.services.adapters.claude_api_adapter import CLAUDE_SYSTEM_PROMPT, ClaudeApiAdapter


def _adapter(dispatcher, config, turns, **kwargs):
    client = FakeAnthropicClient(turns)
    return ClaudeApiAdapter(dispatcher, config=config, client=client, **kwargs), client.messages


class TestClaudeStatus:
    """Test availability reporting."""

    def test_available_with_client(self, dispatcher, claude_config):
        adapter, _ = _adapter(dispatcher, claude_config, [])

        assert adapter.get_status().available is True
        assert adapter.get_status() == adapter.get_status()

    def test_unavailable_without_key(self, dispatcher):
        adapter = ClaudeApiAdapter(dispatcher, config=ClaudeProviderConfig())
        status = adapter.get_status()

        assert status.available is False
        assert status.detail == "Missing ANTHROPIC_API_KEY environment variable"

    @pytest.mark.asyncio
    async def test_turn_without_key_raises(self, dispatcher, session_store):
        adapter = ClaudeApiAdapter(dispatcher, config=ClaudeProviderConfig())
        session = session_store.create_session("user-1", "claude-api")

        with pytest.raises(AdapterUnavailableError):
            await adapter.process_message(session, AdapterMessage(content="hi"))


class TestClaudeTextTurns:
    """Test turns that end without tool use."""

    @pytest.mark.asyncio
    async def test_streams_deltas_and_returns_text(self, dispatcher, claude_config, session_store, recorded_events):
        adapter, messages = _adapter(dispatcher, claude_config, [claude_text_turn("Hel", "lo")])
        session = session_store.create_session("user-1", "claude-api")

        result = await adapter.process_message(session, AdapterMessage(content="hi"), recorded_events.append)

        assert [event.payload.delta for event in recorded_events] == ["Hel", "lo"]
        assert result.events[0].message.content == "Hello"
        assert result.events[0].payload is None
        dispatcher.execute_tool.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_system_prompt_sent_but_never_stored(self, dispatcher, claude_config, session_store):
        adapter, messages = _adapter(dispatcher, claude_config, [claude_text_turn("Hi there")])
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="hi"))

        assert messages.calls[0]["system"] == CLAUDE_SYSTEM_PROMPT
        assert messages.calls[0]["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
        assert messages.calls[0]["tools"]
        assert [record["role"] for record in session.metadata["claude_history"]] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_history_carries_across_turns(self, dispatcher, claude_config, session_store):
        adapter, messages = _adapter(
            dispatcher, claude_config, [claude_text_turn("one"), claude_text_turn("two")]
        )
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="first"))
        await adapter.process_message(session, AdapterMessage(content="second"))

        assert len(messages.calls[1]["messages"]) == 3
        assert messages.calls[1]["messages"][1] == {"role": "assistant", "content": [{"type": "text", "text": "one"}]}


class TestClaudeToolUse:
    """Test the tool-use loop."""

    @pytest.mark.asyncio
    async def test_failing_tool_is_reported_and_loop_continues(
            self, dispatcher, claude_config, session_store, recorded_events):
        """Test an unexpected dispatcher error is fed back as a tool result."""
        dispatcher.execute_tool.side_effect = RuntimeError("smtp exploded")
        adapter, messages = _adapter(dispatcher, claude_config, [
            claude_tool_turn(("toolu_1", "email", {"action": "send_one", "parameters": {"to": "a@b.c"}})),
            claude_text_turn("I couldn't send that email."),
        ])
        session = session_store.create_session("user-1", "claude-api")

        result = await adapter.process_message(
            session, AdapterMessage(content="email Dana"), recorded_events.append
        )

        dispatcher.execute_tool.assert_awaited_once_with("email", "send_one", {"to": "a@b.c"}, "user-1")

        tool_results = [event for event in recorded_events if event.type == "tool_result"]
        assert len(tool_results) == 1
        assert tool_results[0].payload.data == {"status": "error", "message": "Tool execution failed"}

        feedback = messages.calls[1]["messages"][-1]
        assert feedback["role"] == "user"
        assert feedback["content"][0]["tool_use_id"] == "toolu_1"
        assert json.loads(feedback["content"][0]["content"]) == {
            "status": "error", "message": "Tool execution failed"
        }

        assert result.events[0].message.content == "I couldn't send that email."
        assert result.events[0].payload.tool == "email"
        assert result.events[0].payload.action == "send_one"

    @pytest.mark.asyncio
    async def test_tool_execution_error_uses_user_message(self, dispatcher, claude_config, session_store):
        dispatcher.execute_tool.side_effect = ToolExecutionError("quota", user_message="Daily send limit reached")
        adapter, messages = _adapter(dispatcher, claude_config, [
            claude_tool_turn(("toolu_1", "email", {"action": "send_one"})),
            claude_text_turn("Limit reached."),
        ])
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="email Dana"))

        feedback = messages.calls[1]["messages"][-1]["content"][0]
        assert json.loads(feedback["content"]) == {"status": "error", "message": "Daily send limit reached"}

    @pytest.mark.asyncio
    async def test_all_results_in_one_user_message(self, dispatcher, claude_config, session_store, recorded_events):
        """Test parallel tool calls are answered together, in order."""
        adapter, messages = _adapter(dispatcher, claude_config, [
            claude_tool_turn(
                ("toolu_1", "pipeline", {"action": "stats"}),
                ("toolu_2", "tasks", {"action": "focus"}),
                text="Checking both."
            ),
            claude_text_turn("Here is your overview."),
        ])
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="overview"), recorded_events.append)

        sent = messages.calls[1]["messages"]
        assert [record["role"] for record in sent] == ["user", "assistant", "user"]
        assert [block["tool_use_id"] for block in sent[-1]["content"]] == ["toolu_1", "toolu_2"]
        assert all(block["type"] == "tool_result" for block in sent[-1]["content"])
        assert dispatcher.execute_tool.await_count == 2

        kinds = [
            "delta" if event.is_stream_delta else event.type
            for event in recorded_events
        ]
        assert kinds == ["delta", "status", "tool_result", "status", "tool_result", "delta"]

    @pytest.mark.asyncio
    async def test_missing_action_defaults(self, dispatcher, claude_config, session_store):
        adapter, _ = _adapter(dispatcher, claude_config, [
            claude_tool_turn(("toolu_1", "status", {})),
            claude_text_turn("Done."),
        ])
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="status"))

        dispatcher.execute_tool.assert_awaited_once_with("status", "modules", {}, "user-1")

    @pytest.mark.asyncio
    async def test_falls_back_to_tool_result_text(self, dispatcher, claude_config, session_store):
        """Test a silent final round uses the last tool result's content."""
        adapter, _ = _adapter(dispatcher, claude_config, [
            claude_tool_turn(("toolu_1", "pipeline", {"action": "stats"})),
            claude_text_turn(),
        ])
        session = session_store.create_session("user-1", "claude-api")

        result = await adapter.process_message(session, AdapterMessage(content="stats"))

        assert result.events[0].message.content == "12 open deals"

    @pytest.mark.asyncio
    async def test_round_limit_raises_and_keeps_history(self, dispatcher, claude_config, session_store):
        """Test exceeding the round bound fails the turn without storing partial history."""
        adapter, messages = _adapter(dispatcher, claude_config, [
            claude_tool_turn(("toolu_1", "pipeline", {"action": "stats"})),
            claude_tool_turn(("toolu_2", "pipeline", {"action": "stats"})),
            claude_tool_turn(("toolu_3", "pipeline", {"action": "stats"})),
        ], max_tool_rounds=2)
        session = session_store.create_session("user-1", "claude-api")

        with pytest.raises(ProtocolError):
            await adapter.process_message(session, AdapterMessage(content="loop"))

        assert len(messages.calls) == 3
        assert dispatcher.execute_tool.await_count == 2
        assert "claude_history" not in session.metadata


class TestClaudeHistory:
    """Test history bounding."""

    @pytest.mark.asyncio
    async def test_history_is_capped(self, dispatcher, session_store):
        config = ClaudeProviderConfig(api_key="test-key", max_history=4)
        adapter, _ = _adapter(dispatcher, config, [
            claude_text_turn("a"), claude_text_turn("b"), claude_text_turn("c"),
        ])
        session = session_store.create_session("user-1", "claude-api")

        for text in ("first", "second", "third"):
            await adapter.process_message(session, AdapterMessage(content=text))

        history = session.metadata["claude_history"]
        assert len(history) == 4
        assert history[0] == {"role": "user", "content": [{"type": "text", "text": "second"}]}

    @pytest.mark.asyncio
    async def test_trim_never_orphans_tool_results(self, dispatcher, session_store):
        """Test trimming skips past tool_result messages to a real user turn."""
        config = ClaudeProviderConfig(api_key="test-key", max_history=5)
        adapter, _ = _adapter(dispatcher, config, [
            claude_tool_turn(("toolu_1", "pipeline", {"action": "stats"})),
            claude_text_turn("12 open deals."),
            claude_text_turn("You're welcome."),
        ])
        session = session_store.create_session("user-1", "claude-api")

        await adapter.process_message(session, AdapterMessage(content="stats"))
        await adapter.process_message(session, AdapterMessage(content="thanks"))

        history = session.metadata["claude_history"]
        assert history == [
            {"role": "user", "content": [{"type": "text", "text": "thanks"}]},
            {"role": "assistant", "content": [{"type": "text", "text": "You're welcome."}]},
        ]
