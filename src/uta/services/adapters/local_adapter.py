"""Local runtime mode: keyword intent routing with no LLM."""

from typing import Optional

from uta.lib.metrics import MetricsCollector
from uta.models.adapter_models import AdapterMessage, AdapterResult, AdapterStatus
from uta.services.adapters.base_adapter import BaseAdapter, TurnContext
from uta.services.event_factory import (
    create_message_event,
    extract_primary_content,
    extract_voice_hint,
)
from uta.services.intent_parser import IntentParser, KeywordIntentParser
from uta.services.tool_dispatcher import ToolDispatcher


NO_MATCH_MESSAGE = (
    "I couldn't match that to an action. Could you rephrase it, "
    "for example \"show my pipeline stats\"?"
)


class LocalAdapter(BaseAdapter):
    """Zero-dependency fallback: one intent, one tool call, one message."""

    id = "local"

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        intent_parser: Optional[IntentParser] = None,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        super().__init__(dispatcher, metrics_collector)
        self.intent_parser = intent_parser or KeywordIntentParser()

    def get_status(self) -> AdapterStatus:
        return AdapterStatus(id=self.id, available=True, detail="Keyword intent router")

    async def _run_turn(self, ctx: TurnContext, message: AdapterMessage) -> AdapterResult:
        intent = await self.intent_parser.parse_and_route(message.content, ctx.user_id)

        if intent is None:
            self.logger.info(f"No intent matched for session {ctx.session.id}")
            return AdapterResult(events=[create_message_event(NO_MATCH_MESSAGE)])

        result = await self._execute_tool(ctx, intent.tool, intent.action, intent.parameters)

        event = create_message_event(
            extract_primary_content(result),
            voice_hint=extract_voice_hint(result),
            intent=intent.as_payload()
        )
        return AdapterResult(events=[event])
