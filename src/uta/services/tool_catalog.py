"""Tool catalog advertised to LLM providers."""

from typing import Any, Dict, List, NamedTuple


class ToolSpec(NamedTuple):
    name: str
    description: str
    actions: List[str]


TOOL_CATALOG: List[ToolSpec] = [
    ToolSpec(
        "prospects",
        "Prospect finder: search companies, find contacts, enrich data, export lists, view stats.",
        ["search", "find_contacts", "enrich", "export", "stats"]
    ),
    ToolSpec(
        "pipeline",
        "Pipeline manager: add/update prospects, log activity, manage follow-ups, run stats, import lists.",
        ["add", "update", "search", "log_activity", "follow_ups", "stats", "import", "update_follow_up"]
    ),
    ToolSpec(
        "email",
        "Email orchestrator: create campaigns, manage sequences, start/pause sends, stats, history.",
        ["create_campaign", "add_sequence", "start", "send_one", "stats", "pause", "history",
         "create_and_start_sequence"]
    ),
    ToolSpec(
        "tasks",
        "Task manager: focus list, add/update/complete/delete tasks, progress reports, recommendations.",
        ["focus", "add", "update", "complete", "delete", "report", "recommendations"]
    ),
    ToolSpec(
        "research",
        "Research insights: track sources, monitor competitors, daily digests.",
        ["add_source", "monitor", "digest", "list_sources"]
    ),
    ToolSpec(
        "status",
        "Status dashboard: modules, usage, subscription, system health, daily brief.",
        ["modules", "usage", "subscription", "health", "daily_brief"]
    ),
    ToolSpec(
        "configure",
        "Runtime configuration updates (e.g. set defaults).",
        ["set"]
    ),
    ToolSpec(
        "modules",
        "Discover available modules and capabilities.",
        ["list"]
    ),
]

# Used when a provider asks for a tool without naming one or its action
DEFAULT_TOOL = "status"
DEFAULT_ACTION = "modules"


def build_input_schema(actions: List[str]) -> Dict[str, Any]:
    """JSON schema shared by both structured tool protocols."""
    return {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": list(actions)},
            "parameters": {
                "type": "object",
                "description": "JSON payload matching the tool signature.",
                "additionalProperties": True
            }
        },
        "required": ["action"],
        "additionalProperties": False
    }


def claude_tools() -> List[Dict[str, Any]]:
    """Catalog in Anthropic Messages API ``tools`` form."""
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "input_schema": build_input_schema(spec.actions)
        }
        for spec in TOOL_CATALOG
    ]


def openai_tools() -> List[Dict[str, Any]]:
    """Catalog in OpenAI Chat Completions function-tool form."""
    return [
        {
            "type": "function",
            "function": {
                "name": spec.name,
                "description": spec.description,
                "parameters": build_input_schema(spec.actions)
            }
        }
        for spec in TOOL_CATALOG
    ]


def text_catalog() -> str:
    """Plain-text catalog for models without a tool channel."""
    lines = ["Tools available:"]
    lines.extend(f"- {spec.name}: {', '.join(spec.actions)}" for spec in TOOL_CATALOG)
    return "\n".join(lines)
