"""
Intent parsing for the local runtime mode.

``KeywordIntentParser`` resolves common commands to a tool call with plain
keyword matching, so the local adapter works with no LLM at all. Rules are
tried in order and the first confident match wins.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from uta.models.adapter_models import RoutedIntent


CONFIDENCE_THRESHOLD = 0.7

INDUSTRIES = [
    "hvac", "plumbing", "electrical", "roofing", "construction",
    "landscaping", "pool", "pest control", "cleaning", "moving",
    "law", "dental", "medical", "insurance", "real estate"
]

PIPELINE_STATUSES = ["new", "contacted", "qualified", "proposal", "negotiation", "won", "lost"]

_URL_PATTERN = re.compile(r"(https?://\S+|www\.\S+|[a-z0-9.-]+\.[a-z]{2,}(?:/\S*)?)", re.IGNORECASE)
_LOCATION_PATTERN = re.compile(r"\bin ([A-Z][a-z]+(?:,?\s+[A-Z]{2})?)\b")


class IntentParser(ABC):
    """Interface for turning free text into a routed tool call."""

    @abstractmethod
    async def parse_and_route(self, text: str, user_id: str) -> Optional[RoutedIntent]:
        """Return the intent for ``text``, or None when nothing matches."""
        pass


def _any(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def _intent(tool: str, action: str, confidence: float, **parameters: Any) -> RoutedIntent:
    return RoutedIntent(tool=tool, action=action, parameters=parameters, confidence=confidence)


def _search_params(original: str) -> Dict[str, Any]:
    lower = original.lower()
    params: Dict[str, Any] = {}

    for industry in INDUSTRIES:
        if industry in lower:
            params["industry"] = industry
            break

    location = _LOCATION_PATTERN.search(original)
    if location:
        params["location"] = location.group(1)

    number = re.search(r"(\d+)", original)
    if number:
        params["max_results"] = int(number.group(1))

    return params


def _parse_prospects(lower: str, original: str) -> Optional[RoutedIntent]:
    if _any(lower, "find", "search", "get") and _any(lower, "companies", "prospects", "businesses"):
        return RoutedIntent(tool="prospects", action="search", parameters=_search_params(original), confidence=0.95)
    if _any(lower, "find", "get") and _any(lower, "decision maker", "contact", "people", "employees"):
        return _intent("prospects", "find_contacts", 0.92)
    if "enrich" in lower and "compan" in lower:
        return _intent("prospects", "enrich", 0.90)
    if "export" in lower and "prospect" in lower:
        return _intent("prospects", "export", 0.93)
    if "scraping" in lower and _any(lower, "stats", "statistics"):
        return _intent("prospects", "stats", 0.94)
    return None


def _parse_pipeline(lower: str, original: str) -> Optional[RoutedIntent]:
    if ("add to" in lower and _any(lower, "pipeline", "crm")) or "import to pipeline" in lower:
        return _intent("pipeline", "import", 0.94)
    if "add" in lower and "prospect" in lower:
        return _intent("pipeline", "add", 0.90)
    if _any(lower, "update", "change", "move") and _any(lower, "status", "stage"):
        params = {}
        for status in PIPELINE_STATUSES:
            if status in lower:
                params["status"] = status
                break
        return RoutedIntent(tool="pipeline", action="update", parameters=params, confidence=0.91)
    if "log" in lower and _any(lower, "call", "activity", "note"):
        activity_type = "note"
        for kind in ("call", "email", "meeting"):
            if kind in lower:
                activity_type = kind
                break
        return _intent("pipeline", "log_activity", 0.93, activity_type=activity_type)
    if "search" in lower and "prospect" in lower:
        return _intent("pipeline", "search", 0.88)
    if "follow" in lower and "up" in lower:
        return _intent("pipeline", "follow_ups", 0.95)
    if "pipeline" in lower and _any(lower, "stats", "statistics", "summary"):
        return _intent("pipeline", "stats", 0.94)
    return None


def _parse_tasks(lower: str, original: str) -> Optional[RoutedIntent]:
    mentions_task = _any(lower, "task", "todo", "to-do", "focus list", "priority list")

    wants_focus = (
        "focus list" in lower
        or ("focus" in lower and mentions_task)
        or _any(lower, "what should i focus", "what should i work on", "prioritize", "priorities",
                "what to do next", "what do i do next", "what next", "what's next")
    )
    if wants_focus:
        return _intent("tasks", "focus", 0.9)

    if not mentions_task:
        return None

    if _any(lower, "add", "create", "capture", "new task", "log task"):
        return _intent("tasks", "add", 0.9)
    if _any(lower, "update", "edit", "change"):
        return _intent("tasks", "update", 0.88)
    if _any(lower, "complete", "mark done", "finish task", "task finished") or ("mark" in lower and "done" in lower):
        return _intent("tasks", "complete", 0.9)
    if _any(lower, "delete", "remove", "clear task"):
        return _intent("tasks", "delete", 0.88)
    if _any(lower, "progress", "report", "summary", "recap"):
        return _intent("tasks", "report", 0.87)
    if _any(lower, "recommend", "next best", "next action"):
        return _intent("tasks", "recommendations", 0.86)
    return None


def _parse_email(lower: str, original: str) -> Optional[RoutedIntent]:
    if "create" in lower and "campaign" in lower:
        return _intent("email", "create_campaign", 0.92)
    if "add" in lower and "sequence" in lower:
        return _intent("email", "add_sequence", 0.91)
    if "start" in lower and "campaign" in lower:
        return _intent("email", "start", 0.93)
    if "send" in lower and "email" in lower:
        return _intent("email", "send_one", 0.89)
    if "campaign" in lower and _any(lower, "stats", "performance"):
        return _intent("email", "stats", 0.90)
    if _any(lower, "pause", "resume", "stop") and "campaign" in lower:
        return _intent("email", "pause", 0.92)
    return None


def _label_from_url(url: str) -> str:
    host = urlparse(url).hostname or url
    host = re.sub(r"^www\.", "", host, flags=re.IGNORECASE)
    return host.split(".")[0] or host


def _parse_research(lower: str, original: str) -> Optional[RoutedIntent]:
    url_match = _URL_PATTERN.search(original)

    if _any(lower, "add", "track") and _any(lower, "competitor", "source", "feed", "site") and url_match:
        raw = url_match.group(0).strip()
        url = raw if raw.startswith("http") else f"https://{raw}"

        label = original[:url_match.start()]
        label = re.sub(r"^(please\s+)?(add|track|monitor)\s+", "", label, flags=re.IGNORECASE)
        label = re.sub(r"\b(a|an|new)\s+", "", label, count=1, flags=re.IGNORECASE)
        label = re.sub(r"\b(competitor|source|feed|site|url)s?\b", "", label, flags=re.IGNORECASE)
        label = re.sub(r"\b(at|from)\s*$", "", label.strip(), flags=re.IGNORECASE).strip()

        return _intent("research", "add_source", 0.92, label=label or _label_from_url(url), url=url)

    if _any(lower, "monitor", "scan", "check updates", "watch") and _any(
            lower, "competitor", "market", "industry", "news"):
        force = _any(lower, "force", "anyway", "even if")
        return RoutedIntent(
            tool="research", action="monitor",
            parameters={"force": True} if force else {}, confidence=0.9
        )

    if _any(lower, "daily", "market", "industry", "competitor") and _any(lower, "digest", "brief", "summary"):
        number = re.search(r"(top|first)?\s*(\d{1,2})", original, re.IGNORECASE)
        params = {"limit": int(number.group(2))} if number else {}
        return RoutedIntent(tool="research", action="digest", parameters=params, confidence=0.88)

    if _any(lower, "list", "show", "what are") and _any(lower, "sources", "watchlist", "tracked"):
        return _intent("research", "list_sources", 0.87)
    return None


def _parse_modules(lower: str, original: str) -> Optional[RoutedIntent]:
    if _any(lower, "modules", "catalog", "capabilities", "what can you do", "what are your tools"):
        return _intent("modules", "list", 0.95)
    return None


def _parse_status(lower: str, original: str) -> Optional[RoutedIntent]:
    if _any(lower, "check status", "system status", "my subscription", "usage report", "health check"):
        report_type = "modules"
        for keyword in ("usage", "subscription", "health"):
            if keyword in lower:
                report_type = keyword
        return _intent("status", report_type, 0.96, report_type=report_type)
    return None


def _parse_configure(lower: str, original: str) -> Optional[RoutedIntent]:
    if _any(lower, "configure", "set", "change") and _any(lower, "setting", "preference", "config"):
        return _intent("configure", "set", 0.85)
    return None


Rule = Callable[[str, str], Optional[RoutedIntent]]

DEFAULT_RULES: List[Rule] = [
    _parse_prospects,
    _parse_pipeline,
    _parse_tasks,
    _parse_email,
    _parse_research,
    _parse_modules,
    _parse_status,
    _parse_configure,
]


class KeywordIntentParser(IntentParser):
    """Free keyword matcher for common commands."""

    def __init__(self, rules: Optional[List[Rule]] = None, threshold: float = CONFIDENCE_THRESHOLD):
        self.rules = rules if rules is not None else list(DEFAULT_RULES)
        self.threshold = threshold

    def parse(self, text: str) -> Optional[RoutedIntent]:
        """Synchronous match used by ``parse_and_route``."""
        lower = text.lower().strip()
        if not lower:
            return None

        for rule in self.rules:
            intent = rule(lower, text)
            if intent is not None and intent.confidence > self.threshold:
                return intent

        return None

    async def parse_and_route(self, text: str, user_id: str) -> Optional[RoutedIntent]:
        return self.parse(text)
