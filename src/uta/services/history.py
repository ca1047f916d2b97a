"""Bounded conversation history trimming."""

from typing import Any, Callable, Dict, List


HistoryRecord = Dict[str, Any]


def trim_history(
    history: List[HistoryRecord],
    cap: int,
    is_turn_start: Callable[[HistoryRecord], bool]
) -> List[HistoryRecord]:
    """Drop the oldest records so at most ``cap`` remain.

    The kept window is then advanced to the first record accepted by
    ``is_turn_start`` (a plain user message), so a tool call is never kept
    without the message that requested it nor a result without its call.
    If no such record remains the history is cleared.
    """
    if len(history) <= cap:
        return history

    window = history[-cap:]
    for index, record in enumerate(window):
        if is_turn_start(record):
            return window[index:]

    return []


def is_plain_user_message(record: HistoryRecord) -> bool:
    """Chat-style records: a user turn is any record with role ``user``."""
    return record.get("role") == "user"
