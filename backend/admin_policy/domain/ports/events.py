from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    """Fire-and-forget sink for notification events.

    Implementations must never raise: a lost notification cannot undo a
    decision that has already been committed.
    """

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        ...
