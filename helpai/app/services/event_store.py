"""Per-user event log.

Routes record study events (answers, uploads, feedback) through an
``EventStore``. Each event belongs to exactly one user; requests without an
authenticated user are filed under ``"anon"``. Only the interface and an
in-memory implementation live here; a database-backed store implements the
same three coroutines.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

ANONYMOUS_USER = "anon"
DEFAULT_LIST_LIMIT = 50


def _owner(user_id: Optional[str]) -> str:
    return user_id or ANONYMOUS_USER


@dataclass
class EventRecord:
    """One logged event."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    type: str = "log"
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "payload": self.payload,
            "createdAt": self.created_at.isoformat(),
        }


@runtime_checkable
class EventStore(Protocol):
    """Storage interface for the event log."""

    async def add(self, record: EventRecord) -> EventRecord:
        ...

    async def list(self, user_id: Optional[str], limit: int = DEFAULT_LIST_LIMIT) -> List[EventRecord]:
        ...

    async def remove(self, event_id: str, user_id: Optional[str]) -> int:
        ...


class InMemoryEventStore:
    """Dict-backed ``EventStore`` for development and tests."""

    def __init__(self) -> None:
        self._events: Dict[str, EventRecord] = {}

    def __len__(self) -> int:
        return len(self._events)

    async def add(self, record: EventRecord) -> EventRecord:
        """Store ``record``, replacing any event with the same id."""
        stored = EventRecord(
            id=record.id,
            user_id=_owner(record.user_id),
            type=str(record.type or "log"),
            payload=record.payload if record.payload is not None else {},
            created_at=record.created_at,
        )
        self._events[stored.id] = stored
        return stored

    async def list(self, user_id: Optional[str], limit: int = DEFAULT_LIST_LIMIT) -> List[EventRecord]:
        """Newest-first events of one user, at most ``limit`` of them."""
        owner = _owner(user_id)
        limit = int(limit) if limit and int(limit) > 0 else DEFAULT_LIST_LIMIT
        mine = [e for e in self._events.values() if e.user_id == owner]
        mine.sort(key=lambda e: e.created_at, reverse=True)
        return mine[:limit]

    async def remove(self, event_id: str, user_id: Optional[str]) -> int:
        """Delete one event owned by ``user_id``.

        Returns:
            1 if deleted, 0 if no such event or it belongs to another user
        """
        record = self._events.get(event_id)
        if record is None or record.user_id != _owner(user_id):
            return 0
        del self._events[event_id]
        return 1
