import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from app.db.store import PersistentStore


class EventEnvelope(BaseModel):
    event_id: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    actor_id: str | None = None
    event_type: str = Field(min_length=1)
    timestamp: str = Field(min_length=1)
    payload: dict[str, Any]


async def emit_event(
    store: PersistentStore,
    entity_id: str,
    event_type: str,
    payload: dict[str, Any],
    *,
    actor_id: str | None = None,
) -> EventEnvelope:
    event = EventEnvelope(
        event_id=str(uuid.uuid4()),
        entity_id=entity_id,
        actor_id=actor_id,
        event_type=event_type,
        timestamp=datetime.now(UTC).isoformat(),
        payload=payload,
    )
    await store.insert(
        "audit_logs",
        {
            "entity_id": entity_id,
            "actor_id": actor_id,
            "event_type": event.event_type,
            "payload_json": event.model_dump_json(),
            "created_at": datetime.now(UTC),
        },
    )
    return event
