"""Consume a single pending outbox event and dispatch it to a topic handler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine

from backend.core.config import settings
from backend.core.db import get_engine
from backend.core.observability.logging import get_logger
from backend.core.outbox.publisher import EVENTS

logger = get_logger("backend.core.outbox.consumer")

Handler = Callable[[Mapping[str, Any]], None]


def consume_one(
    handlers: Mapping[str, Handler],
    engine: Optional[Engine] = None,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Consume a single pending outbox event if available.

    Returns True when an event was handled, False when idle or when the
    event was rescheduled.
    """
    engine = engine or get_engine()
    now = now or datetime.now(timezone.utc)

    with engine.begin() as conn:
        stmt = (
            sa.select(
                EVENTS.c.id,
                EVENTS.c.topic,
                EVENTS.c.payload,
                EVENTS.c.attempt_count,
                EVENTS.c.created_at,
            )
            .where(EVENTS.c.status == "pending")
            .where(EVENTS.c.next_attempt_at <= now)
            .order_by(EVENTS.c.created_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        row = conn.execute(stmt).mappings().first()
        if not row:
            logger.info("outbox_consume_idle", extra={"status": "idle"})
            return False

        conn.execute(
            sa.update(EVENTS)
            .where(EVENTS.c.id == row["id"])
            .values(status="processing")
        )

    event_id = str(row["id"])
    topic = row["topic"]
    payload = row["payload"]
    attempt_count = int(row["attempt_count"] or 0)

    handler = handlers.get(topic)
    if handler is None:
        logger.warning("outbox_handler_missing", extra={"event_id": event_id, "topic": topic})
        _schedule_retry(engine, event_id, attempt_count)
        return False

    try:
        handler(payload)
    except Exception as exc:
        logger.warning(
            "outbox_handler_error",
            extra={"event_id": event_id, "topic": topic, "error_type": exc.__class__.__name__},
        )
        _schedule_retry(engine, event_id, attempt_count)
        return False

    with engine.begin() as conn:
        conn.execute(
            sa.update(EVENTS)
            .where(EVENTS.c.id == event_id)
            .values(status="processed", next_attempt_at=datetime.now(timezone.utc))
        )
    logger.info("outbox_event_processed", extra={"event_id": event_id, "topic": topic})
    return True


def _schedule_retry(engine: Engine, event_id: str, attempt_count: int) -> None:
    now = datetime.now(timezone.utc)
    delay_seconds = settings.OUTBOX_BACKOFF_SECONDS * max(1, attempt_count + 1)
    next_attempt = now + timedelta(seconds=delay_seconds)
    with engine.begin() as conn:
        conn.execute(
            sa.update(EVENTS)
            .where(EVENTS.c.id == event_id)
            .values(
                status="pending",
                attempt_count=attempt_count + 1,
                next_attempt_at=next_attempt,
            )
        )
    logger.info(
        "outbox_event_rescheduled",
        extra={"event_id": event_id, "delay_s": delay_seconds},
    )


__all__ = ["consume_one"]
