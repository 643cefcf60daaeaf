"""Outbox publisher helper for enqueueing events inside a caller's transaction."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Connection

from backend.core.db import METADATA, JSONType
from backend.core.observability.logging import logger


def get_outbox_events_table(metadata: MetaData) -> Table:
    """Return the outbox_events table definition for the given metadata."""
    return sa.Table(
        "outbox_events",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("payload", JSONType, nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Index("ix_outbox_events_status_next_attempt_at", "status", "next_attempt_at"),
        extend_existing=True,
    )


EVENTS = get_outbox_events_table(METADATA)


def enqueue_event(
    conn: Connection,
    topic: str,
    payload: Mapping[str, Any],
    *,
    delay_s: int = 0,
) -> UUID:
    """Persist an event into the outbox on ``conn`` and return its UUID.

    The row commits or rolls back together with the caller's transaction.
    """
    if not isinstance(topic, str) or not topic.strip():
        raise ValueError("topic must be a non-empty string")
    if delay_s < 0:
        raise ValueError("delay_s must be >= 0")

    if not isinstance(payload, Mapping):
        raise ValueError("payload must be a mapping")
    payload_dict = dict(payload)

    try:
        json.dumps(payload_dict)
    except (TypeError, ValueError) as exc:
        raise ValueError("payload must be JSON serializable") from exc

    event_id = uuid4()
    now = datetime.now(timezone.utc)
    next_attempt = now + timedelta(seconds=delay_s)

    conn.execute(
        sa.insert(EVENTS).values(
            id=str(event_id),
            topic=topic,
            payload=payload_dict,
            status="pending",
            attempt_count=0,
            next_attempt_at=next_attempt,
            created_at=now,
        )
    )

    logger.info(
        "outbox_event_enqueued",
        extra={
            "event_id": str(event_id),
            "topic": topic,
            "delay_s": delay_s,
        },
    )
    return event_id


__all__ = ["EVENTS", "enqueue_event", "get_outbox_events_table"]
