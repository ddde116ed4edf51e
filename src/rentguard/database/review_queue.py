"""
Human review queue backed by SQLite.

Items are created PENDING by the engine and resolved in place by moderators.
Every state change writes its companion audit record inside the same
transaction, so the queue and the ledger never disagree.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Union

import aiosqlite

from rentguard.configuration.moderation_settings import MAX_QUEUE_PAGE_SIZE, ModerationSettings
from rentguard.database.audit_ledger import AuditLedger, format_timestamp, parse_timestamp, utcnow
from rentguard.database.db_connection import ConnectionManager
from rentguard.datatypes.audit_datatypes import AuditAction
from rentguard.datatypes.moderation_datatypes import EntityType, ModerationFlag, flags_from_json, flags_to_json
from rentguard.datatypes.queue_datatypes import (
    QueueFilters,
    QueueItem,
    QueuePriority,
    QueueStats,
    QueueStatus,
)
from rentguard.moderation.errors import QueueItemNotFoundError
from rentguard.util.logger import get_logger

logger = get_logger("review_queue")

_RESOLUTION_ACTIONS = {
    QueueStatus.APPROVED: AuditAction.CONTENT_APPROVED,
    QueueStatus.REJECTED: AuditAction.CONTENT_REJECTED,
}


def coerce_decision(decision: Union[QueueStatus, str]) -> QueueStatus:
    """
    Validate a moderator decision.

    Raises:
        ValueError: If ``decision`` is not APPROVED or REJECTED.
    """
    try:
        status = decision if isinstance(decision, QueueStatus) else QueueStatus(str(decision).upper())
    except ValueError:
        status = None
    if status not in _RESOLUTION_ACTIONS:
        raise ValueError(f"decision must be APPROVED or REJECTED, got {decision!r}")
    return status


class ReviewQueue:
    """
    Store for human-review items.

    Args:
        db: Open connection manager.
        ledger: Audit ledger receiving queue and resolution records.
        settings: Source of the default page size.
        clock: UTC time source.
    """

    def __init__(
        self,
        db: ConnectionManager,
        ledger: AuditLedger,
        settings: Optional[ModerationSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._settings = settings or ModerationSettings()
        self._clock = clock

    async def enqueue(
        self,
        entity_type: Union[EntityType, str],
        entity_id: str,
        flags: Sequence[ModerationFlag],
        priority: QueuePriority,
        owner_id: Optional[str] = None,
    ) -> QueueItem:
        """Create a PENDING item and its MODERATION_QUEUE_ADD audit record."""
        created_at = self._clock()
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO moderation_queue (entity_type, entity_id, owner_id, flags, priority, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(entity_type),
                    str(entity_id),
                    owner_id,
                    json.dumps(flags_to_json(list(flags))),
                    priority.value,
                    QueueStatus.PENDING.value,
                    format_timestamp(created_at),
                ),
            )
            item_id = cursor.lastrowid
            await self._ledger.insert(
                conn,
                AuditAction.MODERATION_QUEUE_ADD,
                entity_type,
                entity_id,
                user_id=owner_id,
                owner_id=owner_id,
                metadata={"queue_item_id": item_id, "priority": priority.value, "flag_count": len(flags)},
            )

        logger.info("[REVIEW QUEUE] Enqueued %s %s with priority %s", entity_type, entity_id, priority.value)
        return QueueItem(
            id=item_id,
            entity_type=str(entity_type),
            entity_id=str(entity_id),
            flags=list(flags),
            priority=priority,
            status=QueueStatus.PENDING,
            owner_id=owner_id,
            created_at=created_at,
        )

    async def list(self, filters: Optional[QueueFilters] = None, limit: Optional[int] = None) -> List[QueueItem]:
        """Return matching items newest first, at most one page."""
        filters = filters or QueueFilters()
        page_size = min(limit or self._settings.queue_page_size, MAX_QUEUE_PAGE_SIZE)

        clauses: List[str] = []
        params: List[Any] = []
        if filters.status is not None:
            clauses.append("status = ?")
            params.append(filters.status.value)
        if filters.priority is not None:
            clauses.append("priority = ?")
            params.append(filters.priority.value)
        if filters.entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(str(filters.entity_type))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with self._db.read() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM moderation_queue {where} ORDER BY created_at DESC, id DESC LIMIT ?",
                (*params, max(1, page_size)),
            )
            rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def get(self, item_id: int) -> Optional[QueueItem]:
        async with self._db.read() as conn:
            cursor = await conn.execute("SELECT * FROM moderation_queue WHERE id = ?", (item_id,))
            row = await cursor.fetchone()
        return self._row_to_item(row) if row else None

    async def resolve(
        self,
        entity_id: str,
        decision: Union[QueueStatus, str],
        moderator_id: str,
        notes: Optional[str] = None,
        entity_type: Optional[Union[EntityType, str]] = None,
    ) -> QueueItem:
        """
        Apply a moderator decision to the entity's queue item.

        The most recent PENDING item is chosen; when none is pending the most
        recent item of any status is re-resolved. Each call writes exactly one
        CONTENT_APPROVED or CONTENT_REJECTED record.

        Raises:
            ValueError: If ``decision`` is not APPROVED or REJECTED.
            QueueItemNotFoundError: If the entity has never been queued.
        """
        status = coerce_decision(decision)
        resolved_at = self._clock()

        sql = "SELECT * FROM moderation_queue WHERE entity_id = ?"
        params: List[Any] = [str(entity_id)]
        if entity_type is not None:
            sql += " AND entity_type = ?"
            params.append(str(entity_type))
        sql += " ORDER BY (status = 'PENDING') DESC, created_at DESC, id DESC LIMIT 1"

        async with self._db.transaction() as conn:
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
            if row is None:
                raise QueueItemNotFoundError(str(entity_id), str(entity_type) if entity_type is not None else None)

            item = self._row_to_item(row)
            previous_status = item.status

            await conn.execute(
                """
                UPDATE moderation_queue
                SET status = ?, resolved_by = ?, resolved_at = ?, notes = ?
                WHERE id = ?
                """,
                (status.value, moderator_id, format_timestamp(resolved_at), notes, item.id),
            )
            await self._ledger.insert(
                conn,
                _RESOLUTION_ACTIONS[status],
                item.entity_type,
                item.entity_id,
                user_id=moderator_id,
                owner_id=item.owner_id,
                metadata={
                    "queue_item_id": item.id,
                    "previous_status": previous_status.value,
                    "notes": notes,
                },
            )

        item.status = status
        item.resolved_by = moderator_id
        item.resolved_at = resolved_at
        item.notes = notes

        logger.info(
            "[REVIEW QUEUE] %s %s %s by %s (was %s)",
            status.value,
            item.entity_type,
            item.entity_id,
            moderator_id,
            previous_status.value,
        )
        return item

    async def stats(self) -> QueueStats:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT status, priority, COUNT(*) AS total FROM moderation_queue GROUP BY status, priority"
            )
            rows = await cursor.fetchall()

        stats = QueueStats()
        for row in rows:
            status = QueueStatus(row["status"])
            total = int(row["total"])
            if status is QueueStatus.PENDING:
                stats.pending += total
                stats.pending_by_priority[QueuePriority(row["priority"])] += total
            elif status is QueueStatus.APPROVED:
                stats.approved += total
            else:
                stats.rejected += total
        return stats

    @staticmethod
    def _row_to_item(row: aiosqlite.Row) -> QueueItem:
        return QueueItem(
            id=row["id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            flags=flags_from_json(json.loads(row["flags"] or "[]")),
            priority=QueuePriority(row["priority"]),
            status=QueueStatus(row["status"]),
            owner_id=row["owner_id"],
            resolved_by=row["resolved_by"],
            resolved_at=parse_timestamp(row["resolved_at"]),
            notes=row["notes"],
            created_at=parse_timestamp(row["created_at"]),
        )
