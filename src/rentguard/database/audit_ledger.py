"""
Append-only audit ledger and derived per-user moderation history.

Records are inserted and never updated or deleted (enforced by triggers in
the schema). A user's violations are the CONTENT_REJECTED records about
content they own; the risk level is derived from the violations inside the
trailing history window.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import aiosqlite

from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.db_connection import ConnectionManager
from rentguard.datatypes.audit_datatypes import (
    HISTORY_ACTIONS,
    AuditAction,
    AuditFilters,
    AuditRecord,
    RiskLevel,
    UserModerationHistory,
)
from rentguard.datatypes.moderation_datatypes import EntityType
from rentguard.util.logger import get_logger

logger = get_logger("audit_ledger")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 so stored timestamps sort lexicographically."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class AuditLedger:
    """
    Durable store for audit records.

    Args:
        db: Open connection manager.
        settings: Source of the history limit, window, and risk thresholds.
        clock: UTC time source used to stamp records.
    """

    def __init__(
        self,
        db: ConnectionManager,
        settings: Optional[ModerationSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._settings = settings or ModerationSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append(
        self,
        action: AuditAction,
        entity_type: Union[EntityType, str],
        entity_id: str,
        user_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        """Append one record in its own transaction and return it."""
        async with self._db.transaction() as conn:
            return await self.insert(conn, action, entity_type, entity_id, user_id, owner_id, metadata)

    async def insert(
        self,
        conn: aiosqlite.Connection,
        action: AuditAction,
        entity_type: Union[EntityType, str],
        entity_id: str,
        user_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        """
        Insert a record using a connection inside a caller-owned transaction.

        Used by the review queue so a resolution and its audit record commit
        together.
        """
        created_at = self._clock()
        metadata = dict(metadata or {})
        cursor = await conn.execute(
            """
            INSERT INTO audit_log (action, entity_type, entity_id, user_id, owner_id, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                action.value,
                str(entity_type),
                str(entity_id),
                user_id,
                owner_id,
                json.dumps(metadata),
                format_timestamp(created_at),
            ),
        )
        record = AuditRecord(
            id=cursor.lastrowid,
            action=action,
            entity_type=str(entity_type),
            entity_id=str(entity_id),
            user_id=user_id,
            owner_id=owner_id,
            metadata=metadata,
            created_at=created_at,
        )
        logger.debug("[AUDIT] %s %s %s (user=%s)", action.value, entity_type, entity_id, user_id)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(self, filters: Optional[AuditFilters] = None, limit: int = 50) -> List[AuditRecord]:
        """Return records matching ``filters``, newest first."""
        where, params = self._where(filters or AuditFilters())
        sql = f"SELECT * FROM audit_log {where} ORDER BY created_at DESC, id DESC LIMIT ?"
        async with self._db.read() as conn:
            cursor = await conn.execute(sql, (*params, max(0, limit)))
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def count_violations(records: List[AuditRecord], user_id: str, since: Optional[datetime] = None) -> int:
        """Count CONTENT_REJECTED records about content owned by ``user_id``."""
        return sum(
            1
            for record in records
            if record.action is AuditAction.CONTENT_REJECTED
            and record.owner_id == user_id
            and (since is None or (record.created_at is not None and record.created_at >= since))
        )

    async def user_history(self, user_id: str) -> UserModerationHistory:
        """
        Build the moderation history for one user.

        ``records`` holds the most recent moderation-related records about the
        user's content or performed by the user, capped at the history limit.
        Violation counts are taken from those same records.
        """
        placeholders = ", ".join("?" for _ in HISTORY_ACTIONS)
        async with self._db.read() as conn:
            cursor = await conn.execute(
                f"""
                SELECT * FROM audit_log
                WHERE action IN ({placeholders}) AND (owner_id = ? OR user_id = ?)
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (*(action.value for action in HISTORY_ACTIONS), user_id, user_id, self._settings.history_limit),
            )
            rows = await cursor.fetchall()

        records = [self._row_to_record(row) for row in rows]
        since = self._clock() - timedelta(days=self._settings.history_window_days)
        total = self.count_violations(records, user_id)
        recent = self.count_violations(records, user_id, since=since)

        return UserModerationHistory(
            user_id=user_id,
            total_violations=total,
            recent_violations=recent,
            risk_level=self.risk_level(recent),
            records=records,
        )

    def risk_level(self, recent_violations: int) -> RiskLevel:
        if recent_violations > self._settings.risk_high_threshold:
            return RiskLevel.HIGH
        if recent_violations > self._settings.risk_medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _where(filters: AuditFilters) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if filters.action is not None:
            clauses.append("action = ?")
            params.append(filters.action.value)
        if filters.entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(str(filters.entity_type))
        if filters.entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(filters.entity_id)
        if filters.user_id is not None:
            clauses.append("user_id = ?")
            params.append(filters.user_id)
        if filters.owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(filters.owner_id)
        if filters.since is not None:
            clauses.append("created_at >= ?")
            params.append(format_timestamp(filters.since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> AuditRecord:
        return AuditRecord(
            id=row["id"],
            action=AuditAction(row["action"]),
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            user_id=row["user_id"],
            owner_id=row["owner_id"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=parse_timestamp(row["created_at"]),
        )
