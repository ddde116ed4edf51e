"""
Tests for the append-only audit ledger and user history derivation.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.audit_ledger import AuditLedger
from rentguard.datatypes.audit_datatypes import AuditAction, AuditFilters, AuditRecord, RiskLevel
from rentguard.datatypes.moderation_datatypes import EntityType

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def ledger_at(db, when: datetime, settings: ModerationSettings | None = None) -> AuditLedger:
    return AuditLedger(db, settings or ModerationSettings(), clock=lambda: when)


async def reject(ledger: AuditLedger, owner_id: str, entity_id: str, moderator_id: str = "mod-1") -> None:
    await ledger.append(
        AuditAction.CONTENT_REJECTED,
        EntityType.LISTING,
        entity_id,
        user_id=moderator_id,
        owner_id=owner_id,
    )


@pytest.mark.asyncio
async def test_append_and_query(ledger):
    record = await ledger.append(
        AuditAction.CONTENT_MODERATED,
        EntityType.REVIEW,
        "r1",
        user_id="u1",
        owner_id="u1",
        metadata={"status": "FLAGGED"},
    )

    assert record.id is not None
    assert record.entity_type == "REVIEW"

    records = await ledger.query(AuditFilters(entity_id="r1"))
    assert len(records) == 1
    assert records[0].action is AuditAction.CONTENT_MODERATED
    assert records[0].metadata == {"status": "FLAGGED"}
    assert records[0].created_at is not None


@pytest.mark.asyncio
async def test_query_filters_and_ordering(db):
    await ledger_at(db, NOW - timedelta(days=2)).append(AuditAction.CONTENT_MODERATED, "LISTING", "L1", owner_id="a")
    await ledger_at(db, NOW - timedelta(days=1)).append(AuditAction.CONTENT_MODERATED, "LISTING", "L2", owner_id="b")
    await ledger_at(db, NOW).append(AuditAction.CONTENT_APPROVED, "LISTING", "L1", user_id="mod", owner_id="a")
    ledger = ledger_at(db, NOW)

    assert [r.entity_id for r in await ledger.query()] == ["L1", "L2", "L1"]
    assert [r.entity_id for r in await ledger.query(limit=1)] == ["L1"]
    assert len(await ledger.query(AuditFilters(owner_id="a"))) == 2
    assert len(await ledger.query(AuditFilters(action=AuditAction.CONTENT_APPROVED, user_id="mod"))) == 1
    assert len(await ledger.query(AuditFilters(since=NOW - timedelta(hours=36)))) == 2


@pytest.mark.asyncio
async def test_records_cannot_be_changed_or_deleted(db, ledger):
    await ledger.append(AuditAction.CONTENT_MODERATED, "LISTING", "L1")

    with pytest.raises(sqlite3.DatabaseError):
        async with db.transaction() as conn:
            await conn.execute("UPDATE audit_log SET entity_id = 'L2'")

    with pytest.raises(sqlite3.DatabaseError):
        async with db.transaction() as conn:
            await conn.execute("DELETE FROM audit_log")

    assert [r.entity_id for r in await ledger.query()] == ["L1"]


@pytest.mark.asyncio
async def test_history_counts_recent_and_total_violations(db):
    old = ledger_at(db, NOW - timedelta(days=120))
    recent = ledger_at(db, NOW - timedelta(days=10))
    await reject(old, "owner-1", "L1")
    await reject(recent, "owner-1", "L2")
    await reject(recent, "owner-1", "L3")

    history = await ledger_at(db, NOW).user_history("owner-1")

    assert history.total_violations == 3
    assert history.recent_violations == 2
    assert history.risk_level is RiskLevel.MEDIUM
    assert len(history.records) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "violations, expected",
    [(0, RiskLevel.LOW), (1, RiskLevel.LOW), (2, RiskLevel.MEDIUM), (3, RiskLevel.MEDIUM), (4, RiskLevel.HIGH)],
)
async def test_risk_level_thresholds(db, violations, expected):
    ledger = ledger_at(db, NOW)
    for i in range(violations):
        await reject(ledger, "owner-1", f"L{i}")

    history = await ledger.user_history("owner-1")

    assert history.recent_violations == violations
    assert history.risk_level is expected


@pytest.mark.asyncio
async def test_moderator_actions_do_not_count_against_the_moderator(db):
    ledger = ledger_at(db, NOW)
    await reject(ledger, "owner-1", "L1", moderator_id="mod-1")
    await reject(ledger, "owner-2", "L2", moderator_id="mod-1")

    history = await ledger.user_history("mod-1")

    assert history.total_violations == 0
    assert history.risk_level is RiskLevel.LOW
    assert len(history.records) == 2


@pytest.mark.asyncio
async def test_history_records_are_capped(db):
    ledger = ledger_at(db, NOW, ModerationSettings({"history": {"limit": 3}}))
    for i in range(5):
        await ledger.append(AuditAction.CONTENT_MODERATED, "LISTING", f"L{i}", user_id="u1", owner_id="u1")

    history = await ledger.user_history("u1")

    assert len(history.records) == 3
    assert [r.entity_id for r in history.records] == ["L4", "L3", "L2"]


@pytest.mark.asyncio
async def test_violation_counts_come_from_the_capped_records(db):
    settings = ModerationSettings({"history": {"limit": 5}})
    old = ledger_at(db, NOW - timedelta(days=120), settings)
    recent = ledger_at(db, NOW - timedelta(days=1), settings)
    for i in range(4):
        await reject(old, "u1", f"old-{i}")
    for i in range(4):
        await reject(recent, "u1", f"new-{i}")

    history = await ledger_at(db, NOW, settings).user_history("u1")

    assert len(history.records) == 5
    assert history.total_violations == 5
    assert history.recent_violations == 4
    assert history.risk_level is RiskLevel.HIGH


def test_count_violations_only_counts_rejections_of_the_owner():
    def record(record_id, action, owner_id, user_id=None, age_days=0):
        return AuditRecord(
            id=record_id,
            action=action,
            entity_type="LISTING",
            entity_id=f"L{record_id}",
            user_id=user_id,
            owner_id=owner_id,
            created_at=NOW - timedelta(days=age_days),
        )

    records = [
        record(1, AuditAction.CONTENT_REJECTED, "u1", user_id="mod"),
        record(2, AuditAction.CONTENT_REJECTED, "u2", user_id="u1"),
        record(3, AuditAction.CONTENT_MODERATED, "u1"),
        record(4, AuditAction.CONTENT_REJECTED, "u1", user_id="mod", age_days=100),
    ]

    assert AuditLedger.count_violations(records, "u1") == 2
    assert AuditLedger.count_violations(records, "u1", since=NOW - timedelta(days=90)) == 1
