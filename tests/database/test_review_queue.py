"""
Tests for the SQLite-backed review queue.
"""

import pytest

from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.review_queue import ReviewQueue, coerce_decision
from rentguard.datatypes.audit_datatypes import AuditAction, AuditFilters
from rentguard.datatypes.moderation_datatypes import EntityType, ModerationFlag, Severity
from rentguard.datatypes.queue_datatypes import QueueFilters, QueuePriority, QueueStatus
from rentguard.moderation.errors import QueueItemNotFoundError

FLAG = ModerationFlag(
    type="SPAM",
    severity=Severity.HIGH,
    confidence=0.8,
    description="Spam content detected",
    details={"spam_score": 2},
)


@pytest.mark.asyncio
async def test_enqueue_creates_pending_item_and_audit_record(queue, ledger):
    item = await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.MEDIUM, owner_id="owner-1")

    assert item.id is not None
    assert item.status is QueueStatus.PENDING
    assert item.entity_type == "LISTING"

    stored = await queue.get(item.id)
    assert stored.flags == [FLAG]
    assert stored.owner_id == "owner-1"
    assert stored.created_at is not None

    records = await ledger.query(AuditFilters(action=AuditAction.MODERATION_QUEUE_ADD))
    assert len(records) == 1
    assert records[0].metadata == {"queue_item_id": item.id, "priority": "MEDIUM", "flag_count": 1}


@pytest.mark.asyncio
async def test_list_is_newest_first_and_filtered(queue):
    await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.LOW)
    await queue.enqueue(EntityType.REVIEW, "R1", [FLAG], QueuePriority.MEDIUM)
    await queue.enqueue(EntityType.LISTING, "L2", [FLAG], QueuePriority.MEDIUM)

    assert [item.entity_id for item in await queue.list()] == ["L2", "R1", "L1"]

    listings = await queue.list(QueueFilters(entity_type=EntityType.LISTING))
    assert [item.entity_id for item in listings] == ["L2", "L1"]

    medium_listings = await queue.list(QueueFilters(priority=QueuePriority.MEDIUM, entity_type="LISTING"))
    assert [item.entity_id for item in medium_listings] == ["L2"]

    await queue.resolve("L1", QueueStatus.APPROVED, "mod-1")
    pending = await queue.list(QueueFilters(status=QueueStatus.PENDING))
    assert [item.entity_id for item in pending] == ["L2", "R1"]


@pytest.mark.asyncio
async def test_list_page_size_is_capped(db, ledger):
    queue = ReviewQueue(db, ledger, ModerationSettings({"queue_page_size": 3}))
    for i in range(5):
        await queue.enqueue(EntityType.LISTING, f"L{i}", [], QueuePriority.LOW)

    assert len(await queue.list()) == 3
    assert len(await queue.list(limit=500)) == 5


@pytest.mark.asyncio
async def test_resolve_stamps_item_and_writes_one_record(queue, ledger):
    await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.MEDIUM, owner_id="owner-1")

    item = await queue.resolve("L1", QueueStatus.REJECTED, "mod-1", notes="misleading photos")

    assert item.status is QueueStatus.REJECTED
    assert item.resolved_by == "mod-1"
    assert item.resolved_at is not None
    assert item.notes == "misleading photos"

    stored = await queue.get(item.id)
    assert stored.status is QueueStatus.REJECTED
    assert stored.resolved_by == "mod-1"

    records = await ledger.query(AuditFilters(action=AuditAction.CONTENT_REJECTED))
    assert len(records) == 1
    assert records[0].user_id == "mod-1"
    assert records[0].owner_id == "owner-1"
    assert records[0].metadata["previous_status"] == "PENDING"


@pytest.mark.asyncio
async def test_resolving_twice_writes_a_record_per_call(queue, ledger):
    await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.MEDIUM)

    first = await queue.resolve("L1", "APPROVED", "mod-1")
    second = await queue.resolve("L1", "approved", "mod-2", notes="confirmed")

    assert first.id == second.id
    assert (await queue.get(first.id)).resolved_by == "mod-2"
    records = await ledger.query(AuditFilters(action=AuditAction.CONTENT_APPROVED))
    assert len(records) == 2
    assert records[0].metadata["previous_status"] == "APPROVED"


@pytest.mark.asyncio
async def test_resolve_prefers_pending_item_over_newer_resolved_one(queue):
    older = await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.LOW)
    newer = await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.LOW)
    await queue.resolve("L1", QueueStatus.APPROVED, "mod-1")
    assert (await queue.get(newer.id)).status is QueueStatus.APPROVED

    resolved = await queue.resolve("L1", QueueStatus.REJECTED, "mod-1")

    assert resolved.id == older.id
    assert (await queue.get(newer.id)).status is QueueStatus.APPROVED


@pytest.mark.asyncio
async def test_resolve_can_be_scoped_by_entity_type(queue):
    await queue.enqueue(EntityType.LISTING, "42", [FLAG], QueuePriority.LOW)
    review_item = await queue.enqueue(EntityType.REVIEW, "42", [FLAG], QueuePriority.LOW)
    await queue.resolve("42", QueueStatus.APPROVED, "mod-1", entity_type=EntityType.LISTING)

    resolved = await queue.resolve("42", QueueStatus.APPROVED, "mod-1", entity_type=EntityType.REVIEW)
    assert resolved.id == review_item.id


@pytest.mark.asyncio
async def test_resolve_missing_entity_raises_not_found(queue, ledger):
    with pytest.raises(QueueItemNotFoundError) as excinfo:
        await queue.resolve("nope", QueueStatus.APPROVED, "mod-1")

    assert excinfo.value.entity_id == "nope"
    assert await ledger.query() == []


@pytest.mark.parametrize("decision", ["PENDING", "maybe", QueueStatus.PENDING])
def test_invalid_decisions_are_rejected(decision):
    with pytest.raises(ValueError):
        coerce_decision(decision)


@pytest.mark.asyncio
async def test_stats_counts_by_status_and_priority(queue):
    await queue.enqueue(EntityType.LISTING, "L1", [FLAG], QueuePriority.MEDIUM)
    await queue.enqueue(EntityType.LISTING, "L2", [FLAG], QueuePriority.LOW)
    await queue.enqueue(EntityType.LISTING, "L3", [FLAG], QueuePriority.LOW)
    await queue.enqueue(EntityType.LISTING, "L4", [FLAG], QueuePriority.HIGH)
    await queue.resolve("L2", QueueStatus.APPROVED, "mod-1")
    await queue.resolve("L4", QueueStatus.REJECTED, "mod-1")

    stats = await queue.stats()

    assert stats.pending == 2
    assert stats.approved == 1
    assert stats.rejected == 1
    assert stats.total == 4
    assert stats.pending_by_priority == {
        QueuePriority.LOW: 1,
        QueuePriority.MEDIUM: 1,
        QueuePriority.HIGH: 0,
    }


@pytest.mark.asyncio
async def test_get_unknown_item_returns_none(queue):
    assert await queue.get(999) is None
