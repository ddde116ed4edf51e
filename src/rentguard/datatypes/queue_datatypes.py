"""
Human review queue data structures.

This module defines the items presented to moderators for review, the
filters used to list them, and the aggregate counts shown on the queue
dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from rentguard.datatypes.moderation_datatypes import ModerationFlag


class QueuePriority(Enum):
    """Triage ranking used by moderators."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    def __str__(self) -> str:
        return self.value


class QueueStatus(Enum):
    """Lifecycle state of a queue item."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class QueueItem:
    """
    A pending (or historical) human-review case.

    Created with status PENDING when the engine routes content to review and
    mutated only by a moderator resolution. Items are never deleted so
    resolved cases remain available for audit.
    """

    id: int
    entity_type: str
    entity_id: str
    flags: List[ModerationFlag]
    priority: QueuePriority
    status: QueueStatus = QueueStatus.PENDING
    owner_id: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status is not QueueStatus.PENDING


@dataclass(slots=True)
class QueueFilters:
    """Optional filters for listing the queue; ``None`` means no constraint."""

    status: Optional[QueueStatus] = None
    priority: Optional[QueuePriority] = None
    entity_type: Optional[str] = None


@dataclass(slots=True)
class QueueStats:
    """Queue totals plus a breakdown of pending items by priority."""

    pending: int = 0
    approved: int = 0
    rejected: int = 0
    pending_by_priority: Dict[QueuePriority, int] = field(
        default_factory=lambda: {priority: 0 for priority in QueuePriority}
    )

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected
