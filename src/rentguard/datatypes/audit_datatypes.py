"""
Audit ledger data structures.

Audit records are append-only. The ledger derives a per-user moderation
history and risk level from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AuditAction(Enum):
    """Action tags written to the ledger."""

    CONTENT_MODERATED = "CONTENT_MODERATED"
    CONTENT_APPROVED = "CONTENT_APPROVED"
    CONTENT_REJECTED = "CONTENT_REJECTED"
    MODERATION_QUEUE_ADD = "MODERATION_QUEUE_ADD"

    def __str__(self) -> str:
        return self.value


# Actions included in a user's moderation history
HISTORY_ACTIONS = (
    AuditAction.CONTENT_MODERATED,
    AuditAction.CONTENT_APPROVED,
    AuditAction.CONTENT_REJECTED,
    AuditAction.MODERATION_QUEUE_ADD,
)


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class AuditRecord:
    """
    One append-only ledger entry.

    Attributes:
        id: Row identifier assigned by the store
        action: What happened
        entity_type: Kind of content the record is about
        entity_id: Identifier of that content
        user_id: Actor (content owner for engine decisions, moderator for resolutions)
        owner_id: Owner of the content the record is about
        metadata: Flags/status/confidence or resolution notes
        created_at: UTC timestamp
    """

    id: int
    action: AuditAction
    entity_type: str
    entity_id: str
    user_id: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class AuditFilters:
    action: Optional[AuditAction] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    owner_id: Optional[str] = None
    since: Optional[datetime] = None


@dataclass(slots=True)
class UserModerationHistory:
    """Moderation history and derived risk level for one user."""

    user_id: str
    total_violations: int
    recent_violations: int
    risk_level: RiskLevel
    records: List[AuditRecord] = field(default_factory=list)
