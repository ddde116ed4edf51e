"""
Core moderation vocabulary shared by every classifier and policy.

Defines the flag severity ladder, the verdict statuses, the immutable
``ModerationFlag`` produced by classifiers, and the ``ModerationResult``
returned to callers of the decision engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(Enum):
    """Ordinal risk tier of a single flag (LOW < MEDIUM < HIGH < CRITICAL)."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __str__(self) -> str:
        return self.value


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ModerationStatus(Enum):
    """Terminal verdict for one moderation call."""

    APPROVED = "APPROVED"
    PENDING = "PENDING"
    FLAGGED = "FLAGGED"
    REJECTED = "REJECTED"

    def __str__(self) -> str:
        return self.value


class EntityType(Enum):
    """Kinds of user content the engine moderates."""

    LISTING = "LISTING"
    PROFILE = "PROFILE"
    MESSAGE = "MESSAGE"
    REVIEW = "REVIEW"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ModerationFlag:
    """A single classifier finding.

    Attributes:
        type: Free-form category tag (e.g. ``PROFANITY``, ``PHONE_DETECTED``)
        severity: Risk tier driving escalation
        confidence: Classifier confidence in [0, 1]
        description: Human-readable explanation, used as a blocked reason
        details: Optional structured metadata such as matched-term counts
    """

    type: str
    severity: Severity
    confidence: float
    description: str
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "description": self.description,
        }
        if self.details is not None:
            data["details"] = dict(self.details)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModerationFlag":
        return cls(
            type=str(data["type"]),
            severity=Severity(data["severity"]),
            confidence=float(data["confidence"]),
            description=str(data.get("description", "")),
            details=data.get("details"),
        )


@dataclass(slots=True)
class ModerationResult:
    """The engine's verdict for one evaluation.

    ``blocked_reasons`` is only populated when ``status`` is REJECTED.
    ``masked_text`` is only populated for messages, where PII is redacted.
    """

    status: ModerationStatus
    confidence: float
    flags: List[ModerationFlag] = field(default_factory=list)
    requires_human_review: bool = False
    blocked_reasons: Optional[List[str]] = None
    masked_text: Optional[str] = None

    @property
    def has_flags(self) -> bool:
        return bool(self.flags)

    def public_view(self) -> Dict[str, Any]:
        """Return only what the content producer may see."""
        view: Dict[str, Any] = {"status": self.status.value}
        if self.blocked_reasons:
            view["blocked_reasons"] = list(self.blocked_reasons)
        return view

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "flags": [flag.to_dict() for flag in self.flags],
            "requires_human_review": self.requires_human_review,
            "blocked_reasons": list(self.blocked_reasons) if self.blocked_reasons is not None else None,
        }


@dataclass(slots=True)
class ClassifierOutput:
    """Flags and aggregate confidence returned by one classifier call."""

    flags: List[ModerationFlag] = field(default_factory=list)
    confidence: float = 1.0


@dataclass(slots=True)
class PIIResult:
    """PII findings and a redacted copy of the input text."""

    flags: List[ModerationFlag]
    masked_text: str


def has_severity(flags: List[ModerationFlag], severity: Severity) -> bool:
    """Return True if any flag carries exactly ``severity``."""
    return any(flag.severity is severity for flag in flags)


def flags_to_json(flags: List[ModerationFlag]) -> List[Dict[str, Any]]:
    return [flag.to_dict() for flag in flags]


def flags_from_json(data: List[Dict[str, Any]] | None) -> List[ModerationFlag]:
    return [ModerationFlag.from_dict(item) for item in (data or [])]
