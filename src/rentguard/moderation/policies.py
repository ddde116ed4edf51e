"""
Per-content-type decision policies.

Each content type trades risk against friction differently, so each gets its
own policy function over the shared flag vocabulary:

* listings reject on CRITICAL, otherwise route anything flagged to the queue
* profiles reject on CRITICAL and flag everything else for visibility only
* messages reject on CRITICAL and otherwise always go through
* reviews are flagged on any signal

Policies are pure: they take the accumulated flags and return a
:class:`ModerationResult`. Side effects (queueing, auditing) belong to the
engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from rentguard.datatypes.moderation_datatypes import (
    ClassifierOutput,
    ModerationFlag,
    ModerationResult,
    ModerationStatus,
    Severity,
    has_severity,
)
from rentguard.datatypes.queue_datatypes import QueuePriority

# A listing with more flags than this is escalated even without a HIGH flag
LISTING_FLAG_ESCALATION_COUNT = 3

PROFILE_FLAGGED_CONFIDENCE = 0.8
MESSAGE_CONFIDENCE = 0.9
MESSAGE_BLOCKED_REASON = "Message contains prohibited content"

MODERATION_ERROR_TYPE = "MODERATION_ERROR"
MODERATION_ERROR_DESCRIPTION = "Moderation service error"


@dataclass(slots=True)
class ListingDecision:
    """A listing verdict plus the queue priority to enqueue with, if any."""

    result: ModerationResult
    queue_priority: Optional[QueuePriority] = None

    @property
    def should_enqueue(self) -> bool:
        return self.queue_priority is not None


def moderation_error_flag() -> ModerationFlag:
    return ModerationFlag(
        type=MODERATION_ERROR_TYPE,
        severity=Severity.MEDIUM,
        confidence=1.0,
        description=MODERATION_ERROR_DESCRIPTION,
    )


def fail_open_result(requires_human_review: bool = True) -> ModerationResult:
    """Result used when a classifier is unavailable: hold for review, never auto-decide."""
    return ModerationResult(
        status=ModerationStatus.PENDING,
        confidence=0.0,
        flags=[moderation_error_flag()],
        requires_human_review=requires_human_review,
    )


def source_confidence(outputs: Sequence[ClassifierOutput]) -> float:
    """
    Average the confidence of the sources that produced at least one flag.

    Sources with no flags do not count towards the denominator. Returns 1.0
    when no source flagged anything.
    """
    flagged = [output.confidence for output in outputs if output.flags]
    if not flagged:
        return 1.0
    return sum(flagged) / len(flagged)


def listing_queue_priority(flags: Sequence[ModerationFlag]) -> QueuePriority:
    return QueuePriority.MEDIUM if has_severity(list(flags), Severity.HIGH) else QueuePriority.LOW


def decide_listing(outputs: Sequence[ClassifierOutput]) -> ListingDecision:
    """Apply the listing ladder to the outputs of every classifier call, in order."""
    flags: List[ModerationFlag] = [flag for output in outputs for flag in output.flags]
    confidence = source_confidence(outputs)

    if has_severity(flags, Severity.CRITICAL):
        return ListingDecision(
            ModerationResult(
                status=ModerationStatus.REJECTED,
                confidence=confidence,
                flags=flags,
                blocked_reasons=[flag.description for flag in flags],
            )
        )

    if has_severity(flags, Severity.HIGH) or len(flags) > LISTING_FLAG_ESCALATION_COUNT:
        status = ModerationStatus.FLAGGED
    elif flags:
        status = ModerationStatus.PENDING
    else:
        return ListingDecision(ModerationResult(status=ModerationStatus.APPROVED, confidence=confidence))

    return ListingDecision(
        ModerationResult(status=status, confidence=confidence, flags=flags, requires_human_review=True),
        queue_priority=listing_queue_priority(flags),
    )


def decide_profile(flags: List[ModerationFlag]) -> ModerationResult:
    confidence = PROFILE_FLAGGED_CONFIDENCE if flags else 1.0

    if has_severity(flags, Severity.CRITICAL):
        return ModerationResult(
            status=ModerationStatus.REJECTED,
            confidence=confidence,
            flags=flags,
            blocked_reasons=[flag.description for flag in flags],
        )
    if flags:
        return ModerationResult(
            status=ModerationStatus.FLAGGED,
            confidence=confidence,
            flags=flags,
            requires_human_review=True,
        )
    return ModerationResult(status=ModerationStatus.APPROVED, confidence=confidence)


def decide_message(flags: List[ModerationFlag], masked_text: Optional[str] = None) -> ModerationResult:
    """Messages are only ever rejected or approved; they never wait for a moderator."""
    if has_severity(flags, Severity.CRITICAL):
        return ModerationResult(
            status=ModerationStatus.REJECTED,
            confidence=MESSAGE_CONFIDENCE,
            flags=flags,
            blocked_reasons=[MESSAGE_BLOCKED_REASON],
            masked_text=masked_text,
        )
    return ModerationResult(
        status=ModerationStatus.APPROVED,
        confidence=MESSAGE_CONFIDENCE,
        flags=flags,
        masked_text=masked_text,
    )


def decide_review(flags: List[ModerationFlag], confidence: float) -> ModerationResult:
    if flags:
        return ModerationResult(
            status=ModerationStatus.FLAGGED,
            confidence=confidence,
            flags=flags,
            requires_human_review=True,
        )
    return ModerationResult(status=ModerationStatus.APPROVED, confidence=confidence)
