"""
Moderation decision engine.

Runs the classifiers for one piece of content, applies the policy for its
content type, and performs the side effects that follow from the verdict
(review queue entry, audit record).

Failure model:
- A classifier exception or timeout never escapes ``moderate_*``. Listings,
  profiles and reviews fall back to PENDING with a MODERATION_ERROR flag so a
  human looks at them; messages do the same without asking for review.
- Queue and audit writes happen after the decision is made. Their failures
  are logged and do not change the returned result.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar, Union

from rentguard.classifiers.base import ImageClassifier, TextClassifier
from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.audit_ledger import AuditLedger
from rentguard.database.review_queue import ReviewQueue
from rentguard.datatypes.audit_datatypes import AuditAction, UserModerationHistory
from rentguard.datatypes.moderation_datatypes import (
    ClassifierOutput,
    EntityType,
    ModerationFlag,
    ModerationResult,
    PIIResult,
    Severity,
)
from rentguard.datatypes.queue_datatypes import (
    QueueFilters,
    QueueItem,
    QueuePriority,
    QueueStats,
    QueueStatus,
)
from rentguard.moderation import policies
from rentguard.moderation.review_velocity import ReviewVelocityCounter
from rentguard.util.logger import get_logger

logger = get_logger("moderation_engine")

T = TypeVar("T")

# Low-effort negative review heuristic
SUSPICIOUS_REVIEW_MAX_LENGTH = 50


class ModerationEngine:
    """
    Entry point for moderating listings, profiles, messages, and reviews.

    All collaborators are injected and shared; the engine keeps no mutable
    state of its own between calls.

    Args:
        text_classifier: Text rules / remote text backend.
        image_classifier: Image probe plus optional visual backend.
        review_queue: Store for items that need a moderator.
        audit_ledger: Append-only record of decisions.
        review_velocity: Per-reviewer review counter.
        settings: Moderation tuning (timeouts, thresholds).
    """

    def __init__(
        self,
        text_classifier: TextClassifier,
        image_classifier: ImageClassifier,
        review_queue: ReviewQueue,
        audit_ledger: AuditLedger,
        review_velocity: ReviewVelocityCounter,
        settings: Optional[ModerationSettings] = None,
    ) -> None:
        self._text = text_classifier
        self._image = image_classifier
        self._queue = review_queue
        self._ledger = audit_ledger
        self._velocity = review_velocity
        self._settings = settings or ModerationSettings()

    # ------------------------------------------------------------------
    # Content moderation
    # ------------------------------------------------------------------

    async def moderate_listing(
        self,
        title: str,
        description: str,
        photo_urls: Sequence[str],
        *,
        listing_id: str,
        owner_id: Optional[str] = None,
    ) -> ModerationResult:
        """
        Moderate a rental listing.

        Text is classified once over title and description; every photo is
        classified independently and concurrently. CRITICAL findings reject
        the listing outright. Anything else that was flagged is queued for a
        moderator.
        """
        try:
            text_output = await self._bounded(self._text.classify_text(f"{title} {description}"))
            # One failed photo cancels the rest
            async with asyncio.TaskGroup() as group:
                photo_tasks = [
                    group.create_task(self._bounded(self._image.classify_image(url))) for url in photo_urls
                ]
            photo_outputs = [task.result() for task in photo_tasks]
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MODERATION ENGINE] Listing %s classification failed: %s", listing_id, exc)
            result = policies.fail_open_result()
            await self._enqueue(EntityType.LISTING, listing_id, result.flags, QueuePriority.LOW, owner_id)
            await self._audit(EntityType.LISTING, listing_id, result, owner_id)
            return result

        decision = policies.decide_listing([text_output, *photo_outputs])
        result = decision.result

        if decision.should_enqueue:
            await self._enqueue(EntityType.LISTING, listing_id, result.flags, decision.queue_priority, owner_id)
        if result.has_flags:
            await self._audit(EntityType.LISTING, listing_id, result, owner_id)

        logger.debug(
            "[MODERATION ENGINE] Listing %s -> %s (%d flag(s), confidence %.2f)",
            listing_id,
            result.status,
            len(result.flags),
            result.confidence,
        )
        return result

    async def moderate_profile(
        self,
        bio: Optional[str] = None,
        photo_url: Optional[str] = None,
        *,
        user_id: str,
    ) -> ModerationResult:
        """Moderate a user profile. Absent fields are not classified; profiles are never queued."""
        flags: List[ModerationFlag] = []
        try:
            if bio is not None:
                flags.extend((await self._bounded(self._text.classify_text(bio))).flags)
            if photo_url is not None:
                flags.extend((await self._bounded(self._image.classify_image(photo_url))).flags)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MODERATION ENGINE] Profile %s classification failed: %s", user_id, exc)
            result = policies.fail_open_result()
            await self._audit(EntityType.PROFILE, user_id, result, user_id)
            return result

        result = policies.decide_profile(flags)
        if result.has_flags:
            await self._audit(EntityType.PROFILE, user_id, result, user_id)
        return result

    async def moderate_message(
        self,
        text: str,
        *,
        message_id: str,
        sender_id: Optional[str] = None,
    ) -> ModerationResult:
        """
        Moderate a direct message.

        PII flags come first, followed by content flags. The result carries
        the redacted text for delivery. Messages never wait for a moderator.
        """
        try:
            pii: PIIResult = await self._bounded(self._text.detect_pii(text))
            content: ClassifierOutput = await self._bounded(self._text.classify_text(text))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MODERATION ENGINE] Message %s classification failed: %s", message_id, exc)
            result = policies.fail_open_result(requires_human_review=False)
            await self._audit(EntityType.MESSAGE, message_id, result, sender_id)
            return result

        result = policies.decide_message([*pii.flags, *content.flags], masked_text=pii.masked_text)
        if result.has_flags:
            await self._audit(EntityType.MESSAGE, message_id, result, sender_id)
        return result

    async def moderate_review(
        self,
        content: str,
        rating: int,
        *,
        title: Optional[str] = None,
        review_id: str,
        reviewer_id: str,
    ) -> ModerationResult:
        """
        Moderate a review.

        Adds a SUSPICIOUS_REVIEW flag for short one-star reviews and a
        REVIEW_BOMBING flag when the reviewer already reached the velocity
        threshold inside the window. The review is counted afterwards.
        """
        try:
            output = await self._bounded(self._text.classify_text(f"{title or ''} {content}"))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[MODERATION ENGINE] Review %s classification failed: %s", review_id, exc)
            await self._velocity.record_review(reviewer_id)
            result = policies.fail_open_result()
            await self._audit(EntityType.REVIEW, review_id, result, reviewer_id)
            return result

        flags = list(output.flags)

        if rating == 1 and len(content) < SUSPICIOUS_REVIEW_MAX_LENGTH:
            flags.append(
                ModerationFlag(
                    type="SUSPICIOUS_REVIEW",
                    severity=Severity.LOW,
                    confidence=0.6,
                    description="Very short negative review",
                )
            )

        recent_reviews = await self._velocity.recent_count(reviewer_id)
        if self._velocity.is_bombing(recent_reviews):
            flags.append(
                ModerationFlag(
                    type="REVIEW_BOMBING",
                    severity=Severity.HIGH,
                    confidence=0.7,
                    description="Unusually high review volume from this reviewer",
                    details={
                        "recent_reviews": recent_reviews,
                        "window_seconds": self._velocity.window_seconds,
                    },
                )
            )
        await self._velocity.record_review(reviewer_id)

        result = policies.decide_review(flags, output.confidence)
        if result.has_flags:
            await self._audit(EntityType.REVIEW, review_id, result, reviewer_id)
        return result

    # ------------------------------------------------------------------
    # Moderator operations
    # ------------------------------------------------------------------

    async def get_moderation_queue(self, filters: Optional[QueueFilters] = None) -> List[QueueItem]:
        return await self._queue.list(filters)

    async def approve_content(
        self,
        entity_id: str,
        moderator_id: str,
        notes: Optional[str] = None,
        entity_type: Optional[Union[EntityType, str]] = None,
    ) -> QueueItem:
        return await self._queue.resolve(entity_id, QueueStatus.APPROVED, moderator_id, notes, entity_type)

    async def reject_content(
        self,
        entity_id: str,
        moderator_id: str,
        reason: str,
        entity_type: Optional[Union[EntityType, str]] = None,
    ) -> QueueItem:
        return await self._queue.resolve(entity_id, QueueStatus.REJECTED, moderator_id, reason, entity_type)

    async def get_queue_stats(self) -> QueueStats:
        return await self._queue.stats()

    async def get_user_history(self, user_id: str) -> UserModerationHistory:
        return await self._ledger.user_history(user_id)

    async def test_text(self, text: str) -> Dict[str, Any]:
        """Run text classification and PII detection on ``text`` without side effects."""
        content = await self._bounded(self._text.classify_text(text))
        pii = await self._bounded(self._text.detect_pii(text))
        return {
            "flags": content.flags,
            "confidence": content.confidence,
            "pii_flags": pii.flags,
            "masked_text": pii.masked_text,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _bounded(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self._settings.classifier_timeout_seconds)

    async def _enqueue(
        self,
        entity_type: EntityType,
        entity_id: str,
        flags: List[ModerationFlag],
        priority: QueuePriority,
        owner_id: Optional[str],
    ) -> None:
        try:
            await self._queue.enqueue(entity_type, entity_id, flags, priority, owner_id=owner_id)
        except Exception:
            logger.exception("[MODERATION ENGINE] Failed to enqueue %s %s", entity_type, entity_id)

    async def _audit(
        self,
        entity_type: EntityType,
        entity_id: str,
        result: ModerationResult,
        owner_id: Optional[str],
    ) -> None:
        try:
            await self._ledger.append(
                AuditAction.CONTENT_MODERATED,
                entity_type,
                entity_id,
                user_id=owner_id,
                owner_id=owner_id,
                metadata={
                    "status": result.status.value,
                    "confidence": result.confidence,
                    "requires_human_review": result.requires_human_review,
                    "flags": [flag.to_dict() for flag in result.flags],
                },
            )
        except Exception:
            logger.exception("[MODERATION ENGINE] Failed to audit %s %s", entity_type, entity_id)
