"""
Remote classification backends using the OpenAI moderation endpoint.

- Uses the AsyncOpenAI client (any OpenAI-compatible base URL works).
- ``OpenAITextClassifier`` satisfies the ``TextClassifier`` contract; PII
  detection stays local because the endpoint does not extract contact data.
- ``OpenAIImageBackend`` satisfies the ``ImageBackend`` contract used by
  ``ImageSignalClassifier``.

Backend failures are raised as :class:`ClassifierError`; the image classifier
and the decision engine decide how to degrade.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from rentguard.classifiers.base import ImageAnalysis
from rentguard.classifiers.text_classifier import (
    TEXT_CLEAN_CONFIDENCE,
    TEXT_FLAGGED_CONFIDENCE,
    RuleBasedTextClassifier,
)
from rentguard.datatypes.moderation_datatypes import (
    ClassifierOutput,
    ModerationFlag,
    PIIResult,
    Severity,
)
from rentguard.moderation.errors import ClassifierError
from rentguard.util.logger import get_logger

logger = get_logger("openai_backend")

DEFAULT_MODEL = "omni-moderation-latest"

# category -> (flag type, severity, description)
_CATEGORY_FLAGS: Dict[str, Tuple[str, Severity, str]] = {
    "hate": ("HATE_SPEECH", Severity.CRITICAL, "Potential hate speech detected"),
    "hate/threatening": ("HATE_SPEECH", Severity.CRITICAL, "Potential hate speech detected"),
    "harassment": ("HARASSMENT", Severity.HIGH, "Harassing language detected"),
    "harassment/threatening": ("HARASSMENT", Severity.CRITICAL, "Threatening language detected"),
    "self-harm": ("SELF_HARM", Severity.CRITICAL, "Self-harm content detected"),
    "self-harm/intent": ("SELF_HARM", Severity.CRITICAL, "Self-harm content detected"),
    "self-harm/instructions": ("SELF_HARM", Severity.CRITICAL, "Self-harm content detected"),
    "sexual": ("SEXUAL_CONTENT", Severity.HIGH, "Sexual content detected"),
    "sexual/minors": ("SEXUAL_MINORS", Severity.CRITICAL, "Sexual content involving minors detected"),
    "violence": ("VIOLENCE", Severity.HIGH, "Violent content detected"),
    "violence/graphic": ("VIOLENCE", Severity.CRITICAL, "Graphic violence detected"),
    "illicit": ("ILLICIT", Severity.HIGH, "Illicit activity detected"),
    "illicit/violent": ("ILLICIT", Severity.CRITICAL, "Violent illicit activity detected"),
}


def _clamp(score: Any) -> float:
    try:
        return max(0.0, min(1.0, float(score)))
    except (TypeError, ValueError):
        return 0.0


def _dump(model: Any) -> Dict[str, Any]:
    if model is None:
        return {}
    if isinstance(model, dict):
        return model
    return model.model_dump(by_alias=True)


def flags_from_categories(categories: Dict[str, Any], scores: Dict[str, Any]) -> List[ModerationFlag]:
    """Collapse flagged moderation categories into one flag per flag type.

    When several categories map to the same type, the most severe one wins
    and the highest score is kept as confidence.
    """
    merged: Dict[str, ModerationFlag] = {}
    for category, flagged in categories.items():
        if not flagged or category not in _CATEGORY_FLAGS:
            continue
        flag_type, severity, description = _CATEGORY_FLAGS[category]
        candidate = ModerationFlag(
            type=flag_type,
            severity=severity,
            confidence=_clamp(scores.get(category, 1.0)),
            description=description,
            details={"category": category},
        )
        current = merged.get(flag_type)
        if current is None or current.severity < candidate.severity:
            merged[flag_type] = candidate
        elif current.severity is candidate.severity and current.confidence < candidate.confidence:
            merged[flag_type] = candidate
    return list(merged.values())


class _ModerationClient:
    """Thin wrapper around ``client.moderations.create`` with error mapping."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model

    async def moderate(self, payload: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        try:
            response = await self._client.moderations.create(model=self._model, input=payload)
        except OpenAIError as exc:
            raise ClassifierError(f"OpenAI moderation request failed: {exc}") from exc

        if not response.results:
            raise ClassifierError("OpenAI moderation returned no results")

        result = response.results[0]
        return _dump(result.categories), _dump(result.category_scores)


class OpenAITextClassifier:
    """Remote ``TextClassifier`` backed by the OpenAI moderation endpoint.

    Args:
        client: Pre-built AsyncOpenAI client (optional).
        api_key / base_url: Used to build a client when none is given.
        model: Moderation model name.
        pii_detector: Local classifier used for ``detect_pii``.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        pii_detector: Optional[RuleBasedTextClassifier] = None,
    ) -> None:
        self._moderation = _ModerationClient(client, api_key=api_key, base_url=base_url, model=model)
        self._pii_detector = pii_detector or RuleBasedTextClassifier()
        logger.info("[OPENAI BACKEND] Text classifier initialized with model=%s", model)

    async def classify_text(self, text: str) -> ClassifierOutput:
        categories, scores = await self._moderation.moderate(text)
        flags = flags_from_categories(categories, scores)
        return ClassifierOutput(
            flags=flags,
            confidence=TEXT_FLAGGED_CONFIDENCE if flags else TEXT_CLEAN_CONFIDENCE,
        )

    async def detect_pii(self, text: str) -> PIIResult:
        return await self._pii_detector.detect_pii(text)


class OpenAIImageBackend:
    """Remote ``ImageBackend`` using multimodal moderation on an image URL."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._moderation = _ModerationClient(client, api_key=api_key, base_url=base_url, model=model)
        logger.info("[OPENAI BACKEND] Image backend initialized with model=%s", model)

    async def analyze(self, url: str) -> ImageAnalysis:
        categories, scores = await self._moderation.moderate(
            [{"type": "image_url", "image_url": {"url": url}}]
        )
        violence_keys = ("violence", "violence/graphic")
        return ImageAnalysis(
            explicit_content=bool(categories.get("sexual") or categories.get("sexual/minors")),
            explicit_content_confidence=max(_clamp(scores.get("sexual")), _clamp(scores.get("sexual/minors"))),
            violence=any(categories.get(key) for key in violence_keys),
            violence_confidence=max(_clamp(scores.get(key)) for key in violence_keys),
        )
