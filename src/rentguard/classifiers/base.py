"""
Capability interfaces the decision engine depends on.

Any object satisfying these protocols can be injected into the engine: the
local rule engine, a remote moderation API, or a test double. The engine
never inspects which implementation it was given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from rentguard.datatypes.moderation_datatypes import ClassifierOutput, PIIResult


@runtime_checkable
class TextClassifier(Protocol):
    """Scans text for policy violations and personally identifying information."""

    async def classify_text(self, text: str) -> ClassifierOutput:
        ...

    async def detect_pii(self, text: str) -> PIIResult:
        ...


@runtime_checkable
class ImageClassifier(Protocol):
    """Classifies the image behind a URL."""

    async def classify_image(self, url: str) -> ClassifierOutput:
        ...


@dataclass(slots=True)
class ImageAnalysis:
    """Raw findings from a visual classification backend."""

    explicit_content: bool = False
    explicit_content_confidence: float = 0.0
    violence: bool = False
    violence_confidence: float = 0.0
    text_in_image: bool = False
    detected_text: Optional[str] = None


@runtime_checkable
class ImageBackend(Protocol):
    """Out-of-process visual classifier used by :class:`ImageSignalClassifier`."""

    async def analyze(self, url: str) -> ImageAnalysis:
        ...
