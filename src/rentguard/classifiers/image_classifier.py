"""Image signal classifier: accessibility probe plus a pluggable visual backend."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import requests

from rentguard.classifiers.base import ImageAnalysis, ImageBackend
from rentguard.datatypes.moderation_datatypes import (
    ClassifierOutput,
    ModerationFlag,
    Severity,
)
from rentguard.util.logger import get_logger

logger = get_logger("image_classifier")

BACKEND_CONFIDENCE = 0.9
# No visual classifier configured: the signal is weaker, but never a block
DEGRADED_CONFIDENCE = 0.5


def probe_image_url(url: str, timeout: float) -> bool:
    """
    Issue a HEAD request and report whether the image is reachable.

    This function blocks the calling thread so it should be run via
    ``asyncio.to_thread``.

    Args:
        url (str): Image URL to probe.
        timeout (float): Request timeout in seconds.

    Returns:
        bool: True for a 2xx/3xx response after redirects, False otherwise.
    """
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
        return response.ok
    except requests.RequestException as exc:
        logger.debug("[IMAGE PROBE] HEAD failed for %s: %s", url, exc)
        return False


class ImageSignalClassifier:
    """
    Classifies the image behind a URL.

    Every call probes accessibility first. Visual classification is delegated
    to ``backend``; without one the result carries no visual flags and a
    degraded confidence of 0.5. Any failure is converted into a single
    MODERATION_ERROR flag with confidence 0 and never propagates.

    Args:
        backend: Optional visual classifier.
        probe_timeout: Timeout in seconds for the accessibility probe.
    """

    def __init__(self, backend: Optional[ImageBackend] = None, probe_timeout: float = 5.0) -> None:
        self._backend = backend
        self._probe_timeout = probe_timeout

    @property
    def backend(self) -> Optional[ImageBackend]:
        return self._backend

    async def classify_image(self, url: str) -> ClassifierOutput:
        flags: List[ModerationFlag] = []

        try:
            accessible = await asyncio.to_thread(probe_image_url, url, self._probe_timeout)
            if not accessible:
                flags.append(
                    ModerationFlag(
                        type="IMAGE_INACCESSIBLE",
                        severity=Severity.MEDIUM,
                        confidence=1.0,
                        description="Image URL is not accessible",
                    )
                )

            analysis = await self._backend.analyze(url) if self._backend else None
            if analysis is not None:
                flags.extend(self._flags_from_analysis(analysis))

            return ClassifierOutput(
                flags=flags,
                confidence=BACKEND_CONFIDENCE if analysis is not None else DEGRADED_CONFIDENCE,
            )
        except Exception as exc:
            logger.error("[IMAGE CLASSIFIER] Moderation failed for %s: %s", url, exc)
            return ClassifierOutput(
                flags=[
                    ModerationFlag(
                        type="MODERATION_ERROR",
                        severity=Severity.MEDIUM,
                        confidence=1.0,
                        description="Image moderation service error",
                    )
                ],
                confidence=0.0,
            )

    @staticmethod
    def _flags_from_analysis(analysis: ImageAnalysis) -> List[ModerationFlag]:
        flags: List[ModerationFlag] = []

        if analysis.explicit_content:
            flags.append(
                ModerationFlag(
                    type="EXPLICIT_CONTENT",
                    severity=Severity.CRITICAL,
                    confidence=analysis.explicit_content_confidence,
                    description="Explicit or inappropriate content detected",
                )
            )

        if analysis.violence:
            flags.append(
                ModerationFlag(
                    type="VIOLENCE",
                    severity=Severity.CRITICAL,
                    confidence=analysis.violence_confidence,
                    description="Violent content detected",
                )
            )

        if analysis.text_in_image:
            flags.append(
                ModerationFlag(
                    type="TEXT_IN_IMAGE",
                    severity=Severity.LOW,
                    confidence=0.7,
                    description="Text detected in image",
                    details={"text": analysis.detected_text},
                )
            )

        return flags
