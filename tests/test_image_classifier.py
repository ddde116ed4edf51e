from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from rentguard.classifiers import image_classifier
from rentguard.classifiers.base import ImageAnalysis
from rentguard.classifiers.image_classifier import ImageSignalClassifier, probe_image_url
from rentguard.datatypes.moderation_datatypes import Severity

IMAGE_URL = "https://cdn.example.com/photos/1.jpg"


@pytest.fixture
def reachable(monkeypatch):
    calls = []

    def fake_head(url, timeout, allow_redirects):
        calls.append((url, timeout, allow_redirects))
        return SimpleNamespace(ok=True)

    monkeypatch.setattr(image_classifier.requests, "head", fake_head)
    return calls


@pytest.fixture
def unreachable(monkeypatch):
    monkeypatch.setattr(image_classifier.requests, "head", lambda *args, **kwargs: SimpleNamespace(ok=False))


def make_backend(analysis=None, error=None) -> MagicMock:
    backend = MagicMock()
    backend.analyze = AsyncMock(return_value=analysis, side_effect=error)
    return backend


def test_probe_follows_redirects_with_timeout(reachable):
    assert probe_image_url(IMAGE_URL, 2.5) is True
    assert reachable == [(IMAGE_URL, 2.5, True)]


def test_probe_returns_false_on_request_error(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(image_classifier.requests, "head", boom)
    assert probe_image_url(IMAGE_URL, 1.0) is False


async def test_reachable_without_backend_is_degraded(reachable):
    output = await ImageSignalClassifier().classify_image(IMAGE_URL)

    assert output.flags == []
    assert output.confidence == pytest.approx(0.5)


async def test_unreachable_image_is_flagged(unreachable):
    output = await ImageSignalClassifier().classify_image(IMAGE_URL)

    assert [flag.type for flag in output.flags] == ["IMAGE_INACCESSIBLE"]
    assert output.flags[0].severity is Severity.MEDIUM
    assert output.flags[0].confidence == 1.0


async def test_backend_findings_become_flags(reachable):
    backend = make_backend(
        ImageAnalysis(
            explicit_content=True,
            explicit_content_confidence=0.95,
            text_in_image=True,
            detected_text="call 555 0101",
        )
    )
    output = await ImageSignalClassifier(backend=backend).classify_image(IMAGE_URL)

    assert [flag.type for flag in output.flags] == ["EXPLICIT_CONTENT", "TEXT_IN_IMAGE"]
    assert output.flags[0].severity is Severity.CRITICAL
    assert output.flags[0].confidence == pytest.approx(0.95)
    assert output.flags[1].severity is Severity.LOW
    assert output.flags[1].details == {"text": "call 555 0101"}
    assert output.confidence == pytest.approx(0.9)
    backend.analyze.assert_awaited_once_with(IMAGE_URL)


async def test_clean_backend_result_has_full_backend_confidence(reachable):
    output = await ImageSignalClassifier(backend=make_backend(ImageAnalysis())).classify_image(IMAGE_URL)
    assert output.flags == []
    assert output.confidence == pytest.approx(0.9)


async def test_backend_error_becomes_single_error_flag(unreachable):
    backend = make_backend(error=RuntimeError("backend down"))
    output = await ImageSignalClassifier(backend=backend).classify_image(IMAGE_URL)

    assert len(output.flags) == 1
    assert output.flags[0].type == "MODERATION_ERROR"
    assert output.flags[0].severity is Severity.MEDIUM
    assert output.confidence == 0.0
