"""Tests for runtime wiring in rentguard.main."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from rentguard import main as main_module
from rentguard.cache.counter_cache import RedisCounterCache, TTLCounterCache
from rentguard.classifiers.openai_backend import OpenAIImageBackend, OpenAITextClassifier
from rentguard.classifiers.text_classifier import RuleBasedTextClassifier
from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.datatypes.moderation_datatypes import ModerationStatus


def test_build_text_classifier_defaults_to_rules():
    classifier = main_module.build_text_classifier(ModerationSettings({"platform_domain": "homes.example"}))
    assert isinstance(classifier, RuleBasedTextClassifier)
    assert classifier.platform_domain == "homes.example"


def test_build_text_classifier_openai(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    classifier = main_module.build_text_classifier(ModerationSettings({"text_backend": "openai"}))
    assert isinstance(classifier, OpenAITextClassifier)


def test_build_image_classifier_backends(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert main_module.build_image_classifier(ModerationSettings()).backend is None

    classifier = main_module.build_image_classifier(ModerationSettings({"image_backend": "openai"}))
    assert isinstance(classifier.backend, OpenAIImageBackend)


def test_build_counter_cache(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    assert isinstance(main_module.build_counter_cache(ModerationSettings()), TTLCounterCache)

    # Redis selected without any URL falls back to memory
    redis_no_url = ModerationSettings({"counter_cache": {"backend": "redis"}})
    assert isinstance(main_module.build_counter_cache(redis_no_url), TTLCounterCache)

    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    assert isinstance(main_module.build_counter_cache(redis_no_url), RedisCounterCache)


@pytest.mark.asyncio
async def test_build_runtime_creates_working_engine(tmp_path: Path):
    runtime = await main_module.build_runtime(ModerationSettings(), tmp_path / "nested" / "rentguard.db")
    try:
        assert (tmp_path / "nested" / "rentguard.db").exists()

        result = await runtime.engine.moderate_message("is the flat still free?", message_id="m1")
        assert result.status is ModerationStatus.APPROVED
    finally:
        await main_module.shutdown_runtime(runtime)

    assert runtime.db.is_open is False


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_redis():
    runtime = main_module.Runtime(
        db=AsyncMock(),
        counter_cache=RedisCounterCache(AsyncMock()),
        engine=AsyncMock(),
    )
    with patch.object(RedisCounterCache, "close", AsyncMock()) as close:
        await main_module.shutdown_runtime(runtime)

    close.assert_awaited_once()
    runtime.db.close.assert_awaited_once()
