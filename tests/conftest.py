"""
Pytest configuration and fixtures for Rentguard tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Keep test runs from writing session logs into the project tree
os.environ.setdefault("RENTGUARD_LOGS_DIR", str(Path(tempfile.gettempdir()) / "rentguard-test-logs"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest

from rentguard.cache.counter_cache import TTLCounterCache
from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.audit_ledger import AuditLedger
from rentguard.database.db_connection import ConnectionManager
from rentguard.database.db_schema import SchemaManager
from rentguard.database.review_queue import ReviewQueue
from rentguard.datatypes.moderation_datatypes import ClassifierOutput, PIIResult
from rentguard.moderation.moderation_engine import ModerationEngine
from rentguard.moderation.review_velocity import ReviewVelocityCounter


@pytest.fixture
async def db(tmp_path: Path):
    """Open a fresh SQLite database with the schema applied."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "test.db")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()


@pytest.fixture
def settings() -> ModerationSettings:
    return ModerationSettings({"classifier_timeout_seconds": 1})


@pytest.fixture
def ledger(db: ConnectionManager, settings: ModerationSettings) -> AuditLedger:
    return AuditLedger(db, settings)


@pytest.fixture
def queue(db: ConnectionManager, ledger: AuditLedger, settings: ModerationSettings) -> ReviewQueue:
    return ReviewQueue(db, ledger, settings)


@pytest.fixture
def counter_cache() -> TTLCounterCache:
    return TTLCounterCache()


@pytest.fixture
def text_classifier() -> MagicMock:
    """Text classifier double that finds nothing and returns the text unmasked."""
    classifier = MagicMock()
    classifier.classify_text = AsyncMock(return_value=ClassifierOutput(flags=[], confidence=1.0))
    classifier.detect_pii = AsyncMock(side_effect=lambda text: PIIResult(flags=[], masked_text=text))
    return classifier


@pytest.fixture
def image_classifier() -> MagicMock:
    """Image classifier double reporting a reachable image with no visual backend."""
    classifier = MagicMock()
    classifier.classify_image = AsyncMock(return_value=ClassifierOutput(flags=[], confidence=0.5))
    return classifier


@pytest.fixture
def build_engine(text_classifier, image_classifier, queue, ledger, counter_cache, settings):
    """Factory for an engine wired to real stores and the classifier doubles."""

    def _build(
        text=None,
        image=None,
        engine_settings: ModerationSettings | None = None,
    ) -> ModerationEngine:
        active_settings = engine_settings or settings
        return ModerationEngine(
            text_classifier=text or text_classifier,
            image_classifier=image or image_classifier,
            review_queue=queue,
            audit_ledger=ledger,
            review_velocity=ReviewVelocityCounter(
                counter_cache,
                window_seconds=active_settings.review_velocity_window_seconds,
                threshold=active_settings.review_velocity_threshold,
            ),
            settings=active_settings,
        )

    return _build
