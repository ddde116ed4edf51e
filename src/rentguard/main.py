"""
Rentguard Moderator Service
===========================

Wires the moderation engine from configuration, opens the SQLite store, and
runs the interactive moderator console until the operator quits.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. RENTGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("RENTGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()

import asyncio
from dataclasses import dataclass
from dotenv import load_dotenv

from rentguard.cache.counter_cache import CounterCache, RedisCounterCache, TTLCounterCache
from rentguard.classifiers.base import TextClassifier
from rentguard.classifiers.image_classifier import ImageSignalClassifier
from rentguard.classifiers.openai_backend import OpenAIImageBackend, OpenAITextClassifier
from rentguard.classifiers.text_classifier import RuleBasedTextClassifier
from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.database.audit_ledger import AuditLedger
from rentguard.database.db_connection import ConnectionManager
from rentguard.database.db_schema import SchemaManager
from rentguard.database.review_queue import ReviewQueue
from rentguard.moderation.moderation_engine import ModerationEngine
from rentguard.moderation.review_velocity import ReviewVelocityCounter
from rentguard.ui.console import ConsoleControl, console_session
from rentguard.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> None:
    """Load ``.env`` from the project base directory into the environment."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")


def build_text_classifier(settings: ModerationSettings) -> TextClassifier:
    """Select the text backend named in the configuration."""
    rules = RuleBasedTextClassifier(platform_domain=settings.platform_domain)
    if settings.text_backend == "openai":
        logger.info("Using OpenAI text moderation (%s)", settings.openai_model)
        return OpenAITextClassifier(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            pii_detector=rules,
        )
    return rules


def build_image_classifier(settings: ModerationSettings) -> ImageSignalClassifier:
    backend = None
    if settings.image_backend == "openai":
        logger.info("Using OpenAI image moderation (%s)", settings.openai_model)
        backend = OpenAIImageBackend(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=settings.openai_base_url,
            model=settings.openai_model,
        )
    else:
        logger.warning("No image backend configured; images are only checked for accessibility.")
    return ImageSignalClassifier(backend=backend, probe_timeout=settings.image_probe_timeout_seconds)


def build_counter_cache(settings: ModerationSettings) -> CounterCache:
    if settings.counter_cache_backend == "redis":
        url = os.getenv("REDIS_URL") or settings.counter_cache_url
        if url:
            logger.info("Using Redis counter cache")
            return RedisCounterCache.from_url(url)
        logger.warning("Redis counter cache selected but no URL configured; falling back to memory.")
    return TTLCounterCache()


@dataclass
class Runtime:
    """Long-lived resources owned by the process."""

    db: ConnectionManager
    counter_cache: CounterCache
    engine: ModerationEngine


async def build_runtime(settings: ModerationSettings, database_path: Path) -> Runtime:
    """Open the database and construct the engine with its collaborators."""
    db = ConnectionManager()
    await db.open(database_path)
    await SchemaManager.initialize_schema(db.connection)

    counter_cache = build_counter_cache(settings)
    ledger = AuditLedger(db, settings)
    engine = ModerationEngine(
        text_classifier=build_text_classifier(settings),
        image_classifier=build_image_classifier(settings),
        review_queue=ReviewQueue(db, ledger, settings),
        audit_ledger=ledger,
        review_velocity=ReviewVelocityCounter(
            counter_cache,
            window_seconds=settings.review_velocity_window_seconds,
            threshold=settings.review_velocity_threshold,
        ),
        settings=settings,
    )
    return Runtime(db=db, counter_cache=counter_cache, engine=engine)


async def shutdown_runtime(runtime: Runtime) -> None:
    """Close the counter cache and the database connection."""
    if isinstance(runtime.counter_cache, RedisCounterCache):
        try:
            await runtime.counter_cache.close()
        except Exception as exc:
            logger.exception("Error while closing Redis connection: %s", exc)

    await runtime.db.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the runtime and run the console, returning an exit code."""
    load_environment()

    from rentguard.configuration.app_configuration import app_config

    try:
        logger.info("Initializing database at %s...", app_config.database_path)
        runtime = await build_runtime(app_config.moderation, app_config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize runtime: %s", exc)
        return 1

    moderator_id = os.getenv("RENTGUARD_MODERATOR_ID")
    if not moderator_id:
        logger.warning("RENTGUARD_MODERATOR_ID not set; approve/reject are disabled.")

    control = ConsoleControl(runtime.engine, moderator_id)
    try:
        async with console_session(control):
            await control.shutdown_event.wait()
    finally:
        await shutdown_runtime(runtime)

    return 0


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    os.chdir(BASE_DIR)
    logger.info("Starting Rentguard moderator console...")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
