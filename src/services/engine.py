"""Wire the store, cache, generator and workers into one engine for CLI/API reuse."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import httpx

from core.config import Settings, get_settings
from core.telemetry import configure_langsmith_env
from persistence.cache import StageCache
from persistence.sqlite_store import SqliteStore
from pipelines.stages import default_stages
from services.chunker import ContentChunker
from services.context_resolver import ContextResolver, ContextResolverConfig
from services.generation import Generator, LangChainGenerator
from services.job_manager import JobManager
from services.job_runner import JobRunner
from services.journal import StepJournal
from services.link_validator import LinkValidator
from services.notifications import EventLog, NotificationHub
from services.pipeline_executor import PipelineExecutor
from services.references import ReferenceLibrary

logger = logging.getLogger(__name__)

_METADATA_DB = "metadata.sqlite"


@dataclass
class Engine:
    settings: Settings
    store: SqliteStore
    cache: StageCache
    library: ReferenceLibrary
    link_validator: LinkValidator
    events: EventLog
    notifier: NotificationHub
    manager: JobManager

    def close(self) -> None:
        self.manager.shutdown()
        self.link_validator.close()


def build_engine(
    settings: Settings | None = None,
    *,
    generator: Generator | None = None,
    http_client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    settings = settings or get_settings()
    configure_langsmith_env()

    data_dir = Path(settings.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    store = SqliteStore(data_dir / _METADATA_DB)
    cache = StageCache(data_dir, store, scope=settings.cache_scope)
    library = ReferenceLibrary(store, ContentChunker())

    if generator is None:
        generator = LangChainGenerator(
            model_provider=settings.generation_provider,
            timeout=settings.generation_timeout,
        )
    link_validator = LinkValidator(
        timeout=settings.link_validation_timeout,
        concurrency=settings.link_validation_concurrency,
        http_client=http_client,
    )
    resolver = ContextResolver(
        generator,
        ContextResolverConfig(
            model=settings.context_model,
            temperature=settings.context_temperature,
            max_tokens=settings.context_max_tokens,
            max_retries=settings.generation_max_retries,
            backoff_ms=settings.generation_retry_backoff_ms,
        ),
        sleep=sleep,
    )

    events = EventLog(max_events=settings.event_log_size)
    notifier = NotificationHub([events])
    executor = PipelineExecutor(
        store=store,
        generator=generator,
        cache=cache,
        link_validator=link_validator,
        resolver=resolver,
        journal=StepJournal(store, sleep=sleep),
        library=library,
        stages=default_stages(settings),
        notifier=notifier,
        max_retries=settings.generation_max_retries,
        backoff_ms=settings.generation_retry_backoff_ms,
        sleep=sleep,
    )
    runner = JobRunner(
        store=store,
        executor=executor,
        notifier=notifier,
        lease_seconds=settings.worker_lease_seconds,
    )
    manager = JobManager(
        store=store,
        runner=runner,
        notifier=notifier,
        library=library,
        default_failure_policy=settings.failure_policy,
    )
    logger.debug("Engine ready at %s (cache scope %s)", data_dir, cache.scope)
    return Engine(
        settings=settings,
        store=store,
        cache=cache,
        library=library,
        link_validator=link_validator,
        events=events,
        notifier=notifier,
        manager=manager,
    )


__all__ = ["Engine", "build_engine"]
