"""Orchestrator for Sitepress generation runs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import httpx

from sitepress.cache import CacheStore
from sitepress.config import Config, CredentialStore, EnvCredentialStore
from sitepress.content import ContentGraph, ContentIndex
from sitepress.fetchers import build_fetcher
from sitepress.logging import run_logger
from sitepress.publishers import Publisher, build_publishers
from sitepress.storage import Database
from sitepress.transform import ContentKind, Transformer, classify_content

from .executor import FetchResult
from .lease import AlreadyRunningError, RunLease
from .progress import ProgressReporter
from .workspace import FORCE_EXCLUDE_PATTERNS, Workspace, WorkspaceError

PAGE_PHASE_END = 80
ASSET_PROGRESS = 81
INCLUDE_PROGRESS = 84
EXCLUDE_PROGRESS = 87
PUBLISH_PHASE_START = 90

RunStatus = Literal["completed", "failed", "already_running"]


@dataclass(slots=True)
class SinkResult:
    name: str
    ok: bool
    message: str


@dataclass(slots=True)
class RunResult:
    """Outcome of one `Orchestrator.run()` call."""

    run_id: str
    status: RunStatus
    artifacts: list[str] = field(default_factory=list)
    fetched: int = 0
    from_cache: int = 0
    failed_urls: list[str] = field(default_factory=list)
    sink_results: list[SinkResult] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


@dataclass(slots=True)
class RunContext:
    """Everything one run needs, built once per `run()` call."""

    run_id: str
    config: Config
    logger: logging.LoggerAdapter
    reporter: ProgressReporter
    graph: ContentGraph
    transformer: Transformer
    commit_message: str
    cache: CacheStore | None = None
    workspace: Workspace | None = None
    paths: dict[str, str] = field(default_factory=dict)


def _dedupe(urls: Sequence[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        url = url.strip()
        if url:
            seen.setdefault(url, None)
    return list(seen)


@dataclass(slots=True)
class Orchestrator:
    """Drive one generation run: pages, assets, then every enabled sink."""

    config: Config
    database: Database
    logger: logging.Logger
    graph: ContentGraph = field(default_factory=ContentIndex)
    credentials: CredentialStore = field(default_factory=EnvCredentialStore)
    publishers: Sequence[Publisher] | None = None
    transport: httpx.AsyncBaseTransport | None = None

    def run(self, urls: Sequence[str]) -> RunResult:
        """Execute a blocking run; never raises, every outcome is a `RunResult`."""

        run_id = uuid.uuid4().hex[:8]
        log = run_logger(self.logger, run_id)
        reporter = ProgressReporter(self.database, log, ttl_seconds=self.config.state.progress_ttl_seconds)
        lease = RunLease(self.database, log, ttl_seconds=self.config.state.lease_seconds, owner=run_id)

        try:
            lease.acquire()
        except AlreadyRunningError as exc:
            log.warning("%s", exc)
            return RunResult(run_id=run_id, status="already_running", error=str(exc))

        result = RunResult(run_id=run_id, status="failed")
        context: RunContext | None = None
        try:
            publishers = self._resolve_publishers(log)
            targets = _dedupe(urls)
            context = self._build_context(run_id, log, reporter)
            reporter.add_log(f"Static generation started: {len(targets)} URL(s), run {run_id}")
            context.workspace = Workspace.create(
                self.config.workspace.effective_root,
                f"{self.config.workspace.prefix}{run_id}",
                log,
                log=reporter.add_log,
            )

            if targets:
                asyncio.run(self._generate_pages(context, targets, result))
            else:
                reporter.add_log("No URLs to generate", True)
            self._copy_assets(context)
            self._publish(context, publishers, result)

            reporter.update_progress(100, 100, "Completed")
            reporter.add_log(
                f"Static generation completed: {len(result.artifacts)} page(s), "
                f"{result.from_cache} from cache, {len(result.failed_urls)} failed"
            )
            result.status = "completed"
        except Exception as exc:
            log.exception("Run failed")
            reporter.add_log(f"Error: {exc}", True)
            reporter.update_progress(0, 0, "Failed")
            result.status = "failed"
            result.error = str(exc)
        finally:
            if context is not None and context.workspace is not None:
                context.workspace.remove()
            lease.release()
        return result

    def _resolve_publishers(self, log: logging.LoggerAdapter) -> list[Publisher]:
        if self.publishers is not None:
            if not self.config.site.site_url:
                raise ValueError("Invalid configuration: site.site_url is required.")
            if not self.publishers:
                raise ValueError("Invalid configuration: enable at least one sink.")
            return list(self.publishers)
        self.config.validate_for_run()
        return build_publishers(self.config, self.credentials, log)

    def _build_context(
        self, run_id: str, log: logging.LoggerAdapter, reporter: ProgressReporter
    ) -> RunContext:
        cache = None
        if self.config.cache.enabled:
            cache = CacheStore(
                directory=self.config.cache.path,
                graph=self.graph,
                logger=log,
                max_dependencies=self.config.cache.max_dependencies,
            )
        return RunContext(
            run_id=run_id,
            config=self.config,
            logger=log,
            reporter=reporter,
            graph=self.graph,
            transformer=Transformer(self.config.site, log),
            commit_message=self.config.commit_message(datetime.now()),
            cache=cache,
        )

    # -- phase 1: pages ---------------------------------------------------

    async def _generate_pages(self, context: RunContext, targets: list[str], result: RunResult) -> None:
        fetcher = build_fetcher(
            self.config.crawler,
            graph=context.graph,
            logger=context.logger,
            cache=context.cache,
            basic_auth_password=self.credentials.basic_auth_password(),
            transport=self.transport,
        )
        total = len(targets)
        processed = 0
        async with fetcher:
            for batch in fetcher.plan(targets):
                for fetched in await fetcher.fetch_batch(batch):
                    self._store_page(context, fetched, result)
                processed += len(batch)
                context.reporter.update_progress(
                    processed * PAGE_PHASE_END // total,
                    100,
                    f"Generating pages ({processed}/{total})",
                )

    def _store_page(self, context: RunContext, fetched: FetchResult, result: RunResult) -> None:
        if not fetched.ok:
            context.reporter.add_log(f"Failed to fetch {fetched.url}: {fetched.failure_reason()}", True)
            result.failed_urls.append(fetched.url)
            return

        kind = classify_content(fetched.url, fetched.body, fetched.content_type)
        artifact = context.transformer.transform(fetched.url, fetched.body, kind)
        for warning in artifact.warnings:
            context.reporter.add_log(f"Warning: {warning}")

        previous = context.paths.get(artifact.path)
        if previous is not None and previous != fetched.url:
            context.reporter.add_log(
                f"Warning: {fetched.url} and {previous} both map to {artifact.path}", True
            )
        try:
            context.workspace.write_artifact(artifact.path, artifact.content)
        except WorkspaceError as exc:
            context.reporter.add_log(str(exc), True)
            result.failed_urls.append(fetched.url)
            return
        context.paths[artifact.path] = fetched.url
        result.artifacts.append(artifact.path)

        if fetched.from_cache:
            result.from_cache += 1
            return
        result.fetched += 1
        if context.cache is not None:
            if kind is ContentKind.HTML:
                self._observe_dependencies(context, fetched)
            context.cache.put(
                fetched.url, fetched.body, fetched.entity_id, content_type=fetched.content_type
            )

    def _observe_dependencies(self, context: RunContext, fetched: FetchResult) -> None:
        for link in context.transformer.internal_links(fetched.body, fetched.url):
            entity_id = context.graph.entity_id_for_url(link)
            if entity_id is not None and entity_id != fetched.entity_id:
                context.cache.add_dependency(entity_id)

    # -- phase 2: assets --------------------------------------------------

    def _copy_assets(self, context: RunContext) -> None:
        site = self.config.site
        workspace = context.workspace
        reporter = context.reporter
        transform = context.transformer.transform_asset

        reporter.update_progress(ASSET_PROGRESS, 100, "Copying assets")
        for content_dir in site.content_dirs:
            reporter.add_log(f"Copying {content_dir.path} -> {content_dir.target}")
            report = workspace.copy_tree(
                content_dir.path, content_dir.target, transform=transform, log_progress=True
            )
            reporter.add_log(f"Copied {report.files} file(s) from {content_dir.path}", report.errors > 0)
        workspace.copy_site_icons(site.site_root)
        if site.enable_robots_txt:
            workspace.write_robots_txt()

        reporter.update_progress(INCLUDE_PROGRESS, 100, "Copying included files")
        workspace.copy_includes(site.include_paths, site.site_root, transform)

        reporter.update_progress(EXCLUDE_PROGRESS, 100, "Removing excluded files")
        removed = workspace.apply_exclusions([*FORCE_EXCLUDE_PATTERNS, *site.exclude_patterns])
        reporter.add_log(f"Removed {removed} excluded path(s)")

    # -- phase 3: sinks ---------------------------------------------------

    def _publish(self, context: RunContext, publishers: list[Publisher], result: RunResult) -> None:
        count = len(publishers)
        for index, publisher in enumerate(publishers):
            context.reporter.update_progress(
                PUBLISH_PHASE_START + index * 10 // count, 100, f"Publishing: {publisher.name}"
            )
            try:
                summary = publisher.publish(context.workspace.root, context.commit_message)
            except Exception as exc:
                context.logger.exception("Sink %s failed", publisher.name)
                context.reporter.add_log(f"{publisher.name} output failed: {exc}", True)
                result.sink_results.append(SinkResult(publisher.name, False, str(exc)))
                continue
            context.reporter.add_log(summary)
            result.sink_results.append(SinkResult(publisher.name, True, summary))
