"""Pipeline coordinator — Scrape → Title filter → Detail evaluation → Commit."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from rolesift.ai.detail_eval import DetailEvaluator
from rolesift.ai.providers import JsonCompleter
from rolesift.ai.retry import Sleep
from rolesift.ai.title_filter import DEFAULT_REASON, TitleFilter
from rolesift.browser.base import BrowserSession, DetachedBrowser
from rolesift.clock import (
    create_session_id,
    date_folder_label,
    now_in,
    parse_date_folder_label,
    parse_run_date,
)
from rolesift.events import (
    BATCH_COMPLETED,
    BATCH_STARTED,
    DETAIL_ACCEPTED,
    DETAIL_FAILED,
    DETAIL_REJECTED,
    KEYWORD_FAILED,
    KEYWORD_SCRAPED,
    RUN_SUMMARY,
    STAGE_ENDED,
    TITLE_REJECTED,
    EventSink,
    LoggingEventSink,
    PipelineEvent,
)
from rolesift.exceptions import ConfigurationError, SourceError
from rolesift.models import DetailPayload, RejectedJob, RunMetrics, StagedRole, TitleEntry
from rolesift.reporting.rejections import RejectionLedger, write_workbook
from rolesift.settings import AppSettings, SiteSettings
from rolesift.sources.base import DescriptionExtractor, ListingSource, drop_disallowed
from rolesift.sources.registry import get_extractor, get_source
from rolesift.storage.dedupe import compute_key, load_seen, save_seen
from rolesift.storage.output import append_rows
from rolesift.storage.paths import OutputPaths, SessionPaths, build_output_paths, build_session_paths
from rolesift.storage.staging import find_session, read_roles, write_roles

logger = logging.getLogger(__name__)

_DETAIL_DEFAULT_REASON = "Model marked as not relevant."


class PipelineState(str, Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    TITLE_FILTERING = "title_filtering"
    DETAIL_EVALUATING = "detail_evaluating"
    COMMITTED = "committed"
    # terminals that end a run early
    NO_KEYWORDS = "no_keywords"
    NOTHING_STAGED = "nothing_staged"
    SESSION_NOT_FOUND = "session_not_found"
    NOTHING_TO_RESUME = "nothing_to_resume"
    ALL_FILTERED = "all_filtered"
    NOTHING_ACCEPTED = "nothing_accepted"


@dataclass
class _RunContext:
    output_paths: OutputPaths
    session_paths: SessionPaths
    seen: set[str]
    backfill: bool = False


class SitePipeline:
    """Drives one site run through the scrape / filter / evaluate / commit states.

    The staged map and the seen store belong to this object for the whole run;
    nothing else mutates them.
    """

    def __init__(
        self,
        settings: AppSettings,
        site: SiteSettings,
        gateway: JsonCompleter,
        *,
        browser: BrowserSession | None = None,
        source: ListingSource | None = None,
        extractor: DescriptionExtractor | None = None,
        sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        settings.validate_for_site(site)
        self._settings = settings
        self._site = site
        self._sink = sink or LoggingEventSink()
        self._sleep = sleep
        self._source = source or get_source(site.source)(site, settings.timezone)
        self._extractor = extractor or get_extractor(site.extractor_kind)(site)
        self._browser = browser or DetachedBrowser()
        self._title_filter = TitleFilter.from_settings(
            settings, gateway, site=site.key, sink=self._sink, sleep=sleep
        )
        self._evaluator = DetailEvaluator.from_settings(
            settings, site, gateway, sink=self._sink, sleep=sleep
        )
        self._ledger = RejectionLedger()
        self._metrics = RunMetrics(site=site.key)
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = []

    @property
    def ledger(self) -> RejectionLedger:
        return self._ledger

    # ---- entry point ----

    async def run(
        self,
        *,
        resume_session_id: str | None = None,
        keywords: Sequence[str] | None = None,
        skip_batch_pause: bool = False,
    ) -> RunMetrics:
        """Execute one run. Supplying *resume_session_id* skips scraping."""
        self._metrics = RunMetrics(site=self._site.key)
        self._ledger.clear()
        self.history = []
        resume_id = (resume_session_id or "").strip()

        if resume_id:
            self._metrics.resumed = True
            self._metrics.session_id = resume_id
            prepared = self._prepare_resume(resume_id)
            if isinstance(prepared, PipelineState):
                return self._finish(None, prepared)
            ctx, roles = prepared
        else:
            wanted = [k.strip() for k in (keywords or self._site.keywords) if k.strip()]
            if not wanted:
                logger.warning("[%s] No keywords configured. Skipping run.", self._site.key)
                return self._finish(None, PipelineState.NO_KEYWORDS)
            ctx = self._prepare_fresh()
            roles = None

        await self._browser.launch()
        try:
            if roles is None:
                self._enter(PipelineState.SCRAPING)
                staged = await self._scrape(
                    wanted,
                    ctx.seen,
                    ctx.session_paths.session_id,
                    pause=not (skip_batch_pause or ctx.backfill),
                )
                if not staged:
                    logger.info("[%s] No new roles detected for this session.", self._site.key)
                    return self._finish(ctx, PipelineState.NOTHING_STAGED)
                roles = list(staged.values())
            self._metrics.staged = len(roles)

            self._enter(PipelineState.TITLE_FILTERING)
            remaining = await self._title_stage(ctx, roles)
            if not remaining:
                logger.info("[%s] AI filtered out all titles for this session.", self._site.key)
                return self._finish(ctx, PipelineState.ALL_FILTERED)

            self._enter(PipelineState.DETAIL_EVALUATING)
            accepted = await self._detail_stage(ctx, remaining)
            if not accepted:
                logger.info("[%s] No jobs approved after detail evaluation.", self._site.key)
                return self._finish(ctx, PipelineState.NOTHING_ACCEPTED)

            self._enter(PipelineState.COMMITTED)
            self._commit(ctx, accepted)
            return self._finish(ctx, PipelineState.COMMITTED)
        finally:
            await self._browser.close()

    # ---- preparation ----

    def _prepare_fresh(self) -> _RunContext:
        tz = self._settings.timezone
        backfill = bool(self._settings.run_date)
        run_date: datetime = parse_run_date(self._settings.run_date, tz) if backfill else now_in(tz)
        label = date_folder_label(run_date)
        if backfill:
            logger.info("[%s] Backfill mode enabled. Using run date %s.", self._site.key, label)
        else:
            logger.info("[%s] Live run using current date %s.", self._site.key, label)

        output_paths = build_output_paths(self._settings.output_root, self._site.host, run_date)
        session_id = create_session_id()
        self._metrics.session_id = session_id
        session_paths = build_session_paths(output_paths, session_id)
        session_paths.roles_dir.mkdir(parents=True, exist_ok=True)
        return _RunContext(
            output_paths=output_paths,
            session_paths=session_paths,
            seen=load_seen(output_paths.seen_file),
            backfill=backfill,
        )

    def _prepare_resume(self, session_id: str) -> tuple[_RunContext, list[StagedRole]] | PipelineState:
        located = find_session(self._settings.output_root, self._site.host, session_id)
        if located is None:
            logger.warning(
                "[%s] Session %s not found under %s/%s.",
                self._site.key,
                session_id,
                self._settings.output_root,
                self._site.host,
            )
            return PipelineState.SESSION_NOT_FOUND

        ctx = _RunContext(
            output_paths=located.output_paths,
            session_paths=located.session_paths,
            seen=load_seen(located.output_paths.seen_file),
        )
        stored = read_roles(located.session_paths.roles_file)
        roles: list[StagedRole] = []
        keys: set[str] = set()
        for role in stored:
            key = compute_key(role)
            if key in ctx.seen or key in keys:
                continue
            keys.add(key)
            roles.append(role)

        day = parse_date_folder_label(located.output_paths.date_folder)
        logger.info(
            "[%s] Resuming AI-only run for session %s (date folder %s): %d staged, %d remain.",
            self._site.key,
            session_id,
            day.isoformat() if day else located.output_paths.date_folder,
            len(stored),
            len(roles),
        )
        if not roles:
            logger.info("[%s] Session %s: 0 roles remain to evaluate.", self._site.key, session_id)
            return PipelineState.NOTHING_TO_RESUME
        return ctx, roles

    # ---- scraping ----

    async def _scrape(
        self,
        keywords: Sequence[str],
        seen: set[str],
        session_id: str,
        *,
        pause: bool,
    ) -> dict[str, StagedRole]:
        staged: dict[str, StagedRole] = {}
        size = self._settings.keyword_batch_size
        batches = [list(keywords[i : i + size]) for i in range(0, len(keywords), size)]
        if not pause:
            logger.info("[%s] Batch wait disabled; running keyword batches back-to-back.", self._site.key)

        for index, batch in enumerate(batches, start=1):
            self._emit(BATCH_STARTED, batch=index, of=len(batches), keywords=batch)
            await asyncio.gather(
                *(self._scrape_keyword(keyword, seen, staged, session_id) for keyword in batch)
            )
            self._emit(BATCH_COMPLETED, batch=index, of=len(batches), staged=len(staged))

            delay = self._settings.batch_pause_seconds
            if pause and index < len(batches) and delay > 0:
                logger.info("[%s] Sleeping %gs before next keyword batch.", self._site.key, delay)
                await self._sleep(delay)
        return staged

    async def _scrape_keyword(
        self,
        keyword: str,
        seen: set[str],
        staged: dict[str, StagedRole],
        session_id: str,
    ) -> None:
        try:
            async with self._browser.open_page() as page:
                records = await self._source.scrape(page, keyword)
        except Exception as exc:
            logger.error("[%s] Failed keyword %r: %s", self._site.key, keyword, exc)
            self._emit(KEYWORD_FAILED, keyword=keyword, error=str(exc))
            return

        self._metrics.scraped += len(records)
        added = 0
        for record in drop_disallowed(records, self._site.disallow_patterns):
            key = compute_key(record)
            if key in seen or key in staged:
                continue
            staged[key] = record.stage(session_id, keyword)
            added += 1
        self._emit(KEYWORD_SCRAPED, keyword=keyword, scraped=len(records), staged=added)

    # ---- title filtering ----

    async def _title_stage(self, ctx: _RunContext, roles: list[StagedRole]) -> list[StagedRole]:
        logger.info("[%s] Running title filter on %d staged role(s).", self._site.key, len(roles))
        write_roles(ctx.session_paths, roles)

        keyed = [(compute_key(role), role) for role in roles]
        entries = [
            TitleEntry(
                title=role.title,
                company=role.company,
                location=role.location,
                url=role.url,
                job_id=key,
            )
            for key, role in keyed
        ]
        result = await self._title_filter.filter_titles(entries)

        kept: list[StagedRole] = []
        for key, role in keyed:
            if key not in result.removal_set:
                kept.append(role)
                continue
            ctx.seen.add(key)
            self._reject(role, key, result.reasons.get(key) or DEFAULT_REASON, stage="title")

        save_seen(ctx.output_paths.seen_file, ctx.seen)
        write_roles(ctx.session_paths, kept)
        logger.info(
            "[%s] Title filter removed %d role(s). %d remain for detail evaluation.",
            self._site.key,
            len(roles) - len(kept),
            len(kept),
        )
        self._emit(STAGE_ENDED, stage="title", kept=len(kept), removed=len(roles) - len(kept))
        return kept

    # ---- detail evaluation ----

    async def _detail_stage(self, ctx: _RunContext, roles: list[StagedRole]) -> list[StagedRole]:
        accepted: list[StagedRole] = []
        accepted_keys: set[str] = set()
        for index, role in enumerate(roles, start=1):
            key = compute_key(role)
            if key in ctx.seen or key in accepted_keys:
                continue
            try:
                description = await self._describe(role)
                logger.info(
                    "[%s] Detail candidate #%d/%d %r (%s) – description length %d chars.",
                    self._site.key,
                    index,
                    len(roles),
                    role.title,
                    role.location,
                    len(description),
                )
                verdict = await self._evaluator.evaluate(
                    DetailPayload(
                        title=role.title,
                        company=role.company,
                        location=role.location,
                        url=role.url,
                        description=description,
                    )
                )
            except ConfigurationError:
                raise
            except Exception as exc:
                self._metrics.detail_failed += 1
                logger.error("[%s] Failed to evaluate detail for %s: %s", self._site.key, role.url, exc)
                self._emit(DETAIL_FAILED, title=role.title, url=role.url, key=key, error=str(exc))
                continue

            if not verdict.accepted:
                ctx.seen.add(key)
                self._reject(
                    role,
                    key,
                    verdict.reasoning or _DETAIL_DEFAULT_REASON,
                    stage="detail",
                    description=description,
                )
                continue

            accepted.append(role)
            accepted_keys.add(key)
            self._emit(
                DETAIL_ACCEPTED,
                title=role.title,
                location=role.location,
                url=role.url,
                key=key,
                reason=verdict.reasoning,
            )

        save_seen(ctx.output_paths.seen_file, ctx.seen)
        logger.info(
            "[%s] Detail evaluation accepted %d role(s) out of %d.",
            self._site.key,
            len(accepted),
            len(roles),
        )
        self._emit(STAGE_ENDED, stage="detail", accepted=len(accepted), evaluated=len(roles))
        return accepted

    async def _describe(self, role: StagedRole) -> str:
        """Extract the description, re-extracting while it is shorter than configured."""
        record = role.listing()
        attempts = max(1, self._site.description_attempts)
        description = ""
        async with self._browser.open_page() as page:
            for attempt in range(1, attempts + 1):
                description = (await self._extractor.extract(page, record) or "").strip()
                if len(description) >= self._site.min_description_chars:
                    break
                if attempt < attempts:
                    logger.info(
                        "[%s] Description for %s is short (%d chars); extracting again.",
                        self._site.key,
                        role.url,
                        len(description),
                    )
        if not description:
            raise SourceError(f"No description could be extracted from {role.url}.")
        return description

    # ---- commit ----

    def _commit(self, ctx: _RunContext, accepted: list[StagedRole]) -> None:
        append_rows(ctx.output_paths.csv_file, [role.output_row() for role in accepted])
        for role in accepted:
            ctx.seen.add(compute_key(role))
        save_seen(ctx.output_paths.seen_file, ctx.seen)
        self._metrics.accepted = len(accepted)
        logger.info(
            "[%s] Accepted %d role(s). Output: %s",
            self._site.key,
            len(accepted),
            ctx.output_paths.csv_file,
        )

    # ---- helpers ----

    def _reject(
        self,
        role: StagedRole,
        key: str,
        reason: str,
        *,
        stage: str,
        description: str = "N/A",
    ) -> None:
        if stage == "title":
            self._metrics.title_rejected += 1
            kind = TITLE_REJECTED
        else:
            self._metrics.detail_rejected += 1
            kind = DETAIL_REJECTED
        logger.info("[%s] %s reject %r (%s) – %s", self._site.key, stage.title(), role.title, role.location, reason)
        self._emit(kind, title=role.title, location=role.location, url=role.url, key=key, reason=reason)
        self._ledger.log(
            RejectedJob(
                site=self._site.key,
                title=role.title,
                url=role.url,
                reason=reason,
                stage=stage,
                scraped_at=role.scraped_at,
                description=description,
            )
        )

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def _finish(self, ctx: _RunContext | None, state: PipelineState) -> RunMetrics:
        if self.state is not state:
            self._enter(state)
        if ctx is not None and self._ledger.count():
            self._ledger.export(ctx.output_paths.rejected_file)
            write_workbook(ctx.output_paths.rejected_file, ctx.output_paths.rejected_workbook)
        self._metrics.finalize(state.value)
        self._emit(RUN_SUMMARY, **self._metrics.as_dict())
        return self._metrics

    def _emit(self, kind: str, **data: Any) -> None:
        self._sink.emit(PipelineEvent(kind, self._site.key, data))
