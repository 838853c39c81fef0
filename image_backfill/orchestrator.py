"""
Backfill orchestrator.

Drives Row Source → Image Resolver → Image Fetcher → Object Store Writer →
Row Updater over every table in scope, in fixed-size chunks. Only missing
configuration stops a run; every other failure is recorded on the report and
the run moves on to the next row (or table).

    STARTING → PER_TABLE → PER_CHUNK → PER_ROW → DONE | FAILED_FATAL
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, List, Optional, Sequence

import httpx
from supabase import Client

from . import results
from .config import BackfillConfig
from .fetcher import ImageFetcher
from .keys import object_key
from .pexels import PexelsResolver
from .report import FAILED, SKIPPED, SUCCESS, RunReport
from .results import StageResult
from .rows import Row, SupabaseRowSource, SupabaseRowUpdater
from .storage import CONTENT_TYPE, SupabaseObjectStore

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def chunked(rows: Sequence[Row], size: int) -> Iterator[Sequence[Row]]:
    for i in range(0, len(rows), size):
        yield rows[i : i + size]


def check_config(config: BackfillConfig) -> Optional[RunReport]:
    """A FAILED_FATAL report naming the missing settings, or None when complete."""
    missing = config.missing_settings()
    if not missing:
        return None
    for line in config.env_summary():
        log.info(line)
    return RunReport().fail_fatal(f"Missing required configuration: {', '.join(missing)}")


class RatePacer:
    """Serializes provider calls across workers, starting them at least
    ``min_interval`` seconds apart."""

    def __init__(self, min_interval: float, sleep: Sleep = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self.sleep = sleep
        self.clock = clock
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold the provider for one call; one call in flight at a time."""
        async with self._lock:
            if self.min_interval > 0 and self._last is not None:
                remaining = self._last + self.min_interval - self.clock()
                if remaining > 0:
                    await self.sleep(remaining)
            self._last = self.clock()
            yield


class Backfill:
    """One parameterized backfill pass. Collaborators are injected."""

    def __init__(
        self,
        config: BackfillConfig,
        row_source,
        resolver,
        fetcher,
        store,
        updater,
        sleep: Sleep = asyncio.sleep,
        pacer: Optional[RatePacer] = None,
    ):
        self.config = config
        self.row_source = row_source
        self.resolver = resolver
        self.fetcher = fetcher
        self.store = store
        self.updater = updater
        self.sleep = sleep
        if pacer is None:
            # Concurrent table workers share one provider slot; sequential runs
            # are already spaced by the per-row delay
            interval = config.inter_row_delay if config.table_concurrency > 1 else 0.0
            pacer = RatePacer(interval, sleep=sleep)
        self.pacer = pacer

    @classmethod
    def from_clients(
        cls,
        config: BackfillConfig,
        supabase: Client,
        http: httpx.AsyncClient,
        rng: Optional[random.Random] = None,
        **kwargs,
    ) -> "Backfill":
        return cls(
            config,
            row_source=SupabaseRowSource(supabase, only_missing=config.only_missing),
            resolver=PexelsResolver(
                http,
                config.pexels_api_key,
                per_page=config.per_page,
                selection=config.selection,
                rng=rng,
                timeout=config.request_timeout,
            ),
            fetcher=ImageFetcher(http, timeout=config.request_timeout),
            store=SupabaseObjectStore(supabase, config.public_base),
            updater=SupabaseRowUpdater(supabase),
            **kwargs,
        )

    # ─── Run ──────────────────────────────────────────────────────────────────

    async def run(self) -> RunReport:
        cfg = self.config
        fatal = check_config(cfg)
        if fatal is not None:
            return fatal
        report = RunReport()

        for line in cfg.env_summary():
            report.add(line)

        tables = cfg.scope
        report.add(
            f"Starting image backfill for {len(tables)} table(s): {', '.join(tables)} "
            f"(chunk_size={cfg.chunk_size}, delay={cfg.inter_row_delay}s, "
            f"selection={cfg.selection}{', dry-run' if cfg.dry_run else ''})"
        )

        if cfg.table_concurrency > 1 and len(tables) > 1:
            sem = asyncio.Semaphore(cfg.table_concurrency)

            async def _worker(table: str) -> None:
                async with sem:
                    await self._run_table_safely(table, report)

            await asyncio.gather(*(_worker(t) for t in tables))
        else:
            for table in tables:
                await self._run_table_safely(table, report)

        report.add("All done fetching images.")
        report.finish()
        log.info("\n%s", report.summary())
        return report

    # ─── Per table ────────────────────────────────────────────────────────────

    async def _run_table_safely(self, table: str, report: RunReport) -> None:
        try:
            await self._run_table(table, report)
        except Exception as e:
            log.exception("Unexpected error while processing %s", table)
            report.table_error(table, f"General error in \"{table}\": {e}")

    async def _run_table(self, table: str, report: RunReport) -> None:
        cfg = self.config
        report.start_table(table)

        listing = await asyncio.to_thread(self.row_source.list_rows, table)
        if not listing.ok:
            report.table_failed(table, listing.reason, kind=listing.kind)
            return

        rows: List[Row] = listing.value
        if not rows:
            report.add(f"No rows in \"{table}\", skipping.", table=table)
            return
        report.add(f"Found {len(rows):,} rows in \"{table}\".", table=table)

        for n, chunk in enumerate(chunked(rows, cfg.chunk_size)):
            start = n * cfg.chunk_size
            if cfg.max_chunks is not None and n >= cfg.max_chunks:
                left = len(rows) - start
                if cfg.only_missing:
                    tail = f"{left:,} row(s) left for the next run."
                else:
                    tail = f"{left:,} row(s) not reached (refetch restarts at the first row every run)."
                report.add(f"Stopping after {cfg.max_chunks} chunk(s); {tail}", table=table)
                break
            report.add(
                f"Chunk of size: {len(chunk)}, rows {start + 1} through {start + len(chunk)}.",
                table=table,
            )
            for row in chunk:
                result = await self._run_row_safely(table, row)
                self._record(report, table, row, result)
                if result.ok and cfg.inter_row_delay > 0:
                    log.debug("Waiting %.1fs to avoid 429...", cfg.inter_row_delay)
                    await self.sleep(cfg.inter_row_delay)

    # ─── Per row ──────────────────────────────────────────────────────────────

    async def _run_row_safely(self, table: str, row: Row) -> StageResult:
        try:
            return await self._run_row(table, row)
        except Exception as e:
            log.debug("Row %s in %s raised", row.id, table, exc_info=True)
            return results.error(results.GENERAL_ERROR, f"General error: {e}")

    async def _run_row(self, table: str, row: Row) -> StageResult:
        cfg = self.config
        if row.id is None:
            return results.skip(results.MISSING_ID, "row has no 'id'. Skipped.")

        query = row.name.strip()
        if not query:
            return results.skip(results.EMPTY_NAME, "skipped: empty name")
        log.debug("Row ID:%s, Name:%r", row.id, row.name)

        found = await self._resolve(query)
        if not found.ok:
            return found

        candidate = found.value
        key = object_key(table, row.name, row.id)
        if cfg.dry_run:
            return results.skip(
                results.DRY_RUN,
                f"[dry-run] would store {candidate.source_url} at {cfg.bucket}/{key}",
            )

        fetched = await self.fetcher.download(candidate.source_url)
        if not fetched.ok:
            return fetched

        stored = await asyncio.to_thread(self.store.put, cfg.bucket, key, fetched.value, CONTENT_TYPE)
        if not stored.ok:
            return stored

        patched = await asyncio.to_thread(
            self.updater.patch, table, row.id, {"image_url": stored.value}
        )
        if not patched.ok:
            return patched
        return results.ok(stored.value)

    async def _resolve(self, query: str) -> StageResult:
        delays = (0.0,) + tuple(self.config.retry_delays)
        for attempt, delay in enumerate(delays, 1):
            if delay:
                log.warning("  retry %d/%d after %.0fs …", attempt - 1, len(delays) - 1, delay)
                await self.sleep(delay)
            async with self.pacer.slot():
                result = await self.resolver.resolve(query)
            if not (result.status == results.ERROR and result.retryable):
                return result
        return result

    @staticmethod
    def _record(report: RunReport, table: str, row: Row, result: StageResult) -> None:
        if result.ok:
            report.add(f"{row.name} => {result.value}", SUCCESS, table=table, row_id=row.id)
        elif result.status == results.SKIP:
            report.add(result.reason, SKIPPED, table=table, row_id=row.id, kind=result.kind)
        else:
            report.add(
                f"{result.kind}: {result.reason}", FAILED, table=table, row_id=row.id, kind=result.kind
            )
