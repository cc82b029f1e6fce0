import asyncio
import time

import structlog

from claude_tokens.errors import FetchError, ParseError, UnexpectedError
from claude_tokens.fetcher import ClaudeFetcher
from claude_tokens.identity import resolve_organization
from claude_tokens.metrics import MetricsUpdater
from claude_tokens.models import PollPhase, PollState, UsageSnapshot
from claude_tokens.normalizer import normalize
from claude_tokens.presentation import PresentationSink
from claude_tokens.settings import SettingsStore

logger = structlog.get_logger()

# fixed re-poll delay after any failed cycle
ERROR_BACKOFF_SECONDS = 60
INITIAL_DELAY_SECONDS = 1

CONNECTING_STATUS = "Connecting…"


def usage_moved(snapshot: "UsageSnapshot", state: "PollState") -> "bool":
    """
    reports whether either window's usage grew since the last
    successful cycle. A drop (window reset) counts as idle.
    """
    return (
        snapshot.session.used > state.last_session_used
        or snapshot.weekly.used > state.last_weekly_used
    )


class PollScheduler:
    """
    PollScheduler drives the poll cycle with a single-shot timer
    that is re-armed only once the previous cycle has finished,
    so requests never overlap on their own.

    Each cycle resolves the organization id when none is cached,
    fetches and normalizes usage, renders the snapshot and picks
    the next delay: the active interval if usage grew, the idle
    interval otherwise, and a fixed backoff after any failure.

    Credential changes and manual refreshes cancel the pending
    timer and start a new cycle right away. Every fire bumps a
    generation counter; a cycle that finds itself superseded
    when its response arrives drops the response.
    """

    def __init__(
        self,
        fetcher: "ClaudeFetcher",
        store: "SettingsStore",
        sink: "PresentationSink",
        metrics: "MetricsUpdater | None" = None,
        error_backoff_seconds: "float" = ERROR_BACKOFF_SECONDS,
    ) -> "None":
        self._fetcher = fetcher
        self._store = store
        self._sink = sink
        self._metrics = metrics
        self._error_backoff = error_backoff_seconds

        settings = store.settings
        self.state = PollState(
            last_session_used=settings.last_session_used,
            last_weekly_used=settings.last_weekly_used,
            current_interval=settings.poll_interval_idle,
        )
        # phase belongs to the newest cycle that has started
        self.phase: "PollPhase" = PollPhase.IDLE
        self._phase_generation = 0
        self._org_id: "str | None" = None
        self._generation = 0
        self._tasks: "set[asyncio.Task[None]]" = set()
        self._stop_event: "asyncio.Event" = asyncio.Event()
        self._handler_id = store.connect(self.on_credential_changed)

    @property
    def org_id(self) -> "str | None":
        return self._org_id

    @property
    def generation(self) -> "int":
        return self._generation

    def stop(self) -> "None":
        """
        signals run() to return.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        """
        unsubscribes from the settings store and closes the fetcher.
        """
        self._store.disconnect(self._handler_id)
        await self._fetcher.close()

    async def run(self) -> "None":
        """
        arms the first poll and keeps polling until stop() is called.
        """
        self.schedule_next_poll(INITIAL_DELAY_SECONDS)
        await self._stop_event.wait()

        self._cancel_timer()
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def refresh(self) -> "None":
        """
        starts a cycle now, keeping a cached organization id.
        """
        logger.info("manual_refresh")
        self._generation += 1
        self.schedule_next_poll(0)

    def on_credential_changed(self) -> "None":
        """
        forgets the organization id of the previous credential and
        starts a cycle now.
        """
        logger.info("credential_changed")
        self._org_id = None
        self._generation += 1
        self.schedule_next_poll(0)

    def schedule_next_poll(self, delay: "float") -> "None":
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self.state.current_interval = delay
        self.state.timer = loop.call_later(delay, self._fire)
        if self._metrics is not None:
            self._metrics.set_poll_interval(delay)
        logger.debug("poll_scheduled", delay=delay)

    def _cancel_timer(self) -> "None":
        if self.state.timer is not None:
            self.state.timer.cancel()
            self.state.timer = None

    def _is_stale(self, generation: "int") -> "bool":
        return generation != self._generation

    def _release_phase(self, generation: "int") -> "None":
        if self._phase_generation == generation:
            self.phase = PollPhase.IDLE

    def _drop_stale(self, generation: "int") -> "None":
        logger.info("stale_poll_dropped", generation=generation)
        self._release_phase(generation)
        return None

    def _fire(self) -> "None":
        self.state.timer = None
        self._generation += 1
        task = asyncio.create_task(self._run_cycle(self._generation))
        # the loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_cycle(self, generation: "int") -> "None":
        try:
            delay = await self.poll_once(generation)
        except Exception as exc:
            logger.exception("poll_cycle_crashed", generation=generation)
            self._release_phase(generation)
            if self._is_stale(generation):
                return
            delay = self._error_backoff
            try:
                self._handle_failure(UnexpectedError(exc))
            except Exception:
                logger.exception("error_display_failed", generation=generation)

        if delay is not None:
            self.schedule_next_poll(delay)

    async def poll_once(self, generation: "int | None" = None) -> "float | None":
        """
        runs one poll cycle and returns the delay before the next
        one, or None when a newer cycle superseded this one. Without
        a generation the call supersedes any cycle in flight.
        """
        if generation is None:
            self._generation += 1
            generation = self._generation

        credential = self._store.credential
        cycle_start = time.monotonic()
        self._phase_generation = generation
        self.phase = PollPhase.FETCHING
        logger.info(
            "poll_cycle_start",
            generation=generation,
            org_cached=self._org_id is not None,
        )

        try:
            snapshot = await self._fetch_snapshot(generation, credential)
        except FetchError as exc:
            if self._is_stale(generation):
                return self._drop_stale(generation)
            delay = self._handle_failure(exc)
        else:
            if snapshot is None:
                return self._drop_stale(generation)
            delay = self._handle_snapshot(snapshot)

        self.phase = PollPhase.IDLE
        duration = time.monotonic() - cycle_start
        if self._metrics is not None:
            self._metrics.observe_poll_duration(duration)
        logger.info("poll_cycle_end", next_delay=delay, duration=round(duration, 3))
        return delay

    async def _fetch_snapshot(
        self,
        generation: "int",
        credential: "str",
    ) -> "UsageSnapshot | None":
        org_id = self._org_id
        if org_id is None:
            self.phase = PollPhase.RESOLVING_IDENTITY
            self._sink.show_status(CONNECTING_STATUS)
            org_id = await resolve_organization(self._fetcher, credential)
            if self._is_stale(generation):
                return None
            self._org_id = org_id

        self.phase = PollPhase.FETCHING_USAGE
        data = await self._fetcher.fetch(self._fetcher.usage_url(org_id), credential)
        if self._is_stale(generation):
            return None

        try:
            return normalize(data)
        except Exception as exc:
            raise ParseError(str(exc)) from exc

    def _handle_failure(self, exc: "FetchError") -> "float":
        logger.warning("poll_failed", kind=exc.kind, error=exc.message)
        if self._metrics is not None:
            self._metrics.inc_poll_error(exc.kind)
        self._sink.show_error(exc.message)
        return self._error_backoff

    def _handle_snapshot(self, snapshot: "UsageSnapshot") -> "float":
        settings = self._store.settings
        active = usage_moved(snapshot, self.state)
        delay = (
            settings.poll_interval_active if active else settings.poll_interval_idle
        )

        self.state.last_session_used = snapshot.session.used
        self.state.last_weekly_used = snapshot.weekly.used
        try:
            self._store.set_last_used(snapshot.session.used, snapshot.weekly.used)
        except OSError as exc:
            logger.warning("last_used_persist_failed", error=str(exc))

        logger.info(
            "usage_fetched",
            session_used=snapshot.session.used,
            session_limit=snapshot.session.limit,
            weekly_used=snapshot.weekly.used,
            weekly_limit=snapshot.weekly.limit,
            active=active,
        )
        self._sink.show_usage(
            snapshot,
            settings.show_numbers,
            snapshot.worst_percent,
        )
        if self._metrics is not None:
            self._metrics.set_last_poll_success(snapshot.fetched_at)
        return delay
