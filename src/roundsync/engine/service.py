"""
Live engine: wires the selector, stream consumer, baseline resolver, ledger and notifier
to the push channels and the backend, and publishes changes on the event bus.

Execution is single-threaded on one asyncio loop. Every callback that resumes after an
await (poll results, baseline lookups, placement responses) first checks that the round
generation it started under is still current; results from a superseded round are dropped.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable

import duckdb
import structlog

from roundsync.baseline.resolver import BaselineResolver, DuckDBSnapshotSource
from roundsync.client.api import BackendClient
from roundsync.clock import utcnow
from roundsync.config.settings import Settings
from roundsync.engine.state import BetView, EngineState
from roundsync.errors import NetworkError, ValidationError
from roundsync.estimator.progress import (
    ChanceModel,
    bet_target,
    chance,
    hint,
    progress,
    progress_band,
    round_progress,
    target_class,
)
from roundsync.events.bus import EventBus, Topic
from roundsync.ledger.ledger import BetLedger
from roundsync.ledger.merge import BetTransition, MergeResult
from roundsync.ledger.validation import potential_payout, validate_draft
from roundsync.models import Bet, BetDraft, BetType, CountFrame, CountSnapshot, Round
from roundsync.outcome.notifier import OutcomeNotifier
from roundsync.rounds.phase import next_round_phase, round_phase
from roundsync.rounds.selector import RoundChange, RoundSelector
from roundsync.storage.bets import upsert_bets
from roundsync.storage.kv import DuckDBStore, KeyValueStore
from roundsync.storage.rounds import upsert_rounds
from roundsync.storage.snapshots import append_snapshot
from roundsync.stream.consumer import CountStreamConsumer
from roundsync.stream.normalize import (
    parse_balance,
    parse_bet_resolved,
    parse_count_message,
    parse_round_message,
)
from roundsync.stream.ws import next_delay, run_ws_channel

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class LiveEngine:
    """Owns all per-round state for the selected round."""

    def __init__(
        self,
        settings: Settings,
        resolver: BaselineResolver,
        store: KeyValueStore,
        *,
        client: BackendClient | None = None,
        bus: EventBus | None = None,
        conn: DuckDBPyConnection | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.resolver = resolver
        self.client = client
        self.bus = bus or EventBus()
        self._conn = conn
        self._clock = clock
        self.selector = RoundSelector(locked_grace_sec=settings.locked_grace_sec)
        self.consumer = CountStreamConsumer(
            camera_id=settings.camera_id,
            stale_after_ms=settings.stale_detection_ms,
            latency_ms=settings.default_latency_ms,
            clock=clock,
        )
        self.ledger = BetLedger(optimistic_grace_sec=settings.optimistic_grace_sec, clock=clock)
        self.notifier = OutcomeNotifier(store.namespace("outcome"), clock=clock)
        lo, hi = settings.over_under_bounds
        elo, ehi = settings.exact_bounds
        self.chance_model = ChanceModel(
            sensitivity=settings.chance_sensitivity,
            over_under_bounds=(lo, hi),
            exact_bounds=(elo, ehi),
        )
        self.connected = False
        self.next_round_at: datetime | None = None
        self.balance: int | None = None
        self._running = False
        self._round_timers: list[asyncio.Task[Any]] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._last_snapshot_at: datetime | None = None

    @property
    def current_round(self) -> Round | None:
        return self.selector.current

    @property
    def generation(self) -> int:
        return self.selector.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.selector.generation

    def _publish(self, topic: Topic, payload: Any) -> None:
        self.bus.publish(topic, payload, generation=self.generation)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any] | None:
        """Run coro in the background when a loop is running; otherwise drop it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if asyncio.iscoroutine(coro):
                coro.close()
            return None
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _write_replica(self, write: Callable[..., None], *args: Any) -> None:
        """Best-effort write to the local DuckDB replica."""
        if self._conn is None:
            return
        try:
            write(self._conn, *args)
        except duckdb.Error as e:
            log.warning("replica_write_failed", write=write.__name__, error=str(e))

    # Rounds

    def apply_rounds(self, rounds: Iterable[Round], replace: bool = False) -> RoundChange:
        """Merge round updates and reselect. Identity changes reset all per-round state."""
        rounds = list(rounds)
        if rounds:
            self._write_replica(upsert_rounds, rounds)
        change = self.selector.update(self._clock(), rounds, replace=replace)
        if change.identity_changed:
            self._reset_round(change.current)
        if change.signature_changed:
            self._publish(Topic.ROUND, change.current)
        return change

    def _reset_round(self, rnd: Round | None) -> None:
        round_id = rnd.id if rnd else None
        for task in self._round_timers:
            task.cancel()
        self._round_timers = []
        self.resolver.clear()
        self.ledger.reset(round_id)
        self.notifier.on_round_change(round_id)
        self.consumer.set_camera((rnd.camera_id if rnd else None) or self.settings.camera_id)
        self._publish(Topic.BETS, [])
        self._publish(Topic.OUTCOME, None)
        if rnd is not None and self._running:
            self._start_round_timers(self.generation)

    def _start_round_timers(self, generation: int) -> None:
        task = self._spawn(self._reconcile_loop(generation))
        if task is not None:
            self._round_timers.append(task)

    async def after_round_change(self, change: RoundChange) -> int | None:
        """Resolve the new round's baseline. Returns None when superseded meanwhile."""
        rnd = change.current
        if rnd is None or not change.identity_changed:
            return self.resolver.cached(rnd.id) if rnd else None
        value = await self.resolver.round_baseline(rnd)
        if not self.is_current(change.generation):
            log.debug("round_baseline_superseded", round_id=rnd.id, generation=change.generation)
            return None
        log.info("round_baseline_ready", round_id=rnd.id, baseline=value)
        self._publish(Topic.ROUND, rnd)
        return value

    async def on_round_update(self, rounds: Iterable[Round], replace: bool = False) -> RoundChange:
        change = self.apply_rounds(rounds, replace=replace)
        await self.after_round_change(change)
        return change

    async def refresh_rounds(self) -> RoundChange | None:
        """Fallback poll of the full round list."""
        if self.client is None:
            return None
        rounds = await self.client.fetch_rounds()
        return await self.on_round_update(rounds, replace=True)

    # Push channels

    def on_count_message(self, payload: dict[str, Any], ingest_ts: int) -> None:
        present, rnd = parse_round_message(payload)
        if present:
            # an explicit null round still triggers a reselection (an ended round drops out)
            change = self.apply_rounds([rnd] if rnd is not None else [])
            self._spawn(self.after_round_change(change))
        frame = parse_count_message(payload)
        if frame is not None:
            self.on_count(frame)

    def on_count(self, frame: CountFrame, now: datetime | None = None) -> bool:
        now = now or self._clock()
        if not self.consumer.ingest(frame, now):
            return False
        self._maybe_snapshot(self.consumer.latest, now)
        self._publish(Topic.COUNT, self.consumer.latest)
        return True

    def _maybe_snapshot(self, frame: CountFrame | None, now: datetime) -> None:
        interval = self.settings.snapshot_interval_sec
        if self._conn is None or frame is None or not frame.camera_id or interval <= 0:
            return
        if self._last_snapshot_at is not None and now - self._last_snapshot_at < timedelta(seconds=interval):
            return
        self._write_replica(
            append_snapshot,
            CountSnapshot(
                camera_id=frame.camera_id,
                captured_at=frame.captured_at,
                total=frame.total,
                vehicle_breakdown=frame.vehicle_breakdown,
            ),
        )
        self._last_snapshot_at = now

    def on_account_message(self, payload: dict[str, Any], ingest_ts: int) -> None:
        resolution = parse_bet_resolved(payload)
        if resolution is not None:
            rnd = self.current_round
            if resolution.round_id and rnd is not None and resolution.round_id != rnd.id:
                log.debug("bet_resolved_other_round", bet_id=resolution.bet_id, round_id=resolution.round_id)
                return
            transition = self.ledger.apply_resolution(resolution, self._clock())
            if transition is not None:
                self._handle_transitions([transition])
                self._publish(Topic.BETS, self.ledger.current())
            return
        balance = parse_balance(payload)
        if balance is not None:
            self.balance = balance
            self._publish(Topic.BALANCE, balance)

    def on_connection_status(self, connected: bool) -> None:
        if connected != self.connected:
            self.connected = connected
            self._publish(Topic.CONNECTION, connected)

    # Bets

    async def place_bet(self, draft: BetDraft) -> Bet:
        """
        Validate, show an optimistic entry, submit. A rejected or failed submission removes
        the optimistic entry and re-raises; nothing is retried.
        """
        rnd = self.current_round
        now = self._clock()
        validate_draft(draft, rnd, now)
        if self.client is None:
            raise NetworkError("No backend configured")

        cls = draft.vehicle_class or (rnd.params.vehicle_class if draft.bet_type is BetType.MARKET else None)
        latest = self.consumer.latest
        baseline = latest.count_for(cls) if latest is not None else None
        payout = None
        outcome_key = None
        if draft.market_id:
            market = rnd.market(draft.market_id)
            payout = potential_payout(draft.amount, market.odds)
            outcome_key = market.outcome_key
        generation = self.generation
        opt = self.ledger.submit(draft, baseline, potential_payout=payout, outcome_key=outcome_key, now=now)
        self._publish(Topic.BETS, self.ledger.current())

        try:
            placement = await self.client.place_bet(draft)
        except (ValidationError, NetworkError) as e:
            if self.is_current(generation):
                self.ledger.discard(opt.id)
                self._publish(Topic.BETS, self.ledger.current())
            log.warning("bet_submit_failed", bet_id=opt.id, error=str(e))
            raise
        if not self.is_current(generation):
            log.debug("bet_placement_superseded", bet_id=placement.bet_id)
            return opt
        # a poll may already have absorbed the optimistic entry
        acked = self.ledger.acknowledge(opt.id, placement) or self.ledger.get(placement.bet_id) or opt
        self._publish(Topic.BETS, self.ledger.current())
        return acked

    async def reconcile_once(self, generation: int | None = None) -> MergeResult | None:
        """One reconciliation poll for the selected round."""
        rnd = self.current_round
        if rnd is None or self.client is None:
            return None
        generation = self.generation if generation is None else generation
        if not self.is_current(generation):
            return None
        server_bets = await self.client.list_bets(rnd.id, limit=self.settings.bets_limit)
        if not self.is_current(generation):
            log.debug("reconcile_superseded", round_id=rnd.id, generation=generation)
            return None
        result = self.ledger.reconcile(server_bets, self._clock())
        await self._fill_baselines(generation, rnd)
        if not self.is_current(generation):
            return None
        self._handle_transitions(result.transitions)
        self._write_replica(upsert_bets, [b for b in self.ledger.current() if not b.optimistic])
        self._publish(Topic.BETS, self.ledger.current())
        return result

    async def _fill_baselines(self, generation: int, rnd: Round) -> None:
        """Point-in-time baseline for confirmed bets that arrived without one."""
        camera_id = rnd.camera_id or self.consumer.camera_id
        if not camera_id:
            return
        for bet in self.ledger.current():
            if bet.optimistic or bet.baseline_count is not None:
                continue
            value = await self.resolver.resolve_baseline(bet.placed_at, camera_id, target_class(bet, rnd))
            if not self.is_current(generation):
                return
            self.ledger.set_baseline(bet.id, value)

    def _handle_transitions(self, transitions: list[BetTransition]) -> None:
        for t in transitions:
            card = self.notifier.on_transition(t, self.current_round)
            if card is not None:
                self._publish(Topic.OUTCOME, card)

    def dismiss_outcome(self, bet_id: str) -> bool:
        dismissed = self.notifier.dismiss(bet_id)
        self._publish(Topic.OUTCOME, None)
        return dismissed

    # Health

    async def bootstrap(self) -> None:
        """Seed the first observation and the next-round time from the health endpoint."""
        if self.client is None:
            return
        try:
            health = await self.client.health()
        except (NetworkError, ValidationError) as e:
            log.warning("health_unavailable", error=str(e))
            return
        self.next_round_at = health.next_round_at
        if health.bootstrap is not None and self.consumer.seed_bootstrap(health.bootstrap):
            self._publish(Topic.COUNT, self.consumer.latest)

    # Snapshot

    def snapshot(self, now: datetime | None = None) -> EngineState:
        now = now or self._clock()
        rnd = self.current_round
        latest = self.consumer.latest
        views = []
        for bet in self.ledger.current():
            prog = progress(bet, latest, rnd, now)
            target = bet_target(bet, rnd)
            views.append(
                BetView(
                    bet=bet,
                    progress=prog,
                    target=target,
                    chance=None if bet.is_terminal else chance(bet, prog, rnd, now, self.chance_model),
                    hint=hint(bet, prog, rnd, now),
                    band=progress_band(prog, target, self.settings.close_ratio),
                )
            )
        baseline = self.resolver.cached(rnd.id) if rnd else None
        return EngineState(
            at=now,
            generation=self.generation,
            round=rnd,
            phase=round_phase(rnd, now) if rnd else next_round_phase(self.next_round_at, now),
            round_baseline=baseline,
            round_progress=round_progress(rnd, baseline, latest, now) if rnd else None,
            observation=latest,
            bets=views,
            outcome=self.notifier.visible_card(rnd.id if rnd else None),
            connected=self.connected,
            next_round_at=self.next_round_at,
            balance=self.balance,
            stream=self.consumer.get_status(),
        )

    # Loops

    def _retry_delay(self, delay: float, interval: float) -> float:
        """Next wait after a failed poll: doubles from the poll interval, capped."""
        return next_delay(max(delay, interval), max(self.settings.reconnect_max_delay_sec, interval))

    async def _every(self, interval_sec: float, stop: asyncio.Event, fn: Callable[[], Awaitable[Any]], name: str) -> None:
        delay = interval_sec
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await fn()
                delay = interval_sec
            except NetworkError as e:
                delay = self._retry_delay(delay, interval_sec)
                log.warning("poll_failed", poll=name, error=str(e), retry_in=delay)
            except ValidationError as e:
                delay = interval_sec
                log.warning("poll_rejected", poll=name, error=str(e), code=e.code)
            except Exception:
                delay = interval_sec
                log.exception("poll_error", poll=name)

    async def _reconcile_loop(self, generation: int) -> None:
        """Per-round reconciliation timer; exits once its round is superseded."""
        interval = self.settings.reconcile_interval_sec
        delay = interval
        while self._running and self.is_current(generation):
            try:
                await self.reconcile_once(generation)
                delay = interval
            except NetworkError as e:
                delay = self._retry_delay(delay, interval)
                log.warning("reconcile_failed", generation=generation, error=str(e), retry_in=delay)
            except ValidationError as e:
                delay = interval
                log.warning("reconcile_rejected", generation=generation, error=str(e), code=e.code)
            except Exception:
                delay = interval
                log.exception("reconcile_error", generation=generation)
            await asyncio.sleep(delay)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run channels, display tick and polls until stop_event is set."""
        stop = stop_event or asyncio.Event()
        self._running = True
        await self.bootstrap()
        try:
            await self.refresh_rounds()
        except (NetworkError, ValidationError) as e:
            log.warning("rounds_unavailable", error=str(e))
        # selecting a round during the refresh above already started its timer
        if self.current_round is not None and not self._round_timers:
            self._start_round_timers(self.generation)

        s = self.settings
        tasks = [
            asyncio.create_task(
                run_ws_channel(
                    s.ws_url,
                    self.on_count_message,
                    token=s.backend_token,
                    on_status=self.on_connection_status,
                    reconnect_base_delay_sec=s.reconnect_base_delay_sec,
                    reconnect_max_delay_sec=s.reconnect_max_delay_sec,
                    reconnect_max_retries=s.reconnect_max_retries,
                    stop_event=stop,
                )
            ),
            asyncio.create_task(
                self.consumer.run_display(
                    lambda frame: self._publish(Topic.DISPLAY, frame),
                    stop,
                    tick_ms=s.display_tick_ms,
                )
            ),
            asyncio.create_task(self._every(s.refresh_interval_sec, stop, self._refresh_and_health, "rounds")),
        ]
        if s.account_ws_url and s.backend_token:
            tasks.append(
                asyncio.create_task(
                    run_ws_channel(
                        s.account_ws_url,
                        self.on_account_message,
                        token=s.backend_token,
                        reconnect_base_delay_sec=s.reconnect_base_delay_sec,
                        reconnect_max_delay_sec=s.reconnect_max_delay_sec,
                        reconnect_max_retries=s.reconnect_max_retries,
                        stop_event=stop,
                    )
                )
            )
        log.info("engine_started", camera_id=self.consumer.camera_id, round_id=self.current_round.id if self.current_round else None)
        try:
            await stop.wait()
        finally:
            self._running = False
            for task in tasks + self._round_timers + list(self._background):
                task.cancel()
            await asyncio.gather(*tasks, *self._round_timers, *self._background, return_exceptions=True)
            self._round_timers = []
            log.info("engine_stopped", stream=self.consumer.get_status())

    async def _refresh_and_health(self) -> None:
        await self.refresh_rounds()
        if self.current_round is None:
            await self.bootstrap()

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def build_engine(
    settings: Settings,
    conn: DuckDBPyConnection,
    *,
    with_client: bool = True,
    bus: EventBus | None = None,
) -> LiveEngine:
    """Engine over the local DuckDB replica and the configured backend."""
    client = None
    if with_client:
        client = BackendClient(
            settings.backend_base_url,
            token=settings.backend_token,
            timeout=settings.backend_timeout_sec,
        )
    return LiveEngine(
        settings,
        BaselineResolver(DuckDBSnapshotSource(conn)),
        DuckDBStore(conn, settings.kv_namespace),
        client=client,
        bus=bus,
        conn=conn,
    )
