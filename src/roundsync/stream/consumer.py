"""Count stream consumer - monotonic frame application, display-delay queue, staleness stripping."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timedelta
from typing import Callable

import structlog

from roundsync.clock import ms_between, utcnow
from roundsync.errors import StaleDataError
from roundsync.models import CountFrame

log = structlog.get_logger(__name__)


class CountStreamConsumer:
    """
    Applies live count frames in strictly increasing captured_at order.

    Accepted frames become `latest` immediately (downstream progress math) and are also
    queued for display at arrival + measured latency, so detection overlays line up with
    the delayed video. Frames older than stale_after_ms on arrival lose their detections
    but still advance the counts.
    """

    def __init__(
        self,
        camera_id: str | None = None,
        stale_after_ms: float = 350.0,
        latency_ms: float = 0.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.camera_id = camera_id
        self.stale_after_ms = stale_after_ms
        self.latency_ms = latency_ms
        self._clock = clock
        self.last_applied: datetime | None = None
        self.latest: CountFrame | None = None
        self.displayed: CountFrame | None = None
        # (due_at, frame) in arrival order
        self._queue: deque[tuple[datetime, CountFrame]] = deque()
        self.accepted = 0
        self.dropped_stale = 0
        self.dropped_camera = 0
        self.stripped = 0

    def set_latency(self, latency_ms: float) -> None:
        """Update the locally measured stream latency used for display scheduling."""
        self.latency_ms = max(0.0, float(latency_ms))

    def set_camera(self, camera_id: str | None) -> None:
        """Switch camera filter. A different camera is an independent timeline."""
        if camera_id == self.camera_id:
            return
        self.camera_id = camera_id
        self.last_applied = None
        self.latest = None
        self._queue.clear()
        log.info("stream_camera_switched", camera_id=camera_id)

    def seed_bootstrap(self, frame: CountFrame) -> bool:
        """
        Seed the latest observation from the health snapshot before live frames arrive.
        Bypasses the ordering check and staleness stripping; never overrides live data.
        """
        if self.last_applied is not None:
            return False
        seeded = frame.model_copy(update={"bootstrap": True})
        self.latest = seeded
        self._queue.append((self._clock(), seeded))
        log.debug("stream_bootstrap_seeded", total=seeded.total)
        return True

    def _check_order(self, frame: CountFrame) -> None:
        if self.last_applied is not None and frame.captured_at <= self.last_applied:
            raise StaleDataError(frame.captured_at, self.last_applied)

    def ingest(self, frame: CountFrame, now: datetime | None = None) -> bool:
        """Apply one live frame. Returns False when the frame was dropped."""
        if self.camera_id and frame.camera_id and frame.camera_id != self.camera_id:
            self.dropped_camera += 1
            return False
        try:
            self._check_order(frame)
        except StaleDataError as e:
            self.dropped_stale += 1
            log.debug("frame_dropped_stale", captured_at=e.captured_at.isoformat(), last_applied=str(e.last_applied))
            return False

        now = now or self._clock()
        if frame.bootstrap:
            frame = frame.model_copy(update={"bootstrap": False})
        if frame.detections and ms_between(frame.captured_at, now) > self.stale_after_ms:
            frame = frame.model_copy(update={"detections": []})
            self.stripped += 1

        self.last_applied = frame.captured_at
        self.latest = frame
        self.accepted += 1
        self._queue.append((now + timedelta(milliseconds=self.latency_ms), frame))
        return True

    def drain(self, now: datetime | None = None) -> list[CountFrame]:
        """Release queued frames whose display time has come, in arrival order."""
        now = now or self._clock()
        out: list[CountFrame] = []
        while self._queue and self._queue[0][0] <= now:
            _, frame = self._queue.popleft()
            out.append(frame)
        if out:
            self.displayed = out[-1]
        return out

    @property
    def pending_display(self) -> int:
        return len(self._queue)

    async def run_display(
        self,
        on_display: Callable[[CountFrame], None],
        stop_event: asyncio.Event,
        tick_ms: float = 50.0,
    ) -> None:
        """Drain the display queue on a fixed tick until stop_event is set."""
        while not stop_event.is_set():
            for frame in self.drain():
                on_display(frame)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=tick_ms / 1000.0)
            except asyncio.TimeoutError:
                pass

    def get_status(self) -> dict[str, int | str | None]:
        return {
            "accepted": self.accepted,
            "dropped_stale": self.dropped_stale,
            "dropped_camera": self.dropped_camera,
            "stripped": self.stripped,
            "pending_display": self.pending_display,
            "last_applied": self.last_applied.isoformat() if self.last_applied else None,
        }
