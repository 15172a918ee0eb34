"""Count stream consumer: ordering, staleness stripping, display delay, bootstrap."""

from datetime import timedelta

from conftest import T0, make_frame

from roundsync.models import Detection
from roundsync.stream.consumer import CountStreamConsumer

BOX = Detection(cls="car", conf=0.9, x1=0.1, y1=0.1, x2=0.2, y2=0.2)


def _at(ms):
    return T0 + timedelta(milliseconds=ms)


def test_reordered_frame_dropped():
    c = CountStreamConsumer(camera_id="cam-1")
    assert c.ingest(make_frame(100, total=10), now=_at(110))
    assert not c.ingest(make_frame(90, total=9), now=_at(120))
    assert c.last_applied == _at(100)
    assert c.latest.total == 10
    assert c.dropped_stale == 1


def test_equal_timestamp_is_noop():
    c = CountStreamConsumer()
    c.ingest(make_frame(100, total=10), now=_at(100))
    assert not c.ingest(make_frame(100, total=99), now=_at(101))
    assert c.latest.total == 10


def test_applied_sequence_monotonic_for_any_order():
    offsets = [50, 10, 70, 30, 60, 20, 90, 80, 40]
    c = CountStreamConsumer()
    applied = []
    for i, off in enumerate(offsets):
        if c.ingest(make_frame(off, total=off), now=_at(100 + i)):
            applied.append(c.latest.captured_at)
    assert applied == sorted(applied)
    assert [f.total for f in c.drain(now=_at(10_000))] == [50, 70, 90]


def test_stale_frame_loses_detections_but_counts_advance():
    c = CountStreamConsumer(stale_after_ms=350)
    c.ingest(make_frame(0, total=5, detections=[BOX]), now=_at(500))
    assert c.latest.total == 5
    assert c.latest.detections == []
    assert c.stripped == 1

    c.ingest(make_frame(600, total=6, detections=[BOX]), now=_at(700))
    assert c.latest.total == 6
    assert len(c.latest.detections) == 1


def test_display_delay_queue():
    c = CountStreamConsumer(latency_ms=200)
    c.ingest(make_frame(0, total=1), now=_at(10))
    c.ingest(make_frame(50, total=2), now=_at(60))
    # latest is immediate, display is delayed
    assert c.latest.total == 2
    assert c.drain(now=_at(100)) == []
    assert [f.total for f in c.drain(now=_at(210))] == [1]
    assert [f.total for f in c.drain(now=_at(260))] == [2]
    assert c.displayed.total == 2
    assert c.pending_display == 0


def test_bootstrap_seeds_without_checks():
    c = CountStreamConsumer(stale_after_ms=350, clock=lambda: _at(60_000))
    old = make_frame(0, total=40, detections=[BOX])
    assert c.seed_bootstrap(old)
    assert c.latest.bootstrap
    assert len(c.latest.detections) == 1
    assert c.last_applied is None

    # first live frame is accepted even though it is older than the bootstrap
    assert c.ingest(make_frame(-1000, total=39), now=_at(60_000))
    assert not c.latest.bootstrap
    # bootstrap never overrides live data
    assert not c.seed_bootstrap(make_frame(5000, total=41))
    assert c.latest.total == 39


def test_other_camera_ignored_and_switch_resets():
    c = CountStreamConsumer(camera_id="cam-1")
    assert not c.ingest(make_frame(10, total=3, camera_id="cam-2"), now=_at(10))
    assert c.dropped_camera == 1
    c.ingest(make_frame(100, total=3), now=_at(100))
    c.set_camera("cam-2")
    assert c.latest is None
    assert c.ingest(make_frame(50, total=1, camera_id="cam-2"), now=_at(120))
