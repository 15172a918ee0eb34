"""Round selection precedence, identity changes, and the storage query."""

from datetime import timedelta

from conftest import T0, make_round

from roundsync.rounds.phase import format_countdown, next_round_phase, round_phase
from roundsync.rounds.selector import RoundSelector, select_preferred_round
from roundsync.storage.rounds import get_round, preferred_round, upsert_round, upsert_rounds


def _candidates():
    return [
        make_round("open-early", "open", opens_at=T0 - timedelta(minutes=4)),
        make_round("open-late", "open", opens_at=T0 - timedelta(minutes=2)),
        make_round(
            "locked",
            "locked",
            opens_at=T0 - timedelta(minutes=10),
            ends_at=T0 - timedelta(seconds=30),
        ),
        make_round("upcoming", "upcoming", opens_at=T0 + timedelta(minutes=10)),
    ]


def test_open_round_latest_opens_at_wins():
    assert select_preferred_round(_candidates(), T0).id == "open-late"


def test_open_round_past_end_is_skipped():
    rounds = [
        make_round("stale-open", "open", opens_at=T0 - timedelta(minutes=10), ends_at=T0 - timedelta(seconds=1)),
        make_round("upcoming", "upcoming", opens_at=T0 + timedelta(minutes=1)),
    ]
    assert select_preferred_round(rounds, T0).id == "upcoming"


def test_locked_within_grace_beats_upcoming():
    rounds = [r for r in _candidates() if r.status.value != "open"]
    assert select_preferred_round(rounds, T0, locked_grace_sec=120).id == "locked"


def test_locked_past_grace_falls_through_to_earliest_upcoming():
    rounds = [r for r in _candidates() if r.status.value != "open"]
    rounds.append(make_round("upcoming-later", "upcoming", opens_at=T0 + timedelta(minutes=30)))
    assert select_preferred_round(rounds, T0 + timedelta(minutes=3), locked_grace_sec=120).id == "upcoming"


def test_nothing_presentable_is_none():
    rounds = [make_round("done", "resolved", opens_at=T0 - timedelta(minutes=10))]
    assert select_preferred_round(rounds, T0) is None
    assert select_preferred_round([], T0) is None


def test_generation_bumps_only_on_identity_change():
    sel = RoundSelector()
    first = sel.update(T0, [make_round("R1", "open")])
    assert first.identity_changed and first.generation == 1

    locked = make_round("R1", "locked")
    second = sel.update(T0, [locked])
    assert not second.identity_changed
    assert second.signature_changed
    assert second.generation == 1

    third = sel.update(T0, [make_round("R2", "open", opens_at=T0 - timedelta(seconds=10))])
    assert third.identity_changed
    assert third.current.id == "R2"
    assert sel.generation == 2


def test_status_never_regresses():
    sel = RoundSelector()
    sel.update(T0, [make_round("R1", "locked")])
    sel.update(T0, [make_round("R1", "open")])
    assert sel.current.status.value == "locked"


def test_storage_query_agrees_with_selector(temp_db):
    rounds = _candidates()
    upsert_rounds(temp_db, rounds)
    for now in (T0, T0 + timedelta(minutes=2), T0 + timedelta(minutes=4), T0 + timedelta(hours=1)):
        expected = select_preferred_round(rounds, now, 120)
        got = preferred_round(temp_db, now, 120)
        assert (got.id if got else None) == (expected.id if expected else None)


def test_storage_status_monotonic(temp_db):
    upsert_round(temp_db, make_round("R1", "locked"))
    upsert_round(temp_db, make_round("R1", "open"))
    stored = get_round(temp_db, "R1")
    assert stored.status.value == "locked"
    assert [m.id for m in stored.markets] == ["R1-over", "R1-under"]


def test_round_phases():
    rnd = make_round(
        "R1",
        "open",
        opens_at=T0,
        closes_at=T0 + timedelta(minutes=3),
        ends_at=T0 + timedelta(minutes=5),
    )
    assert round_phase(rnd, T0 - timedelta(seconds=30)).badge == "UPCOMING"
    phase = round_phase(rnd, T0 + timedelta(seconds=60))
    assert (phase.badge, phase.seconds) == ("OPEN", 120)
    assert round_phase(rnd, T0 + timedelta(minutes=4)).badge == "LOCKED"
    assert round_phase(rnd, T0 + timedelta(minutes=6)).badge == "RESOLVING"
    assert next_round_phase(None, T0) is None
    assert next_round_phase(T0 + timedelta(minutes=10), T0).seconds == 600


def test_format_countdown():
    assert format_countdown(0) == "00:00"
    assert format_countdown(65) == "01:05"
    assert format_countdown(3725) == "1:02:05"
    assert format_countdown(-5) == "00:00"
