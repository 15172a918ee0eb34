"""Progress, chance heuristic, hints and bands."""

from datetime import timedelta

from conftest import T0, make_bet, make_frame, make_round

from roundsync.estimator.progress import (
    ChanceModel,
    bet_deadline,
    chance,
    hint,
    progress,
    progress_band,
    round_progress,
)


def test_round_progress_against_baseline():
    rnd = make_round("R1", "open", opens_at=T0, threshold=50)
    frame = make_frame(60_000, total=125)
    assert round_progress(rnd, 120, frame, now=T0 + timedelta(seconds=60)) == 5

    bet = make_bet("abc", market_id="R1-over", outcome_key="over", baseline_count=120)
    assert progress(bet, frame, rnd, now=T0 + timedelta(seconds=60)) == 5


def test_exact_bet_progress_and_hint():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(seconds=30))
    bet = make_bet("abc", vehicle_class="car", exact_count=5, bet_type="exact_count", baseline_count=10)
    frame = make_frame(20_000, total=40, breakdown={"car": 13})
    now = T0 + timedelta(seconds=20)

    prog = progress(bet, frame, rnd, now)
    assert prog == 3
    assert hint(bet, prog, rnd, now) == "need 2 more before time expires"


def test_hint_states():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(seconds=30))
    bet = make_bet("abc", exact_count=5, bet_type="exact_count")
    now = T0 + timedelta(seconds=10)
    assert hint(bet, 5, rnd, now) == "on target, hold steady"
    assert hint(bet, 8, rnd, now) == "over by 3"
    assert hint(bet, 2, rnd, T0 + timedelta(seconds=31)) == "calculating your score"
    assert hint(bet, None, rnd, now) is None


def test_ended_round_falls_back_to_raw_count():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=5), ends_at=T0)
    bet = make_bet("abc", vehicle_class="car", exact_count=5, bet_type="exact_count", baseline_count=10)
    frame = make_frame(1_000, breakdown={"car": 13})
    assert progress(bet, frame, rnd, now=T0 + timedelta(seconds=1)) == 13

    resolved = make_round("R1", "resolved", opens_at=T0 - timedelta(minutes=1))
    assert progress(bet, frame, resolved, now=T0) == 13


def test_progress_never_negative():
    rnd = make_round("R1", "open", opens_at=T0)
    for baseline in (0, 5, 50, 500):
        for total in (0, 4, 49, 501):
            bet = make_bet("abc", baseline_count=baseline)
            assert progress(bet, make_frame(1, total=total), rnd, now=T0) >= 0
    assert progress(make_bet("abc"), None, rnd, now=T0) is None


def test_round_targets_class_when_bet_does_not():
    rnd = make_round("R1", "open", opens_at=T0, vehicle_class="truck")
    bet = make_bet("abc", market_id="R1-over", baseline_count=2)
    frame = make_frame(1, total=90, breakdown={"truck": 9})
    assert progress(bet, frame, rnd, now=T0) == 7


def test_chance_over_under_bounds():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(minutes=2), threshold=10)
    over = make_bet("o", market_id="R1-over", outcome_key="over")
    under = make_bet("u", market_id="R1-under", outcome_key="under")
    now = T0 + timedelta(minutes=1)

    assert chance(over, 11, rnd, now) == 95
    assert chance(under, 11, rnd, now) == 5
    # 5 in the first minute, one more minute to go: projects to exactly the threshold
    assert chance(over, 5, rnd, now) == 50
    assert chance(under, 5, rnd, now) == 50
    # far behind pace
    assert chance(over, 0, rnd, now) == 5
    assert chance(under, 0, rnd, now) == 95


def test_chance_exact_peaks_on_pace():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(minutes=2))
    bet = make_bet("e", exact_count=10, bet_type="exact_count", vehicle_class="car")
    now = T0 + timedelta(minutes=1)
    assert chance(bet, 5, rnd, now) == 60
    assert chance(bet, 11, rnd, now) == 1
    assert 1 <= chance(bet, 3, rnd, now) < 60


def test_chance_stays_in_bounds_and_unknown_kind_is_none():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(minutes=2))
    bet = make_bet("o", market_id="R1-over", outcome_key="over")
    model = ChanceModel(sensitivity=2.0)
    for prog in range(0, 60, 7):
        value = chance(bet, prog, rnd, T0 + timedelta(seconds=30), model)
        assert 5 <= value <= 95
    assert chance(make_bet("x", market_id="R1-over", outcome_key="car"), 3, rnd, T0) is None
    assert chance(bet, None, rnd, T0) is None


def test_market_outcome_kind_from_round():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), threshold=10)
    bet = make_bet("o", market_id="R1-under")
    assert chance(bet, 11, rnd, T0) == 5


def test_deadline_prefers_bet_window():
    rnd = make_round("R1", "open", opens_at=T0 - timedelta(minutes=1), ends_at=T0 + timedelta(minutes=4))
    assert bet_deadline(make_bet("a", window_duration_sec=60), rnd) == T0 + timedelta(seconds=60)
    assert bet_deadline(make_bet("b", window_end=T0 + timedelta(seconds=90)), rnd) == T0 + timedelta(seconds=90)
    assert bet_deadline(make_bet("c"), rnd) == rnd.ends_at


def test_progress_band():
    assert progress_band(100, 100) == "over"
    assert progress_band(120, 100) == "over"
    assert progress_band(80, 100) == "close"
    assert progress_band(79, 100) == "on_track"
    assert progress_band(5, 0) is None
    assert progress_band(None, 10) is None
