"""Push-channel message parsing."""

from roundsync.stream.normalize import (
    parse_balance,
    parse_bet_resolved,
    parse_count_message,
    parse_round_message,
)
from roundsync.stream.ws import next_delay, with_token


def test_count_message():
    frame = parse_count_message(
        {
            "type": "count",
            "camera_id": "cam-1",
            "captured_at": "2026-03-01T12:00:00.250Z",
            "total": "42",
            "vehicle_breakdown": {"car": 30, "truck": "12"},
            "new_crossings": 2,
            "detections": [{"cls": "car", "conf": 0.8, "x1": 0.1, "y1": 0.2, "x2": 0.3, "y2": 0.4}, "junk"],
            "scene_lighting": "day",
        }
    )
    assert frame.total == 42
    assert frame.vehicle_breakdown == {"car": 30, "truck": 12}
    assert len(frame.detections) == 1
    assert frame.captured_at.microsecond == 250_000
    assert not frame.bootstrap


def test_unusable_count_messages():
    assert parse_count_message({"type": "round"}) is None
    assert parse_count_message({"type": "count", "total": 1}) is None
    assert parse_count_message({"type": "count", "captured_at": "not a date"}) is None


def test_round_message():
    present, rnd = parse_round_message(
        {
            "type": "round",
            "round": {
                "id": "R1",
                "status": "upcoming",
                "opens_at": "2026-03-01T12:00:00Z",
                "ends_at": "2026-03-01T12:05:00Z",
            },
        }
    )
    assert present and rnd.id == "R1"
    assert parse_round_message({"type": "round", "round": None}) == (True, None)
    assert parse_round_message({"type": "count", "total": 3}) == (False, None)
    assert parse_round_message({"type": "round", "round": {"id": "R1"}}) == (False, None)


def test_account_messages():
    res = parse_bet_resolved({"type": "bet_resolved", "bet_id": "abc", "won": True, "payout": 800, "actual": 61})
    assert res.bet_id == "abc" and res.won and res.payout == 800 and res.actual == 61
    assert res.exact is None
    assert parse_bet_resolved({"type": "bet_resolved", "won": True}) is None
    assert parse_bet_resolved({"type": "balance", "balance": 5}) is None
    assert parse_balance({"type": "balance", "balance": "1200"}) == 1200
    assert parse_balance({"type": "count"}) is None


def test_reconnect_backoff_and_token():
    delays = [2.0]
    for _ in range(6):
        delays.append(next_delay(delays[-1], 30.0))
    assert delays == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]
    assert with_token("ws://h/ws/live", "a b") == "ws://h/ws/live?token=a%20b"
    assert with_token("ws://h/ws?x=1", "t") == "ws://h/ws?x=1&token=t"
    assert with_token("ws://h/ws", None) == "ws://h/ws"
