"""Backend client over httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from roundsync.client.api import BackendClient
from roundsync.errors import NetworkError, ValidationError
from roundsync.models import BetDraft


def _client(handler, token="tok"):
    return BackendClient("http://backend.test", token=token, transport=httpx.MockTransport(handler))


def _run(client, coro_fn):
    async def go():
        async with client:
            return await coro_fn(client)

    return asyncio.run(go())


def test_market_bet_goes_to_place_endpoint():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"bet_id": "abc", "potential_payout": 185})

    draft = BetDraft(round_id="R1", amount=100, market_id="R1-over")
    placement = _run(_client(handler), lambda c: c.place_bet(draft))
    assert placement.bet_id == "abc"
    assert placement.potential_payout == 185
    assert seen["path"] == "/bets/place"
    assert seen["body"] == {"round_id": "R1", "market_id": "R1-over", "amount": 100}
    assert seen["auth"] == "Bearer tok"


def test_exact_bet_goes_to_live_endpoint():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "e1", "window_end": "2026-03-01T12:03:00Z"})

    draft = BetDraft(round_id="R1", amount=10, vehicle_class="car", exact_count=4, window_duration_sec=180)
    placement = _run(_client(handler), lambda c: c.place_bet(draft))
    assert seen["path"] == "/bets/place-live"
    assert seen["body"]["exact_count"] == 4
    assert seen["body"]["window_duration_sec"] == 180
    assert placement.bet_id == "e1"
    assert placement.window_end.tzinfo is not None


def test_list_bets_clamps_limit_and_parses_rows():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json=[
                {"id": "abc", "round_id": "R1", "amount": 100, "status": "PENDING", "created_at": "2026-03-01T12:00:00Z"},
                {"id": "e1", "round_id": "R1", "amount": 10, "exact_count": 4, "placed_at": "2026-03-01T12:00:05Z"},
                {"id": "bad", "round_id": "R1"},
            ],
        )

    bets = _run(_client(handler), lambda c: c.list_bets("R1", limit=500))
    assert seen["params"] == {"round_id": "R1", "limit": "100"}
    assert [b.id for b in bets] == ["abc", "e1"]
    assert bets[0].status.value == "pending"
    assert bets[1].bet_type.value == "exact_count"


def test_history_limit_clamped():
    seen = {}

    def handler(request):
        seen["limit"] = request.url.params["limit"]
        return httpx.Response(200, json={"bets": []})

    assert _run(_client(handler), lambda c: c.bet_history(limit=0)) == []
    assert seen["limit"] == "1"


def test_client_error_is_validation_error():
    def handler(request):
        return httpx.Response(400, json={"detail": "Round is not open"})

    with pytest.raises(ValidationError) as exc:
        _run(_client(handler), lambda c: c.place_bet(BetDraft(round_id="R1", amount=1, market_id="m")))
    assert exc.value.message == "Round is not open"
    assert exc.value.code == "http_400"


def test_server_error_and_transport_failure_are_network_errors():
    def unavailable(request):
        return httpx.Response(503, text="upstream down")

    with pytest.raises(NetworkError) as exc:
        _run(_client(unavailable), lambda c: c.list_bets("R1"))
    assert exc.value.status_code == 503

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        _run(_client(refused), lambda c: c.fetch_rounds())


def test_health_bootstrap_and_next_round():
    def handler(request):
        assert request.url.path == "/health"
        return httpx.Response(
            200,
            json={
                "status": "ok",
                "next_round_at": "2026-03-01T12:10:00Z",
                "bootstrap": {"camera_id": "cam-1", "captured_at": "2026-03-01T11:59:58Z", "total": 77},
            },
        )

    health = _run(_client(handler, token=None), lambda c: c.health())
    assert health.status == "ok"
    assert health.bootstrap.total == 77
    assert health.bootstrap.bootstrap
    assert health.next_round_at.minute == 10


def test_fetch_rounds_skips_invalid():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "rounds": [
                    {
                        "id": "R1",
                        "status": "OPEN",
                        "opens_at": "2026-03-01T12:00:00Z",
                        "ends_at": "2026-03-01T12:05:00Z",
                        "params": {"threshold": 50},
                        "markets": [{"id": "m1", "outcome_key": "over", "odds": 1.9}],
                    },
                    {"id": "R2"},
                ]
            },
        )

    rounds = _run(_client(handler), lambda c: c.fetch_rounds())
    assert [r.id for r in rounds] == ["R1"]
    assert rounds[0].params.threshold == 50
