"""Backend HTTP client - bet placement, bet listings, rounds, health."""

from __future__ import annotations

from typing import Any

import httpx
import pydantic
import structlog

from roundsync.errors import NetworkError, ValidationError
from roundsync.models import Bet, BetDraft, BetPlacement, BetType, HealthStatus, Round
from roundsync.stream.normalize import parse_count_message

log = structlog.get_logger(__name__)

MY_ROUND_LIMIT = (1, 100)
HISTORY_LIMIT = (1, 200)


def clamp_limit(limit: int, bounds: tuple[int, int]) -> int:
    lo, hi = bounds
    return max(lo, min(hi, int(limit)))


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if isinstance(detail, list):
            # FastAPI-style validation errors
            detail = "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
        if detail:
            return str(detail)
    return resp.text or resp.reason_phrase


def parse_bet(raw: dict[str, Any]) -> Bet | None:
    """Server bet row -> Bet. Rows that do not validate are skipped."""
    data = dict(raw)
    data.setdefault("placed_at", data.get("created_at"))
    if "bet_type" not in data:
        data["bet_type"] = BetType.EXACT_COUNT.value if data.get("exact_count") is not None else BetType.MARKET.value
    try:
        return Bet.model_validate(data)
    except pydantic.ValidationError as e:
        log.warning("bet_row_invalid", bet_id=raw.get("id"), error=str(e))
        return None


def _rows(body: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(body, list):
        return [r for r in body if isinstance(r, dict)]
    if isinstance(body, dict) and isinstance(body.get(key), list):
        return [r for r in body[key] if isinstance(r, dict)]
    return []


class BackendClient:
    """
    Async client for the betting backend. Transport failures, timeouts and 5xx responses
    raise NetworkError; 4xx responses raise ValidationError with the server's detail.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log.warning("backend_request_failed", method=method, path=path, error=str(e))
            raise NetworkError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 500:
            log.warning("backend_server_error", method=method, path=path, status=resp.status_code)
            raise NetworkError(f"{method} {path} returned {resp.status_code}", status_code=resp.status_code)
        if resp.status_code >= 400:
            raise ValidationError(_detail(resp), code=f"http_{resp.status_code}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise NetworkError(f"{method} {path} returned non-JSON body", status_code=resp.status_code) from e

    async def place_bet(self, draft: BetDraft) -> BetPlacement:
        """Submit a wager. Exact-count bets go to the live placement endpoint."""
        path = "/bets/place-live" if draft.bet_type is BetType.EXACT_COUNT else "/bets/place"
        body = await self._request("POST", path, json=draft.to_payload())
        if not isinstance(body, dict):
            raise NetworkError(f"POST {path} returned an unexpected body")
        data = dict(body)
        data.setdefault("bet_id", data.get("id"))
        try:
            placement = BetPlacement.model_validate(data)
        except pydantic.ValidationError as e:
            raise NetworkError(f"POST {path} returned an invalid placement: {e}") from e
        log.info("bet_placed", bet_id=placement.bet_id, round_id=draft.round_id, amount=draft.amount)
        return placement

    async def list_bets(self, round_id: str, limit: int = 20) -> list[Bet]:
        """The current user's bets for one round."""
        params = {"round_id": round_id, "limit": clamp_limit(limit, MY_ROUND_LIMIT)}
        body = await self._request("GET", "/bets/my-round", params=params)
        return [b for b in (parse_bet(r) for r in _rows(body, "bets")) if b is not None]

    async def bet_history(self, limit: int = 100, round_id: str | None = None) -> list[Bet]:
        params: dict[str, Any] = {"limit": clamp_limit(limit, HISTORY_LIMIT)}
        if round_id:
            params["round_id"] = round_id
        body = await self._request("GET", "/bets/history", params=params)
        return [b for b in (parse_bet(r) for r in _rows(body, "bets")) if b is not None]

    async def fetch_rounds(self) -> list[Round]:
        body = await self._request("GET", "/rounds")
        out = []
        for raw in _rows(body, "rounds"):
            try:
                out.append(Round.model_validate(raw))
            except pydantic.ValidationError as e:
                log.warning("round_row_invalid", round_id=raw.get("id"), error=str(e))
        return out

    async def health(self) -> HealthStatus:
        """Health snapshot: bootstrap count and next round time."""
        body = await self._request("GET", "/health")
        if not isinstance(body, dict):
            return HealthStatus(status="unknown")
        bootstrap = None
        raw_count = body.get("bootstrap") or body.get("latest_count")
        if isinstance(raw_count, dict):
            frame = parse_count_message({**raw_count, "type": "count"})
            if frame is not None:
                bootstrap = frame.model_copy(update={"bootstrap": True})
        try:
            return HealthStatus(
                status=str(body.get("status", "ok")),
                bootstrap=bootstrap,
                next_round_at=body.get("next_round_at"),
            )
        except pydantic.ValidationError as e:
            log.warning("health_invalid", error=str(e))
            return HealthStatus(status=str(body.get("status", "ok")), bootstrap=bootstrap)
