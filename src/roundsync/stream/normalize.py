"""Push-channel message -> canonical CountFrame / Round / BetResolution."""

from __future__ import annotations

from typing import Any

import pydantic
import structlog

from roundsync.models import BetResolution, CountFrame, Detection, Round

log = structlog.get_logger(__name__)


def _int(s: Any, default: int = 0) -> int:
    if s is None:
        return default
    try:
        return int(float(s))
    except (TypeError, ValueError):
        return default


def _breakdown(raw: Any) -> dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): _int(v) for k, v in raw.items()}


def _detections(raw: Any) -> list[Detection]:
    out = []
    for d in raw or []:
        if not isinstance(d, dict):
            continue
        try:
            out.append(Detection.model_validate(d))
        except pydantic.ValidationError:
            continue
    return out


def parse_count_message(payload: dict[str, Any]) -> CountFrame | None:
    """Convert a {type: "count"} message to CountFrame. Returns None when unusable."""
    if payload.get("type") != "count":
        return None
    captured_at = payload.get("captured_at")
    if captured_at is None:
        return None
    try:
        return CountFrame(
            camera_id=payload.get("camera_id"),
            captured_at=captured_at,
            total=max(0, _int(payload.get("total"))),
            vehicle_breakdown=_breakdown(payload.get("vehicle_breakdown")),
            new_crossings=_int(payload.get("new_crossings")),
            detections=_detections(payload.get("detections")),
            runtime_profile=payload.get("runtime_profile"),
            scene_lighting=payload.get("scene_lighting"),
        )
    except pydantic.ValidationError as e:
        log.warning("count_message_invalid", error=str(e))
        return None


def parse_round_message(payload: dict[str, Any]) -> tuple[bool, Round | None]:
    """
    Extract a round update. Returns (present, round): present is False when the message
    carries no round information; (True, None) means "no round right now".
    Count messages may piggyback a "round" key.
    """
    if payload.get("type") not in ("round", "count") or "round" not in payload:
        return (False, None)
    raw = payload.get("round")
    if raw is None:
        return (True, None)
    try:
        return (True, Round.model_validate(raw))
    except pydantic.ValidationError as e:
        log.warning("round_message_invalid", error=str(e))
        return (False, None)


def parse_bet_resolved(payload: dict[str, Any]) -> BetResolution | None:
    """Account-channel {type: "bet_resolved"} -> BetResolution."""
    if payload.get("type") != "bet_resolved":
        return None
    bet_id = str(payload.get("bet_id") or payload.get("id") or "")
    if not bet_id:
        return None
    try:
        return BetResolution(
            bet_id=bet_id,
            round_id=payload.get("round_id"),
            won=bool(payload.get("won")),
            payout=_int(payload.get("payout")),
            actual=_int(payload.get("actual"), default=0) if payload.get("actual") is not None else None,
            exact=_int(payload.get("exact"), default=0) if payload.get("exact") is not None else None,
        )
    except pydantic.ValidationError as e:
        log.warning("bet_resolved_invalid", error=str(e))
        return None


def parse_balance(payload: dict[str, Any]) -> int | None:
    if payload.get("type") != "balance":
        return None
    return _int(payload.get("balance"))
