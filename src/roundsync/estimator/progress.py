"""
Progress & odds estimator.

progress() is round-relative (count minus baseline, floored at zero) while the round is
active and not ended, and falls back to the absolute count otherwise: once a round ends the
display shows absolute counts rather than a frozen relative value.

chance() is a UX heuristic, not a probability model. It projects progress linearly to the
deadline and maps the distance from the target through clamped linear functions per outcome
kind. The constants (sensitivity 6, bounds 5..95 for over/under, 1..60 for exact) have no
calibration target and carry no statistical guarantee.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from roundsync.clock import ensure_utc
from roundsync.models import Bet, BetType, CountFrame, Round


class OutcomeKind(str, Enum):
    OVER = "over"
    UNDER = "under"
    EXACT = "exact"


@dataclass(frozen=True)
class ChanceModel:
    sensitivity: float = 6.0
    over_under_bounds: tuple[float, float] = (5.0, 95.0)
    exact_bounds: tuple[float, float] = (1.0, 60.0)


DEFAULT_CHANCE_MODEL = ChanceModel()


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    lo, hi = bounds
    return max(lo, min(hi, value))


def target_class(bet: Bet, rnd: Round | None = None) -> str | None:
    """Vehicle class whose count the bet tracks; None means the total."""
    if bet.vehicle_class:
        return bet.vehicle_class
    if rnd is not None and bet.bet_type is BetType.MARKET:
        return rnd.params.vehicle_class
    return None


def _relative(raw: int, baseline: int | None, rnd: Round | None, now: datetime) -> int:
    if baseline is not None and rnd is not None and rnd.is_round_relative_eligible(now):
        return max(0, raw - baseline)
    return max(0, raw)


def progress(
    bet: Bet,
    observation: CountFrame | None,
    rnd: Round | None = None,
    now: datetime | None = None,
) -> int | None:
    """Count since the bet's baseline, or the raw count when not round-relative."""
    if observation is None:
        return None
    now = ensure_utc(now or observation.captured_at)
    raw = observation.count_for(target_class(bet, rnd))
    if rnd is not None and rnd.id != bet.round_id:
        rnd = None
    return _relative(raw, bet.baseline_count, rnd, now)


def round_progress(
    rnd: Round,
    baseline: int | None,
    observation: CountFrame | None,
    now: datetime | None = None,
) -> int | None:
    """Round-level progress against the cached round baseline."""
    if observation is None:
        return None
    now = ensure_utc(now or observation.captured_at)
    return _relative(observation.count_for(rnd.params.vehicle_class), baseline, rnd, now)


def outcome_kind(bet: Bet, rnd: Round | None = None) -> OutcomeKind | None:
    if bet.bet_type is BetType.EXACT_COUNT:
        return OutcomeKind.EXACT
    key = bet.outcome_key
    if not key and rnd is not None and bet.market_id:
        market = rnd.market(bet.market_id)
        key = market.outcome_key if market else None
    try:
        return OutcomeKind((key or "").lower())
    except ValueError:
        return None


def bet_target(bet: Bet, rnd: Round | None = None) -> int | None:
    if bet.exact_count is not None:
        return bet.exact_count
    if rnd is not None:
        return rnd.params.threshold
    return None


def bet_deadline(bet: Bet, rnd: Round | None = None) -> datetime | None:
    """When counting stops for this bet: its window end, else the round end."""
    if bet.window_end is not None:
        return bet.window_end
    if bet.window_duration_sec:
        return bet.placed_at + timedelta(seconds=bet.window_duration_sec)
    return rnd.ends_at if rnd is not None else None


def project(prog: int, placed_at: datetime, deadline: datetime | None, now: datetime) -> float:
    """Linear projection: current rate since placement times the time remaining."""
    if deadline is None:
        return float(prog)
    elapsed_min = (ensure_utc(now) - placed_at).total_seconds() / 60.0
    remaining_min = max(0.0, (deadline - ensure_utc(now)).total_seconds() / 60.0)
    if elapsed_min <= 0:
        return float(prog)
    return prog + (prog / elapsed_min) * remaining_min


def chance(
    bet: Bet,
    prog: int | None,
    rnd: Round | None = None,
    now: datetime | None = None,
    model: ChanceModel = DEFAULT_CHANCE_MODEL,
) -> float | None:
    """Heuristic 0-100 chance of winning, for UX feedback only."""
    if prog is None:
        return None
    kind = outcome_kind(bet, rnd)
    target = bet_target(bet, rnd)
    if kind is None or target is None:
        return None
    now = ensure_utc(now) if now else bet.placed_at
    projected = project(prog, bet.placed_at, bet_deadline(bet, rnd), now)
    signed = (projected - target) / max(target, 1)
    swing = signed * model.sensitivity * 50.0

    if kind is OutcomeKind.OVER:
        if prog > target:
            return model.over_under_bounds[1]
        return _clamp(50.0 + swing, model.over_under_bounds)
    if kind is OutcomeKind.UNDER:
        if prog > target:
            return model.over_under_bounds[0]
        return _clamp(50.0 - swing, model.over_under_bounds)
    if prog > target:
        return model.exact_bounds[0]
    return _clamp(model.exact_bounds[1] - abs(swing), model.exact_bounds)


def hint(bet: Bet, prog: int | None, rnd: Round | None = None, now: datetime | None = None) -> str | None:
    """Short status line for a pending wager with a numeric target."""
    target = bet_target(bet, rnd)
    if prog is None or target is None or bet.is_terminal:
        return None
    deadline = bet_deadline(bet, rnd)
    now = ensure_utc(now) if now else bet.placed_at
    if deadline is not None and now >= deadline:
        return "calculating your score"
    remaining = target - prog
    if remaining > 0:
        return f"need {remaining} more before time expires"
    if remaining == 0:
        return "on target, hold steady"
    return f"over by {-remaining}"


def progress_band(prog: int | None, target: int | None, close_ratio: float = 0.8) -> str | None:
    """on_track below close_ratio of target, close up to the target, over at or past it."""
    if prog is None or not target or target <= 0:
        return None
    pct = prog / target
    if pct >= 1.0:
        return "over"
    if pct >= close_ratio:
        return "close"
    return "on_track"
