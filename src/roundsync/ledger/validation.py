"""Submission-time checks. Failures surface inline and are never retried."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from roundsync.clock import ensure_utc
from roundsync.errors import ValidationError
from roundsync.models import BetDraft, BetType, Round, RoundStatus

EXACT_WINDOWS_SEC = (60, 180, 300)


def potential_payout(amount: int, odds: float) -> int:
    return math.floor(amount * odds)


def validate_draft(draft: BetDraft, rnd: Round | None, now: datetime) -> None:
    """Raise ValidationError when the draft cannot be placed on rnd at now."""
    now = ensure_utc(now)
    if rnd is None:
        raise ValidationError("No active round", code="no_round")
    if draft.round_id != rnd.id:
        raise ValidationError("Round has changed", code="round_mismatch")
    if draft.amount is None or draft.amount <= 0:
        raise ValidationError("Enter a valid amount", code="invalid_amount")
    if rnd.status is not RoundStatus.OPEN:
        raise ValidationError("Round is not open for guesses", code="round_not_open")
    if rnd.closes_at is not None and now >= rnd.closes_at:
        raise ValidationError("Guess window has closed", code="window_closed")

    if draft.bet_type is BetType.MARKET:
        if rnd.market(draft.market_id) is None:
            raise ValidationError("Unknown market for this round", code="unknown_market")
        return

    if draft.exact_count is None or draft.exact_count < 0:
        raise ValidationError("Enter a valid count", code="invalid_count")
    window = draft.window_duration_sec
    if window is None or window not in EXACT_WINDOWS_SEC:
        raise ValidationError("Choose a valid window", code="invalid_window")
    if now + timedelta(seconds=window) > rnd.ends_at:
        raise ValidationError("Selected window extends past match end", code="window_past_end")
