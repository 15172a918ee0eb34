"""Error taxonomy for the engine: network, validation, stale data, reconciliation."""

from __future__ import annotations

from datetime import datetime


class RoundSyncError(Exception):
    """Base class for engine errors."""


class NetworkError(RoundSyncError):
    """Push channel disconnect or fetch/poll failure. Retried with backoff."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(RoundSyncError):
    """Rejected wager (bad amount, round not open, window closed). Never retried."""

    def __init__(self, message: str, code: str = "invalid") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class StaleDataError(RoundSyncError):
    """Frame at or before the last applied timestamp. Expected; dropped silently."""

    def __init__(self, captured_at: datetime, last_applied: datetime | None) -> None:
        super().__init__(f"frame at {captured_at.isoformat()} not newer than {last_applied}")
        self.captured_at = captured_at
        self.last_applied = last_applied


class ReconciliationConflict(RoundSyncError):
    """Optimistic bet never appeared in the confirmed list for its round."""

    def __init__(self, bet_id: str, round_id: str) -> None:
        super().__init__(f"optimistic bet {bet_id} not confirmed for round {round_id}")
        self.bet_id = bet_id
        self.round_id = round_id
