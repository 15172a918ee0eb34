"""Bet ledger: optimistic/confirmed merge, submission validation, dismissals."""

from roundsync.ledger.ledger import BetLedger
from roundsync.ledger.merge import BetTransition, MergeResult, merge_bets

__all__ = ["BetLedger", "BetTransition", "MergeResult", "merge_bets"]
