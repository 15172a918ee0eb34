"""Outcome card lifecycle and dismissal persistence."""

from conftest import make_bet, make_round

from roundsync.ledger.merge import BetTransition
from roundsync.outcome.notifier import OutcomeNotifier
from roundsync.storage.kv import DuckDBStore, MemoryStore


class BrokenStore:
    """Store whose every operation fails."""

    def get(self, key, default=None):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("storage unavailable")

    def delete(self, key):
        raise OSError("storage unavailable")

    def namespace(self, prefix):
        return self


def _won(bet_id="abc"):
    pending = make_bet(bet_id, market_id="R1-over", outcome_key="over")
    won = make_bet(bet_id, status="won", payout=800, actual_count=61, market_id="R1-over", outcome_key="over")
    return BetTransition(before=pending, after=won)


def test_dismissed_card_stays_gone_after_reload(temp_db):
    store = DuckDBStore(temp_db, "roundsync").namespace("outcome")
    rnd = make_round("R1", threshold=50)
    notifier = OutcomeNotifier(store)
    card = notifier.on_transition(_won(), rnd)
    assert card.won and card.payout == 800
    assert card.target == 50
    assert notifier.visible_card("R1") == card

    assert notifier.dismiss("abc")
    assert notifier.visible_card("R1") is None

    reloaded = OutcomeNotifier(DuckDBStore(temp_db, "roundsync").namespace("outcome"))
    assert reloaded.card is None
    # the same bet reported resolved again by a later poll never resurfaces
    assert reloaded.on_transition(BetTransition(before=None, after=_won().after), rnd) is None
    assert "abc" in reloaded.dismissed


def test_undismissed_card_survives_reload(temp_db):
    store = DuckDBStore(temp_db, "roundsync").namespace("outcome")
    OutcomeNotifier(store).on_transition(_won(), make_round("R1"))
    reloaded = OutcomeNotifier(DuckDBStore(temp_db, "roundsync").namespace("outcome"))
    assert reloaded.card is not None
    assert reloaded.card.bet_id == "abc"
    assert reloaded.card.payout == 800


def test_card_cleared_when_round_changes():
    notifier = OutcomeNotifier(MemoryStore())
    notifier.on_transition(_won(), make_round("R1"))
    notifier.on_round_change("R1")
    assert notifier.card is not None
    notifier.on_round_change("R2")
    assert notifier.card is None

    notifier.on_transition(_won("def"), make_round("R1"))
    assert notifier.visible_card("R2") is None
    assert notifier.card is None


def test_pending_or_optimistic_transitions_ignored():
    notifier = OutcomeNotifier(MemoryStore())
    pending = make_bet("abc")
    assert notifier.on_transition(BetTransition(before=None, after=pending)) is None


def test_storage_failures_are_best_effort():
    notifier = OutcomeNotifier(BrokenStore())
    assert notifier.card is None
    card = notifier.on_transition(_won(), make_round("R1"))
    assert card is not None
    assert notifier.dismiss("abc")
    assert "abc" in notifier.dismissed
    assert notifier.visible_card("R1") is None
