"""Persisted set of resolved bet ids the user already acknowledged."""

from __future__ import annotations

import structlog

from roundsync.storage.kv import KeyValueStore

log = structlog.get_logger(__name__)

DISMISSED_KEY = "dismissed_bet_ids"


class DismissedBets:
    """Best effort: storage failures are logged and the in-memory set keeps working."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._ids: set[str] = self._load()

    def _load(self) -> set[str]:
        try:
            raw = self._store.get(DISMISSED_KEY, [])
        except Exception as e:
            log.warning("dismissed_load_failed", error=str(e))
            return set()
        return {str(x) for x in raw or []}

    def __contains__(self, bet_id: object) -> bool:
        return bet_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, bet_id: str) -> None:
        if bet_id in self._ids:
            return
        self._ids.add(bet_id)
        try:
            self._store.set(DISMISSED_KEY, sorted(self._ids))
        except Exception as e:
            log.warning("dismissed_save_failed", bet_id=bet_id, error=str(e))
