"""roundsync - live round/bet reconciliation engine for vehicle-count prediction markets."""

__version__ = "0.1.0"
