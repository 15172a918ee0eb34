"""Live engine and its state snapshot."""

from roundsync.engine.service import LiveEngine, build_engine
from roundsync.engine.state import BetView, EngineState

__all__ = ["BetView", "EngineState", "LiveEngine", "build_engine"]
