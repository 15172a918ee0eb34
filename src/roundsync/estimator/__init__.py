"""Progress toward a wager's target and the live chance heuristic."""
