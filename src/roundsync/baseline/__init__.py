"""Baseline resolution: the count that counts as zero for a round or wager."""
