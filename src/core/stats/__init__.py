"""
Player statistics.

Pure aggregation over session summaries and swing metric rows.
"""

from .engine import build_player_stats, compute_gain
from .models import GainStat, MetricRow, PlayerStats, SessionSummary

__all__ = [
    "build_player_stats",
    "compute_gain",
    "GainStat",
    "MetricRow",
    "PlayerStats",
    "SessionSummary",
]
