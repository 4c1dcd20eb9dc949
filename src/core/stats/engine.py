"""
Stats aggregation engine.

build_player_stats is a pure function of the session summaries and metric
rows passed in. It never raises on bad data: rows with missing ids,
unrecognised configurations or unparsable values are left out of the
aggregates they would have fed.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .models import (
    CATEGORY_ORDER,
    GAME_BAT,
    VELO_CONFIGS,
    CategoryCount,
    FastestDrill,
    GainStat,
    MetricRow,
    PlayerStats,
    ProtocolCount,
    SessionSummary,
)
from .normalize import (
    day_key,
    drill_name_from_step_title,
    is_bat_speed_metric,
    is_exit_velo_metric,
    normalize_swing_side,
    normalize_velo_config,
    to_number,
)

logger = logging.getLogger(__name__)

UNKNOWN_PROTOCOL_TITLE = "Unknown protocol"
FALLBACK_CATEGORY = "overspeed"


@dataclass
class _AssessmentSession:
    """Best game-bat values recorded in one assessment session."""
    session_id: str
    day: str
    bat_speed_mph: Optional[float] = None
    exit_velo_mph: Optional[float] = None


def compute_gain(values_chrono: list[float]) -> Optional[GainStat]:
    """
    Gain from the first value to the last.

    None with fewer than two values or a non-positive baseline.
    """
    if len(values_chrono) < 2:
        return None
    baseline = values_chrono[0]
    current = values_chrono[-1]
    if not baseline or baseline <= 0:
        return None
    delta = current - baseline
    return GainStat(
        baseline_mph=baseline,
        current_mph=current,
        delta_mph=delta,
        delta_percent=(delta / baseline) * 100,
    )


def _max_or_none(values: list[float]) -> Optional[float]:
    return max(values) if values else None


def _as_sessions(rows: Iterable[Union[SessionSummary, dict]]) -> list[SessionSummary]:
    return [row if isinstance(row, SessionSummary) else SessionSummary.from_row(row) for row in rows]


def _as_metrics(rows: Iterable[Union[MetricRow, dict]]) -> list[MetricRow]:
    return [row if isinstance(row, MetricRow) else MetricRow.from_row(row) for row in rows]


# ---------------------------------------------------------------------------
# Session counts
# ---------------------------------------------------------------------------

def _count_sessions(completed: list[SessionSummary]) -> tuple[list[CategoryCount], list[ProtocolCount]]:
    by_category = {category: CategoryCount(category) for category in CATEGORY_ORDER}
    by_protocol: dict[str, ProtocolCount] = {}

    for session in completed:
        category = session.protocol_category or ""
        if category in by_category:
            by_category[category].completed_count += 1

        if not session.protocol_id:
            continue

        count = by_protocol.get(session.protocol_id)
        if count is None:
            count = ProtocolCount(
                protocol_id=session.protocol_id,
                protocol_title=session.protocol_title or UNKNOWN_PROTOCOL_TITLE,
                category=category if category in by_category else FALLBACK_CATEGORY,
            )
            by_protocol[session.protocol_id] = count
        count.completed_count += 1

    protocols = sorted(by_protocol.values(), key=lambda c: (c.category, c.protocol_title))
    return [by_category[category] for category in CATEGORY_ORDER], protocols


# ---------------------------------------------------------------------------
# Game bat assessments
# ---------------------------------------------------------------------------

def _is_game_bat_assessment(metric: MetricRow) -> bool:
    if (metric.protocol_category or "").lower() != "assessments":
        return False
    if normalize_velo_config(metric.velo_config) != GAME_BAT:
        return False
    return is_bat_speed_metric(metric.metric_key) or is_exit_velo_metric(metric.metric_key)


def _aggregate_assessments(stats: PlayerStats, metrics: list[MetricRow]) -> None:
    bat_speeds: list[float] = []
    exit_velos: list[float] = []
    by_session: dict[str, _AssessmentSession] = {}

    for metric in metrics:
        if not _is_game_bat_assessment(metric):
            continue
        value = to_number(metric.value_number)
        if value is None:
            continue

        bucket = by_session.get(metric.session_id)
        if bucket is None:
            day = day_key(
                metric.session_completed_at or metric.session_started_at or metric.recorded_at
            )
            bucket = _AssessmentSession(session_id=metric.session_id, day=day)
            by_session[metric.session_id] = bucket

        if is_bat_speed_metric(metric.metric_key):
            bat_speeds.append(value)
            if bucket.bat_speed_mph is None or value > bucket.bat_speed_mph:
                bucket.bat_speed_mph = value
        elif is_exit_velo_metric(metric.metric_key):
            exit_velos.append(value)
            if bucket.exit_velo_mph is None or value > bucket.exit_velo_mph:
                bucket.exit_velo_mph = value

    # Stable sort keeps first-seen order for sessions on the same day
    chrono = sorted(by_session.values(), key=lambda s: s.day)

    stats.best_bat_speed_mph = _max_or_none(bat_speeds)
    stats.best_exit_velo_mph = _max_or_none(exit_velos)
    stats.bat_speed_gain = compute_gain(
        [s.bat_speed_mph for s in chrono if s.bat_speed_mph is not None]
    )
    stats.exit_velo_gain = compute_gain(
        [s.exit_velo_mph for s in chrono if s.exit_velo_mph is not None]
    )


# ---------------------------------------------------------------------------
# Velo bat training
# ---------------------------------------------------------------------------

def _aggregate_velo_bat(stats: PlayerStats, metrics: list[MetricRow]) -> None:
    for metric in metrics:
        if (metric.protocol_category or "").lower() not in ("overspeed", "counterweight"):
            continue
        if not is_bat_speed_metric(metric.metric_key):
            continue

        config = normalize_velo_config(metric.velo_config)
        if config not in VELO_CONFIGS:
            continue
        side = normalize_swing_side(metric.swing_type)
        if side is None:
            continue
        value = to_number(metric.value_number)
        if value is None:
            continue

        best = stats.config_by_side[config][side]
        if best is None or value > best:
            stats.config_by_side[config][side] = value

        if side == "dominant":
            fastest = stats.fastest_drills[config]
            if fastest.best_bat_speed_mph is None or value > fastest.best_bat_speed_mph:
                stats.fastest_drills[config] = FastestDrill(
                    drill_name=drill_name_from_step_title(metric.step_title),
                    best_bat_speed_mph=value,
                )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_player_stats(
    player_id: str,
    sessions: Iterable[Union[SessionSummary, dict]],
    metrics: Iterable[Union[MetricRow, dict]],
) -> PlayerStats:
    """
    Aggregate one player's statistics.

    Only completed sessions count, and a metric row only counts when its
    session is one of them. Rows may be SessionSummary/MetricRow instances or
    the raw dicts they are built from.
    """
    completed = [s for s in _as_sessions(sessions) if s.status == "completed"]
    completed_ids = {s.session_id for s in completed}
    completed_metrics = [
        m for m in _as_metrics(metrics)
        if m.session_id and m.session_id in completed_ids
    ]

    stats = PlayerStats(player_id=player_id, total_completed=len(completed))
    stats.by_category, stats.by_protocol = _count_sessions(completed)
    _aggregate_assessments(stats, completed_metrics)
    _aggregate_velo_bat(stats, completed_metrics)

    logger.debug(
        "Built player stats",
        extra={
            "player_id": player_id,
            "completed_sessions": len(completed),
            "metric_rows": len(completed_metrics),
        }
    )
    return stats
