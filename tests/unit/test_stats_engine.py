"""
Unit tests for the stats aggregation engine.

The engine is a pure function of its input rows, so the tests build the rows
by hand and check the aggregates (and the JSON shape clients read).
"""

from datetime import date, datetime

import pytest

from src.core.stats.engine import build_player_stats, compute_gain
from src.core.stats.models import MetricRow, SessionSummary
from src.core.stats.normalize import (
    day_key,
    drill_name_from_step_title,
    is_bat_speed_metric,
    is_exit_velo_metric,
    normalize_swing_side,
    normalize_velo_config,
    to_number,
)


def session(session_id, category, protocol_id, title=None, status="completed", day=None):
    return SessionSummary(
        session_id=session_id,
        player_id="player-1",
        protocol_id=protocol_id,
        started_at=day,
        completed_at=day if status == "completed" else None,
        status=status,
        protocol_title=title,
        protocol_category=category,
    )


def assessment(session_id, metric_key, value, completed_at, velo_config="game_bat"):
    return MetricRow(
        session_id=session_id,
        player_id="player-1",
        value_number=value,
        session_completed_at=completed_at,
        protocol_category="assessments",
        metric_key=metric_key,
        velo_config=velo_config,
    )


def velo_swing(session_id, config, side, value, step_title="Step Drill - 5 swings", category="overspeed"):
    return MetricRow(
        session_id=session_id,
        player_id="player-1",
        value_number=value,
        protocol_category=category,
        metric_key="bat_speed",
        velo_config=config,
        swing_type=side,
        step_title=step_title,
    )


# ---------------------------------------------------------------------------
# Normalisers
# ---------------------------------------------------------------------------

class TestNormalizers:
    """Tests for the loose matching of free-text metric fields."""

    @pytest.mark.parametrize("value,expected", [
        (61.5, 61.5),
        (70, 70.0),
        ("72.25", 72.25),
        (" 64 ", 64.0),
        (None, None),
        ("", None),
        ("fast", None),
        ("NaN", None),
        (float("inf"), None),
        (True, None),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_bat_speed_metric_keys(self):
        assert is_bat_speed_metric("bat_speed")
        assert is_bat_speed_metric("MAX_BAT_SPEED")
        assert is_bat_speed_metric("avg_bat_swing_speed")
        assert not is_bat_speed_metric("exit_velo")
        assert not is_bat_speed_metric(None)

    def test_exit_velo_metric_keys(self):
        assert is_exit_velo_metric("exit_velo")
        assert is_exit_velo_metric("Exit_Velocity")
        assert is_exit_velo_metric("max_exit_velo_mph")
        assert not is_exit_velo_metric("bat_speed")

    @pytest.mark.parametrize("raw,expected", [
        ("base_bat", "base_bat"),
        ("Green-Sleeve", "green_sleeve"),
        ("greensleeve", "green_sleeve"),
        ("fully_loaded", "full_loaded"),
        ("full-load", "full_loaded"),
        ("GameBat", "game_bat"),
        ("heavy", None),
        (None, None),
    ])
    def test_normalize_velo_config(self, raw, expected):
        assert normalize_velo_config(raw) == expected

    def test_normalize_swing_side(self):
        assert normalize_swing_side("Dominant") == "dominant"
        assert normalize_swing_side("non-dominant") == "non_dominant"
        assert normalize_swing_side("left") is None

    def test_drill_name_from_step_title(self):
        assert drill_name_from_step_title("Step Drill - 5 swings") == "Step Drill"
        assert drill_name_from_step_title("Walk Up") == "Walk Up"
        assert drill_name_from_step_title(None) == "Drill"
        assert drill_name_from_step_title(" - 5 swings") == "Drill"

    def test_day_key(self):
        assert day_key(datetime(2024, 3, 5, 23, 59)) == "2024-03-05"
        assert day_key(date(2024, 3, 5)) == "2024-03-05"
        assert day_key("2024-03-05T10:00:00Z") == "2024-03-05"
        assert day_key(None) == ""


# ---------------------------------------------------------------------------
# Gains
# ---------------------------------------------------------------------------

class TestComputeGain:
    """Tests for first-to-last gain."""

    def test_gain_from_first_to_last(self):
        gain = compute_gain([60.0, 63.0, 66.0])

        assert gain.baseline_mph == 60.0
        assert gain.current_mph == 66.0
        assert gain.delta_mph == pytest.approx(6.0)
        assert gain.delta_percent == pytest.approx(10.0)

    def test_needs_two_values(self):
        assert compute_gain([]) is None
        assert compute_gain([60.0]) is None

    def test_non_positive_baseline(self):
        assert compute_gain([0.0, 60.0]) is None
        assert compute_gain([-5.0, 60.0]) is None

    def test_gain_can_be_negative(self):
        gain = compute_gain([70.0, 63.0])
        assert gain.delta_mph == pytest.approx(-7.0)
        assert gain.delta_percent == pytest.approx(-10.0)


# ---------------------------------------------------------------------------
# build_player_stats
# ---------------------------------------------------------------------------

class TestBuildPlayerStats:
    """Tests for the full aggregation."""

    @pytest.fixture
    def sessions(self):
        return [
            # Listed out of chronological order on purpose
            session("s2", "assessments", "p-assess", "Assessments Speed Full", day="2024-02-01T10:00:00"),
            session("s1", "assessments", "p-assess", "Assessments Speed Full", day="2024-01-01T10:00:00"),
            session("s3", "overspeed", "p-os", "Overspeed Level 1", day="2024-01-05T10:00:00"),
            session("s4", "overspeed", "p-os", "Overspeed Level 1", status="in_progress"),
            session("s5", "mobility", "p-mob", None, day="2024-01-06T10:00:00"),
        ]

    @pytest.fixture
    def metrics(self):
        return [
            assessment("s2", "max_bat_speed", 66, "2024-02-01T10:30:00"),
            assessment("s2", "exit_velo", "88", "2024-02-01T10:30:00"),
            assessment("s2", "bat_speed", "NaN", "2024-02-01T10:30:00"),
            assessment("s1", "bat_speed", 60, "2024-01-01T10:30:00"),
            assessment("s1", "bat_speed", 58, "2024-01-01T10:30:00"),
            assessment("s1", "exit_velo", 80, "2024-01-01T10:30:00"),
            # Not a game bat, so not an assessment value
            assessment("s1", "bat_speed", 99, "2024-01-01T10:30:00", velo_config="base_bat"),
            velo_swing("s3", "base_bat", "dominant", 70),
            velo_swing("s3", "base_bat", "non_dominant", 65),
            velo_swing("s3", "Green-Sleeve", "Dominant", "68", step_title="Walk Up"),
            velo_swing("s3", "heavy_bat", "dominant", 80),
            velo_swing("s3", "full_loaded", "left", 75),
            # Session not completed
            velo_swing("s4", "base_bat", "dominant", 90),
        ]

    def test_personal_bests(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)
        assert stats.best_bat_speed_mph == 66
        assert stats.best_exit_velo_mph == 88

    def test_gains_use_chronological_session_order(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)

        assert stats.bat_speed_gain.baseline_mph == 60
        assert stats.bat_speed_gain.current_mph == 66
        assert stats.bat_speed_gain.delta_percent == pytest.approx(10.0)
        assert stats.exit_velo_gain.baseline_mph == 80
        assert stats.exit_velo_gain.current_mph == 88

    def test_config_by_side(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)

        assert stats.config_by_side["base_bat"] == {"dominant": 70, "non_dominant": 65}
        assert stats.config_by_side["green_sleeve"] == {"dominant": 68, "non_dominant": None}
        assert stats.config_by_side["full_loaded"] == {"dominant": None, "non_dominant": None}

    def test_fastest_drills_use_dominant_side(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)

        assert stats.fastest_drills["base_bat"].drill_name == "Step Drill"
        assert stats.fastest_drills["base_bat"].best_bat_speed_mph == 70
        assert stats.fastest_drills["green_sleeve"].drill_name == "Walk Up"
        assert stats.fastest_drills["full_loaded"].drill_name is None

    def test_only_completed_sessions_count(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)
        assert stats.total_completed == 4

    def test_category_counts_in_fixed_order(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)

        assert [(c.category, c.completed_count) for c in stats.by_category] == [
            ("overspeed", 1),
            ("counterweight", 0),
            ("power_mechanics", 0),
            ("warm_up", 0),
            ("assessments", 2),
        ]

    def test_protocol_counts(self, sessions, metrics):
        stats = build_player_stats("player-1", sessions, metrics)

        assert [
            (c.protocol_id, c.protocol_title, c.category, c.completed_count)
            for c in stats.by_protocol
        ] == [
            ("p-assess", "Assessments Speed Full", "assessments", 2),
            ("p-os", "Overspeed Level 1", "overspeed", 1),
            # Unknown categories are reported under overspeed
            ("p-mob", "Unknown protocol", "overspeed", 1),
        ]

    def test_accepts_raw_dict_rows(self):
        sessions = [{
            "session_id": "s1",
            "protocol_id": "p-os",
            "status": "completed",
            "protocol_title": "Overspeed Level 1",
            "protocol_category": "overspeed",
        }]
        metrics = [{
            "session_id": "s1",
            "value_number": "71.5",
            "protocol_category": "overspeed",
            "metric_key": "bat_speed",
            "velo_config": "base_bat",
            "swing_type": "dominant",
            "step_title": "Rocker - 3 swings",
        }]

        stats = build_player_stats("player-1", sessions, metrics)

        assert stats.config_by_side["base_bat"]["dominant"] == 71.5
        assert stats.fastest_drills["base_bat"].drill_name == "Rocker"

    def test_empty_input(self):
        stats = build_player_stats("player-1", [], [])

        assert stats.total_completed == 0
        assert stats.best_bat_speed_mph is None
        assert stats.bat_speed_gain is None
        assert stats.by_protocol == []
        assert len(stats.by_category) == 5

    def test_to_dict_shape(self, sessions, metrics):
        payload = build_player_stats("player-1", sessions, metrics).to_dict()

        assert payload["playerId"] == "player-1"
        assert payload["personalBest"] == {"batSpeedMph": 66, "exitVeloMph": 88}
        assert payload["gains"]["batSpeed"]["baselineMph"] == 60
        assert payload["configBySide"]["base_bat"]["dominant"] == {"bestBatSpeedMph": 70}
        assert payload["fastestDrills"]["base_bat"] == {"drillName": "Step Drill", "bestBatSpeedMph": 70}
        assert payload["sessionCounts"]["totalCompleted"] == 4
        assert payload["sessionCounts"]["byCategory"][0] == {"category": "overspeed", "completedCount": 1}
        assert payload["sessionCounts"]["byProtocol"][0]["protocolId"] == "p-assess"
