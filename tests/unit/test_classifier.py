"""
Unit tests for protocol classification.

Protocols are only identified by free-text category and title, so these
tests pin down the string matching rules the program state depends on.
"""

import pytest

from src.core.program.classifier import (
    ProtocolKind,
    classify_protocol,
    parse_level_from_title,
)


class TestParseLevelFromTitle:
    """Tests for extracting the 1-5 level from a protocol title."""

    @pytest.mark.parametrize("title,expected", [
        ("Ground Force Level 3", 3),
        ("sequencing level2", 2),
        ("Exit Velo Application LEVEL 5", 5),
        ("Overspeed Level 1 - intro", 1),
    ])
    def test_reads_level(self, title, expected):
        assert parse_level_from_title(title) == expected

    @pytest.mark.parametrize("title", [None, "", "Ground Force", "Level 7", "Level 0"])
    def test_missing_or_out_of_range_level_is_none(self, title):
        """Only levels 1 through 5 exist."""
        assert parse_level_from_title(title) is None


class TestClassifyProtocol:
    """Tests for mapping a protocol onto the counter it bumps."""

    def test_category_match_ignores_case(self):
        assert classify_protocol("Anything", "OverSpeed").kind is ProtocolKind.OVERSPEED
        assert classify_protocol("Anything", "COUNTERWEIGHT").kind is ProtocolKind.COUNTERWEIGHT

    def test_power_mechanics_split_by_title(self):
        ground_force = classify_protocol("Power Mechanics Ground Force Level 2", "power_mechanics")
        assert ground_force.kind is ProtocolKind.GROUND_FORCE
        assert ground_force.level == 2

        sequencing = classify_protocol("Sequencing Level 1", "power_mechanics")
        assert sequencing.kind is ProtocolKind.SEQUENCING
        assert sequencing.level == 1

        bat_delivery = classify_protocol("Bat Delivery", "power_mechanics")
        assert bat_delivery.kind is ProtocolKind.BAT_DELIVERY
        assert bat_delivery.level is None

    def test_ground_force_wins_over_sequencing(self):
        """Titles are checked in order: ground force, sequencing, bat delivery."""
        result = classify_protocol("Ground Force Sequencing Level 4", "power_mechanics")
        assert result.kind is ProtocolKind.GROUND_FORCE
        assert result.level == 4

    def test_level_defaults_to_one(self):
        assert classify_protocol("Ground Force", "power_mechanics").level == 1
        assert classify_protocol("Exit Velo", "exit_velo_application").level == 1

    def test_unmatched_power_mechanics(self):
        result = classify_protocol("Hip Hinge", "power_mechanics")
        assert result.kind is ProtocolKind.POWER_MECHANICS_OTHER

    def test_assessments_full_or_quick(self):
        assert classify_protocol("Assessments Speed Full", "assessments").kind is ProtocolKind.FULL_ASSESSMENT
        assert classify_protocol("Bat Speed Quick", "assessments").kind is ProtocolKind.QUICK_ASSESSMENT

    def test_any_non_full_assessment_is_quick(self):
        assert classify_protocol("Monthly check", "assessments").kind is ProtocolKind.QUICK_ASSESSMENT
        assert classify_protocol(None, "assessments").kind is ProtocolKind.QUICK_ASSESSMENT

    @pytest.mark.parametrize("category", [None, "", "warm_up", "mobility"])
    def test_other_categories(self, category):
        result = classify_protocol("Warm Up - Dynamic", category)
        assert result.kind is ProtocolKind.OTHER
        assert not result.is_overspeed

    def test_only_overspeed_is_overspeed(self):
        assert classify_protocol("Overspeed Level 2", "overspeed").is_overspeed
        assert not classify_protocol("Overspeed Level 2", "counterweight").is_overspeed
