"""
Achievement medals.

Medal definitions, eligibility rules and the service that awards them.
"""

from .evaluator import (
    comparison_kind,
    evaluate_medals,
    event_key_for_medal,
    infer_age_group,
    metric_key_for_medal,
    numeric_comparator,
    session_completion_event_codes,
)
from .models import AgeGroup, AwardedMedal, ComparisonKind, Medal, PlayerMedal, PlayerProfile
from .service import MedalService

__all__ = [
    "comparison_kind",
    "evaluate_medals",
    "event_key_for_medal",
    "infer_age_group",
    "metric_key_for_medal",
    "numeric_comparator",
    "session_completion_event_codes",
    "AgeGroup",
    "AwardedMedal",
    "ComparisonKind",
    "Medal",
    "PlayerMedal",
    "PlayerProfile",
    "MedalService",
]
