"""
Medal evaluation rules.

Pure functions deciding which medals a player qualifies for, given the
events that just happened and a flat map of metrics (profile completion plus
every program state column).
"""

import math
from datetime import date
from typing import Any, Iterable, Optional

from src.core.program.models import ProtocolInfo

from .models import AgeGroup, ComparisonKind, Medal, PlayerProfile


MEDAL_IMAGE_BUCKET = "velo_medals"

_NUMERIC_COMPARATORS = ("gt", "gte", "lt", "lte", "eq")

_METRIC_ALIASES = {
    "session_count": "total_sessions_completed",
    "counterweight_session_count": "total_counterweight_sessions",
    "overspeed_session_count": "total_overspeed_sessions",
    "complete_profile": "profile_complete",
}

# Threshold types that already name the metric they compare
METRIC_LIKE_THRESHOLD_TYPES = frozenset({
    "exit_velo_percent_gain",
    "bat_speed_percent_gain",
    "velo_bat_base_bat_percent_above_game_bat",
    "velo_bat_green_sleeve_percent_above_game_bat",
    "velo_bat_fl_percent_above_game_bat",
    "dynamic_session_count",
    "bat_delivery_session_count",
    "ground_force_1_session_count",
    "ground_force_2_session_count",
    "ground_force_3_session_count",
    "sequencing_1_session_count",
    "sequencing_2_session_count",
    "exit_velo_application_1_session_count",
    "exit_velo_application_2_session_count",
    "exit_velo_application_3_session_count",
})


def _norm(value: Optional[str]) -> str:
    return (value or "").lower()


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

def calculate_age(birthdate: Optional[date], today: date) -> Optional[int]:
    if birthdate is None:
        return None
    age = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def age_group_from_age(age: Optional[int]) -> Optional[AgeGroup]:
    if age is None:
        return None
    if age < 13:
        return AgeGroup.YOUTH
    if age < 18:
        return AgeGroup.ALL_STAR
    return AgeGroup.PRO


def infer_age_group(profile: Optional[PlayerProfile], today: date) -> Optional[AgeGroup]:
    """Softball players have their own group. Unknown age gives None."""
    if profile is None:
        return None
    if profile.softball:
        return AgeGroup.SOFTBALL
    return age_group_from_age(calculate_age(profile.birthdate, today))


# ---------------------------------------------------------------------------
# Threshold interpretation
# ---------------------------------------------------------------------------

def comparison_kind(threshold_type: Optional[str]) -> ComparisonKind:
    t = _norm(threshold_type)
    if t in ("event", "overspeed_cycle", "join_team"):
        return ComparisonKind.EVENT
    if t in ("boolean", "complete_profile"):
        return ComparisonKind.BOOLEAN
    return ComparisonKind.NUMERIC


def numeric_comparator(threshold_type: Optional[str]) -> str:
    t = _norm(threshold_type)
    return t if t in _NUMERIC_COMPARATORS else "gte"


def metric_key_for_medal(medal: Medal) -> Optional[str]:
    t = _norm(medal.threshold_type)
    if t in _METRIC_ALIASES:
        return _METRIC_ALIASES[t]
    if t in METRIC_LIKE_THRESHOLD_TYPES:
        return t
    return _norm(medal.metric_code) or None


def event_key_for_medal(medal: Medal) -> Optional[str]:
    t = _norm(medal.threshold_type)
    code = _norm(medal.metric_code)
    text = _norm(medal.threshold_text)

    if t == "join_team":
        return "join_team"
    if t == "overspeed_cycle" and text:
        return text
    return code or text or None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _compare(metric: float, threshold: float, comparator: str) -> bool:
    if comparator == "gt":
        return metric > threshold
    if comparator == "lt":
        return metric < threshold
    if comparator == "lte":
        return metric <= threshold
    if comparator == "eq":
        return metric == threshold
    return metric >= threshold


def qualifies(medal: Medal, event_codes: set[str], metrics: dict[str, Any]) -> bool:
    kind = comparison_kind(medal.threshold_type)

    if kind is ComparisonKind.EVENT:
        key = event_key_for_medal(medal)
        return bool(key) and key in event_codes

    key = metric_key_for_medal(medal)
    if not key or key not in metrics:
        return False
    metric = metrics[key]

    if kind is ComparisonKind.BOOLEAN:
        return bool(metric)

    value = _to_float(metric)
    threshold = _to_float(medal.threshold_value)
    if value is None or threshold is None:
        return False
    return _compare(value, threshold, numeric_comparator(medal.threshold_type))


def evaluate_medals(
    medals: Iterable[Medal],
    earned_ids: Iterable[str],
    event_codes: Iterable[str],
    metrics: dict[str, Any],
) -> list[Medal]:
    """
    Medals newly earned, in the order given.

    Already earned medals are skipped. Event codes match case-insensitively,
    as do metric keys.
    """
    earned = set(earned_ids)
    events = {code.lower() for code in event_codes}
    lowered = {key.lower(): value for key, value in metrics.items()}
    return [
        medal for medal in medals
        if medal.id not in earned and qualifies(medal, events, lowered)
    ]


# ---------------------------------------------------------------------------
# Events and images
# ---------------------------------------------------------------------------

def session_completion_event_codes(protocol: ProtocolInfo) -> list[str]:
    """Event codes emitted when a session of this protocol is completed."""
    codes = ["session_completed"]
    category = _norm(protocol.category)
    if category:
        codes.append(f"session_completed:{category}")
    if protocol.is_assessment:
        codes.append("session_completed:assessment")
    return codes


def medal_image_url(medal: Medal, base_url: Optional[str]) -> Optional[str]:
    """Public image URL under base_url, or None when there is no image or no base."""
    path = medal.file_name or medal.image_path or ""
    if not path or not base_url:
        return None
    prefix = f"{MEDAL_IMAGE_BUCKET}/"
    if path.startswith(prefix):
        path = path[len(prefix):]
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
