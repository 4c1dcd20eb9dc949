"""
Normalisers for raw metric rows.

Metric keys, bat configurations and swing sides are free text entered per
protocol step, so each one is matched loosely here. None from any of these
means "not recognised" and the row is left out of that aggregate.
"""

import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .models import GAME_BAT


def to_number(value: Any) -> Optional[float]:
    """Finite float, or None for missing, non-finite or unparsable values."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def is_bat_speed_metric(metric_key: Optional[str]) -> bool:
    if not metric_key:
        return False
    key = metric_key.lower()
    if key in ("bat_speed", "max_bat_speed"):
        return True
    return "bat" in key and "speed" in key


def is_exit_velo_metric(metric_key: Optional[str]) -> bool:
    if not metric_key:
        return False
    key = metric_key.lower()
    if key in ("exit_velo", "exit_velocity"):
        return True
    return "exit" in key and ("velo" in key or "velocity" in key)


def normalize_velo_config(raw: Optional[str]) -> Optional[str]:
    """Map spelling variants to base_bat, green_sleeve, full_loaded or game_bat."""
    if not raw:
        return None
    value = raw.lower().strip()
    if value == "base_bat":
        return "base_bat"
    if value in ("green_sleeve", "green-sleeve", "greensleeve"):
        return "green_sleeve"
    if value in ("full_loaded", "fully_loaded", "full-load"):
        return "full_loaded"
    if value in ("game_bat", "gamebat"):
        return GAME_BAT
    return None


def normalize_swing_side(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    value = raw.lower().strip()
    if value == "dominant":
        return "dominant"
    if value in ("non_dominant", "non-dominant"):
        return "non_dominant"
    return None


def drill_name_from_step_title(title: Optional[str]) -> str:
    """'Step Drill - 5 swings' -> 'Step Drill'."""
    if not title:
        return "Drill"
    first = title.split(" - ")[0].strip()
    return first or "Drill"


def day_key(value: Any) -> str:
    """
    Sortable YYYY-MM-DD key for a timestamp.

    Accepts datetime, date or an ISO string. Empty string when unknown, which
    sorts before every real date.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]
