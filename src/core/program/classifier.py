"""
Protocol classification.

Protocols are identified by free-text category and title strings. The
matching rules here are load-bearing business logic: they decide which
counters a completed session bumps and whether it can move the player to a
new phase. Keeping them in one pure function means the string matching is
tested in one place and can be swapped for a lookup table later.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


_LEVEL_PATTERN = re.compile(r"level\s*([1-5])")

DEFAULT_LEVEL = 1


class ProtocolKind(Enum):
    OVERSPEED = "overspeed"
    COUNTERWEIGHT = "counterweight"
    GROUND_FORCE = "power_mechanics_ground_force"
    SEQUENCING = "power_mechanics_sequencing"
    BAT_DELIVERY = "power_mechanics_bat_delivery"
    POWER_MECHANICS_OTHER = "power_mechanics_other"
    EXIT_VELO = "exit_velo_application"
    FULL_ASSESSMENT = "full_assessment"
    QUICK_ASSESSMENT = "quick_assessment"
    OTHER = "other"


@dataclass(frozen=True)
class ProtocolClassification:
    """What a protocol is, and at which level when that applies."""
    kind: ProtocolKind
    level: Optional[int] = None

    @property
    def is_overspeed(self) -> bool:
        return self.kind is ProtocolKind.OVERSPEED


def parse_level_from_title(title: Optional[str]) -> Optional[int]:
    """Return the 1-5 level named in a title ("Ground Force Level 3"), if any."""
    if not title:
        return None
    match = _LEVEL_PATTERN.search(title.lower())
    if not match:
        return None
    return int(match.group(1))


def classify_protocol(
    title: Optional[str],
    category: Optional[str],
) -> ProtocolClassification:
    """
    Classify a protocol from its title and category.

    Rules:
    - Category is compared lower-cased against overspeed, counterweight,
      power_mechanics, exit_velo_application and assessments. Anything else
      is OTHER and bumps no counter.
    - power_mechanics is split by title: "ground force", then "sequencing",
      then "bat delivery".
    - Any assessment whose title does not contain "full" is a quick one.
    - Levels default to 1 when the title names none.
    """
    cat = (category or "").lower()
    lowered = (title or "").lower()

    if cat == "overspeed":
        return ProtocolClassification(ProtocolKind.OVERSPEED)

    if cat == "counterweight":
        return ProtocolClassification(ProtocolKind.COUNTERWEIGHT)

    if cat == "power_mechanics":
        level = parse_level_from_title(title) or DEFAULT_LEVEL
        if "ground force" in lowered:
            return ProtocolClassification(ProtocolKind.GROUND_FORCE, level)
        if "sequencing" in lowered:
            return ProtocolClassification(ProtocolKind.SEQUENCING, level)
        if "bat delivery" in lowered:
            return ProtocolClassification(ProtocolKind.BAT_DELIVERY)
        return ProtocolClassification(ProtocolKind.POWER_MECHANICS_OTHER)

    if cat == "exit_velo_application":
        level = parse_level_from_title(title) or DEFAULT_LEVEL
        return ProtocolClassification(ProtocolKind.EXIT_VELO, level)

    if cat == "assessments":
        if "full" in lowered:
            return ProtocolClassification(ProtocolKind.FULL_ASSESSMENT)
        return ProtocolClassification(ProtocolKind.QUICK_ASSESSMENT)

    return ProtocolClassification(ProtocolKind.OTHER)
