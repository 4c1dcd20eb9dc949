"""
Achievement medal models.

A Medal is a definition (what it takes to earn it, who can earn it). A
PlayerMedal records that one player earned one medal, once.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class AgeGroup(Enum):
    YOUTH = "youth"
    ALL_STAR = "all_star"
    PRO = "pro"
    SOFTBALL = "softball"


class ComparisonKind(Enum):
    """How a medal's threshold is checked."""
    EVENT = "event"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"


@dataclass
class Medal:
    id: str
    badge_name: str
    category: Optional[str] = None
    age_group: Optional[str] = None
    badge_tier: Optional[str] = None
    metric_code: Optional[str] = None
    threshold_value: Optional[Any] = None
    threshold_text: Optional[str] = None
    threshold_type: Optional[str] = None
    file_name: Optional[str] = None
    image_path: Optional[str] = None
    is_active: bool = True
    sort_order: Optional[int] = None
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Medal":
        values = {name: row.get(name) for name in cls.__dataclass_fields__}
        values["is_active"] = bool(row.get("is_active", True))
        return cls(**values)

    def to_dict(self, image_url: Optional[str] = None) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "badge_name": self.badge_name,
            "age_group": self.age_group,
            "badge_tier": self.badge_tier,
            "metric_code": self.metric_code,
            "threshold_value": self.threshold_value,
            "threshold_text": self.threshold_text,
            "threshold_type": self.threshold_type,
            "file_name": self.file_name,
            "image_path": self.image_path,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "description": self.description,
            "image_url": image_url,
        }


@dataclass
class PlayerMedal:
    player_id: str
    medal_id: str
    earned_at: datetime
    source: str
    metadata: Optional[dict[str, Any]] = None
    id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "medal_id": self.medal_id,
            "earned_at": self.earned_at.isoformat(),
            "source": self.source,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class PlayerProfile:
    """The profile fields medal eligibility depends on."""
    id: str
    role: Optional[str] = None
    birthdate: Optional[date] = None
    softball: bool = False
    profile_complete: bool = False


@dataclass
class AwardedMedal:
    """A freshly earned medal, with the image URL clients display."""
    player_medal: PlayerMedal
    medal: Medal
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "player_medal": self.player_medal.to_dict(),
            "medal": self.medal.to_dict(image_url=self.image_url),
        }


@dataclass
class PlayerMedalOverview:
    """Medals a player can earn, and the ones they already have."""
    medals: list[Medal] = field(default_factory=list)
    earned: list[PlayerMedal] = field(default_factory=list)
    age_group: Optional[AgeGroup] = None
    is_softball: bool = False
