from medquest.models.base import Base
from medquest.models.account import AccountBadge, ProfileAccount
from medquest.models.achievement import (
    AchievementCategory,
    ActivityCategory,
    BadgeRarity,
    BadgeSource,
    Comparison,
    ProgressRecord,
)

__all__ = [
    "Base",
    "ProfileAccount",
    "AccountBadge",
    "ProgressRecord",
    "AchievementCategory",
    "ActivityCategory",
    "BadgeRarity",
    "BadgeSource",
    "Comparison",
]
