from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from medquest.services.achievements import UnlockedAchievement
from medquest.services.badges import AwardedBadge


class UnlockedAchievementResponse(BaseModel):
    """An achievement completed by the triggering request."""

    achievement_id: str
    title: str
    description: str
    icon: str
    category: str
    experience_points: int = Field(description="Experience awarded for the unlock")
    badge_icon: str
    leveled_up: bool
    new_level: int
    completed_at: datetime

    @classmethod
    def from_unlock(cls, unlock: UnlockedAchievement) -> "UnlockedAchievementResponse":
        return cls(
            achievement_id=unlock.achievement_id,
            title=unlock.title,
            description=unlock.description,
            icon=unlock.icon,
            category=unlock.category.value,
            experience_points=unlock.reward.experience_points,
            badge_icon=unlock.reward.badge_icon,
            leveled_up=unlock.leveled_up,
            new_level=unlock.new_level,
            completed_at=unlock.completed_at,
        )


class AwardedBadgeResponse(BaseModel):
    """A custom badge earned by the triggering request."""

    badge_id: str
    name: str
    icon: str
    rarity: str
    description: str
    earned_at: datetime

    @classmethod
    def from_award(cls, award: AwardedBadge) -> "AwardedBadgeResponse":
        return cls(
            badge_id=award.badge_id,
            name=award.name,
            icon=award.icon,
            rarity=award.rarity.value,
            description=award.description,
            earned_at=award.earned_at,
        )


class BadgeResponse(BaseModel):
    """A badge held by an account."""

    model_config = ConfigDict(from_attributes=True)

    badge_id: str
    name: str
    icon: str
    rarity: str | None
    description: str | None
    source: str
    earned_at: datetime


class AccountResponse(BaseModel):
    """Account progression state and activity counters."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    display_name: str
    email: str
    experience_total: int
    level: int
    total_chats: int
    total_reports: int
    total_vision_analyses: int
    total_symptom_checks: int
    streak_days: int
    total_runs: int
    total_distance_km: float
    total_territories: int
    total_challenges: int
    best_speed_kmh: float
    leaderboard_rank: int
    teams_joined: int
    team_contribution_km: float
    helped_users: int
    motivations: int
    referrals: int
    last_active_at: datetime | None
    created_at: datetime


class HealthResponse(BaseModel):
    """Response from the health check endpoint."""

    status: str
    version: str
    achievements: int
    badges: int

