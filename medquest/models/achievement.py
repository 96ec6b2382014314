"""Achievement progress records and the enums shared by the catalog."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medquest.core.utils import utcnow
from medquest.models.base import Base

if TYPE_CHECKING:
    from medquest.models.account import ProfileAccount


class AchievementCategory(str, Enum):
    """Achievement categories."""
    CHAT = "chat"
    REPORT = "report"
    VISION = "vision"
    SYMPTOM = "symptom"
    STREAK = "streak"
    RUNNING = "running"
    DISTANCE = "distance"
    TERRITORY = "territory"
    TEAM = "team"
    CHALLENGE = "challenge"
    SPEED = "speed"
    LEADERBOARD = "leaderboard"
    SPECIAL = "special"


class ActivityCategory(str, Enum):
    """Activity kinds that collaborators report to the engine."""
    CHAT = "chat"
    REPORT = "report"
    VISION = "vision"
    SYMPTOM = "symptom"
    STREAK = "streak"
    RUN = "run"
    DISTANCE = "distance"
    TERRITORY = "territory"
    TEAM = "team"
    CHALLENGE = "challenge"
    SPEED = "speed"
    LEADERBOARD = "leaderboard"


class BadgeRarity(str, Enum):
    """Custom badge rarity levels."""
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    LEGENDARY = "legendary"


class BadgeSource(str, Enum):
    """Where an earned badge came from."""
    ACHIEVEMENT = "achievement"
    CUSTOM = "custom"


class Comparison(str, Enum):
    """How an achievement compares progress against its target."""
    AT_LEAST = "at_least"  # counters: progress >= target
    AT_MOST = "at_most"  # ranks: 1 <= progress <= target, 0 means unranked


class ProgressRecord(Base):
    """One user's progress towards one catalog achievement."""

    __tablename__ = "achievement_progress"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("profile_accounts.id", ondelete="CASCADE"),
        index=True,
    )
    achievement_id: Mapped[str] = mapped_column(String(100))

    progress: Mapped[int] = mapped_column(Integer, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    account: Mapped["ProfileAccount"] = relationship("ProfileAccount", back_populates="progress_records")

    __table_args__ = (
        Index("ix_progress_user_achievement", "user_id", "achievement_id", unique=True),
        Index("ix_progress_user_completed", "user_id", "completed"),
    )
