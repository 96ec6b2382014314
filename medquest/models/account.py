"""Profile account: experience, level, activity counters and earned badges."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medquest.core.utils import utcnow
from medquest.models.base import Base

if TYPE_CHECKING:
    from medquest.models.achievement import ProgressRecord


class ProfileAccount(Base):
    """Per-user progression aggregate.

    ``experience_total`` only ever grows, and ``level`` is always derived from
    it. Activity counters are cumulative lifetime totals owned by the feature
    that produces the activity.
    """

    __tablename__ = "profile_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    # Progression
    experience_total: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)

    # Health assistant counters
    total_chats: Mapped[int] = mapped_column(Integer, default=0)
    total_reports: Mapped[int] = mapped_column(Integer, default=0)
    total_vision_analyses: Mapped[int] = mapped_column(Integer, default=0)
    total_symptom_checks: Mapped[int] = mapped_column(Integer, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, default=0)

    # Fitness counters
    total_runs: Mapped[int] = mapped_column(Integer, default=0)
    total_distance_km: Mapped[float] = mapped_column(Float, default=0.0)
    total_territories: Mapped[int] = mapped_column(Integer, default=0)
    total_challenges: Mapped[int] = mapped_column(Integer, default=0)
    best_speed_kmh: Mapped[float] = mapped_column(Float, default=0.0)
    leaderboard_rank: Mapped[int] = mapped_column(Integer, default=0)  # 0 = unranked

    # Team and community counters
    teams_joined: Mapped[int] = mapped_column(Integer, default=0)
    team_contribution_km: Mapped[float] = mapped_column(Float, default=0.0)
    helped_users: Mapped[int] = mapped_column(Integer, default=0)
    motivations: Mapped[int] = mapped_column(Integer, default=0)
    referrals: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
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

    # Relationships
    badges: Mapped[list["AccountBadge"]] = relationship(
        "AccountBadge",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="AccountBadge.id",
        lazy="selectin",
    )
    progress_records: Mapped[list["ProgressRecord"]] = relationship(
        "ProgressRecord",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    @property
    def health_sessions(self) -> int:
        """Chats, reports, vision analyses and symptom checks combined."""
        return (
            self.total_chats
            + self.total_reports
            + self.total_vision_analyses
            + self.total_symptom_checks
        )

    def holds_badge(self, badge_id: str) -> bool:
        return any(badge.badge_id == badge_id for badge in self.badges)


class AccountBadge(Base):
    """A badge earned by an account. Rows are only ever appended."""

    __tablename__ = "account_badges"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("profile_accounts.id", ondelete="CASCADE"),
        index=True,
    )
    badge_id: Mapped[str] = mapped_column(String(100))  # achievement id or custom badge id
    name: Mapped[str] = mapped_column(String(255))
    icon: Mapped[str] = mapped_column(String(50))
    rarity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Use String to avoid PostgreSQL enum mapping issues - values validated at app layer
    source: Mapped[str] = mapped_column(String(50))
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    account: Mapped["ProfileAccount"] = relationship("ProfileAccount", back_populates="badges")

    __table_args__ = (
        Index("ix_account_badge_unique", "account_id", "badge_id", unique=True),
    )
