"""Achievement catalog: immutable definitions, activity table and validation.

The catalog is built once at startup by ``build_catalog`` and handed to every
service that needs it. Nothing mutates it afterwards.
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from medquest.core.exceptions import CatalogError
from medquest.models.achievement import (
    AchievementCategory,
    ActivityCategory,
    BadgeRarity,
    Comparison,
)

if TYPE_CHECKING:
    from medquest.models.account import ProfileAccount


BadgePredicate = Callable[["ProfileAccount", Any], "bool | Awaitable[bool]"]


@dataclass(frozen=True)
class Reward:
    experience_points: int
    badge_icon: str


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    category: AchievementCategory
    title: str
    description: str
    icon: str
    target: int
    reward: Reward
    comparison: Comparison = Comparison.AT_LEAST

    def is_met(self, progress: int) -> bool:
        if self.comparison is Comparison.AT_MOST:
            return 0 < progress <= self.target
        return progress >= self.target


@dataclass(frozen=True)
class CustomBadgeDefinition:
    id: str
    name: str
    icon: str
    rarity: BadgeRarity
    description: str
    predicate: BadgePredicate = field(compare=False, repr=False)


def _achievement(
    id: str,
    category: AchievementCategory,
    title: str,
    description: str,
    icon: str,
    target: int,
    xp: int,
    comparison: Comparison = Comparison.AT_LEAST,
) -> AchievementDefinition:
    return AchievementDefinition(
        id=id,
        category=category,
        title=title,
        description=description,
        icon=icon,
        target=target,
        reward=Reward(experience_points=xp, badge_icon=icon),
        comparison=comparison,
    )


_C = AchievementCategory

# =============================================================================
# ACHIEVEMENT DEFINITIONS (declaration order is display order)
# =============================================================================

ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    # Health assistant chat
    _achievement("first_chat", _C.CHAT, "First Steps", "Start your first conversation with the health assistant", "💬", 1, 10),
    _achievement("chat_5", _C.CHAT, "Getting Started", "Have 5 conversations with the health assistant", "🗣️", 5, 25),
    _achievement("chat_10", _C.CHAT, "Regular Visitor", "Have 10 conversations with the health assistant", "💭", 10, 50),
    _achievement("chat_25", _C.CHAT, "Health Enthusiast", "Have 25 conversations with the health assistant", "🎯", 25, 100),
    _achievement("chat_50", _C.CHAT, "Wellness Warrior", "Have 50 conversations with the health assistant", "⚔️", 50, 200),

    # Medical reports
    _achievement("first_report", _C.REPORT, "Report Rookie", "Analyze your first medical report", "📄", 1, 15),
    _achievement("report_5", _C.REPORT, "Data Collector", "Analyze 5 medical reports", "📊", 5, 50),
    _achievement("report_10", _C.REPORT, "Health Tracker", "Analyze 10 medical reports", "📈", 10, 100),
    _achievement("report_25", _C.REPORT, "Master Analyst", "Analyze 25 medical reports", "🎓", 25, 250),

    # Vision analysis
    _achievement("first_vision", _C.VISION, "Eagle Eye", "Analyze your first medical image", "👁️", 1, 20),
    _achievement("vision_5", _C.VISION, "Image Explorer", "Analyze 5 medical images", "🔍", 5, 75),
    _achievement("vision_10", _C.VISION, "Vision Master", "Analyze 10 medical images", "🦅", 10, 150),

    # Symptom checker
    _achievement("first_symptom", _C.SYMPTOM, "Self Diagnosis", "Complete your first symptom check", "🩺", 1, 15),
    _achievement("symptom_5", _C.SYMPTOM, "Health Detective", "Complete 5 symptom checks", "🔬", 5, 50),
    _achievement("symptom_10", _C.SYMPTOM, "Symptom Tracker", "Complete 10 symptom checks", "📋", 10, 100),
    _achievement("symptom_25", _C.SYMPTOM, "Symptom Savant", "Complete 25 symptom checks", "🧠", 25, 250),

    # Runs logged
    _achievement("first_run", _C.RUNNING, "First Steps", "Log your first run", "👟", 1, 25),
    _achievement("run_5", _C.RUNNING, "Getting Active", "Log 5 runs", "🏃", 5, 50),
    _achievement("run_10", _C.RUNNING, "Regular Runner", "Log 10 runs", "🏃‍♂️", 10, 100),
    _achievement("run_25", _C.RUNNING, "Dedicated Runner", "Log 25 runs", "💪", 25, 200),
    _achievement("run_50", _C.RUNNING, "Marathon Spirit", "Log 50 runs", "🎽", 50, 400),
    _achievement("run_100", _C.RUNNING, "Century Club", "Log 100 runs", "💯", 100, 800),

    # Lifetime distance (km)
    _achievement("distance_1km", _C.DISTANCE, "First Kilometer", "Run a total of 1 km", "🎯", 1, 20),
    _achievement("distance_5km", _C.DISTANCE, "5K Achiever", "Run a total of 5 km", "🏅", 5, 50),
    _achievement("distance_10km", _C.DISTANCE, "10K Champion", "Run a total of 10 km", "🥇", 10, 100),
    _achievement("distance_25km", _C.DISTANCE, "Quarter Century", "Run a total of 25 km", "⭐", 25, 200),
    _achievement("distance_50km", _C.DISTANCE, "Half Century", "Run a total of 50 km", "🌟", 50, 400),
    _achievement("distance_100km", _C.DISTANCE, "Century Runner", "Run a total of 100 km", "👑", 100, 800),
    _achievement("distance_250km", _C.DISTANCE, "Ultra Runner", "Run a total of 250 km", "🦸", 250, 1500),
    _achievement("distance_500km", _C.DISTANCE, "Legend", "Run a total of 500 km", "🔥", 500, 3000),

    # Territories captured
    _achievement("first_territory", _C.TERRITORY, "Territory Hunter", "Capture your first territory", "🗺️", 1, 30),
    _achievement("territory_5", _C.TERRITORY, "Land Grabber", "Capture 5 territories", "🏰", 5, 75),
    _achievement("territory_10", _C.TERRITORY, "Territory Master", "Capture 10 territories", "🏛️", 10, 150),
    _achievement("territory_25", _C.TERRITORY, "Empire Builder", "Capture 25 territories", "🌍", 25, 350),
    _achievement("territory_50", _C.TERRITORY, "Conqueror", "Capture 50 territories", "⚔️", 50, 700),

    # Team contribution (km run for a team)
    _achievement("first_team", _C.TEAM, "Team Player", "Contribute your first kilometer to a team", "👥", 1, 25),
    _achievement("team_captain", _C.TEAM, "Team Captain", "Lead your team by example", "👑", 1, 50),
    _achievement("team_contributor", _C.TEAM, "Team Contributor", "Contribute 10 km to your team", "🤝", 10, 100),
    _achievement("team_champion", _C.TEAM, "Team Champion", "Contribute 50 km to your team", "🏆", 50, 300),
    _achievement("team_legend", _C.TEAM, "Team Legend", "Contribute 100 km to your team", "💎", 100, 600),

    # Challenges completed
    _achievement("first_challenge", _C.CHALLENGE, "Challenge Accepted", "Complete your first challenge", "🎯", 1, 30),
    _achievement("challenge_5", _C.CHALLENGE, "Challenge Seeker", "Complete 5 challenges", "🔍", 5, 100),
    _achievement("challenge_10", _C.CHALLENGE, "Challenge Master", "Complete 10 challenges", "🎖️", 10, 200),
    _achievement("challenge_25", _C.CHALLENGE, "Challenge Dominator", "Complete 25 challenges", "⚡", 25, 500),

    # Best average speed (km/h)
    _achievement("speed_10kmh", _C.SPEED, "Speed Walker", "Reach an average speed of 10 km/h on a run", "🚶‍♂️", 10, 50),
    _achievement("speed_15kmh", _C.SPEED, "Jogger", "Reach an average speed of 15 km/h on a run", "🏃", 15, 100),
    _achievement("speed_20kmh", _C.SPEED, "Sprinter", "Reach an average speed of 20 km/h on a run", "💨", 20, 200),

    # Leaderboard position (lower is better)
    _achievement("top_100", _C.LEADERBOARD, "Top 100", "Reach the top 100 on the leaderboard", "📊", 100, 100, Comparison.AT_MOST),
    _achievement("top_50", _C.LEADERBOARD, "Top 50", "Reach the top 50 on the leaderboard", "📈", 50, 200, Comparison.AT_MOST),
    _achievement("top_10", _C.LEADERBOARD, "Top 10", "Reach the top 10 on the leaderboard", "🥉", 10, 500, Comparison.AT_MOST),
    _achievement("top_3", _C.LEADERBOARD, "Podium Finish", "Reach the top 3 on the leaderboard", "🥈", 3, 1000, Comparison.AT_MOST),
    _achievement("rank_1", _C.LEADERBOARD, "Number One", "Reach first place on the leaderboard", "🥇", 1, 2000, Comparison.AT_MOST),

    # Daily check-in streaks
    _achievement("streak_3", _C.STREAK, "Consistent Care", "Check in 3 days in a row", "🔥", 3, 50),
    _achievement("streak_7", _C.STREAK, "Week Warrior", "Check in 7 days in a row", "⭐", 7, 100),
    _achievement("streak_30", _C.STREAK, "Monthly Master", "Check in 30 days in a row", "👑", 30, 500),

    # Special: granted at bootstrap or evaluated from several counters
    _achievement("early_adopter", _C.SPECIAL, "Early Adopter", "Joined MedQuest in its early days", "🌟", 1, 100),
    _achievement("completionist", _C.SPECIAL, "Completionist", "Use chat, reports, vision and the symptom checker", "🏆", 4, 150),
    _achievement("health_guru", _C.SPECIAL, "Health Guru", "Reach level 10", "🧘", 10, 300),
    _achievement("dedicated", _C.SPECIAL, "Dedicated User", "Complete 50 health sessions across all tools", "💎", 50, 400),
    _achievement("pioneer", _C.SPECIAL, "Pioneer", "One of the first accounts ever registered", "🚀", 1, 200),
)

# Activity category -> achievement ids, in evaluation order
ACTIVITY_ACHIEVEMENTS: Mapping[ActivityCategory, tuple[str, ...]] = MappingProxyType({
    ActivityCategory.CHAT: ("first_chat", "chat_5", "chat_10", "chat_25", "chat_50"),
    ActivityCategory.REPORT: ("first_report", "report_5", "report_10", "report_25"),
    ActivityCategory.VISION: ("first_vision", "vision_5", "vision_10"),
    ActivityCategory.SYMPTOM: ("first_symptom", "symptom_5", "symptom_10", "symptom_25"),
    ActivityCategory.STREAK: ("streak_3", "streak_7", "streak_30"),
    ActivityCategory.RUN: ("first_run", "run_5", "run_10", "run_25", "run_50", "run_100"),
    ActivityCategory.DISTANCE: (
        "distance_1km", "distance_5km", "distance_10km", "distance_25km",
        "distance_50km", "distance_100km", "distance_250km", "distance_500km",
    ),
    ActivityCategory.TERRITORY: ("first_territory", "territory_5", "territory_10", "territory_25", "territory_50"),
    ActivityCategory.TEAM: ("first_team", "team_captain", "team_contributor", "team_champion", "team_legend"),
    ActivityCategory.CHALLENGE: ("first_challenge", "challenge_5", "challenge_10", "challenge_25"),
    ActivityCategory.SPEED: ("speed_10kmh", "speed_15kmh", "speed_20kmh"),
    ActivityCategory.LEADERBOARD: ("top_100", "top_50", "top_10", "top_3", "rank_1"),
})


def _features_used(account: "ProfileAccount") -> int:
    return sum(
        1
        for count in (
            account.total_chats,
            account.total_reports,
            account.total_vision_analyses,
            account.total_symptom_checks,
        )
        if count > 0
    )


# Compound achievements read several counters and run after every report,
# in this order
COMPOUND_METRICS: Mapping[str, Callable[["ProfileAccount"], int]] = MappingProxyType({
    "completionist": _features_used,
    "dedicated": lambda account: account.health_sessions,
    "health_guru": lambda account: account.level,
})

# Granted at bootstrap time only
BOOTSTRAP_GRANTS: tuple[str, ...] = ("pioneer", "early_adopter")


class Catalog:
    """Read-only registry of achievement and custom badge definitions."""

    def __init__(
        self,
        achievements: Iterable[AchievementDefinition],
        badges: Iterable[CustomBadgeDefinition] = (),
        activity_table: Mapping[ActivityCategory, Iterable[str]] = ACTIVITY_ACHIEVEMENTS,
        compound_metrics: Mapping[str, Callable[["ProfileAccount"], int]] = COMPOUND_METRICS,
        bootstrap_grants: Iterable[str] = BOOTSTRAP_GRANTS,
    ):
        self._achievements = tuple(achievements)
        self._badges = tuple(badges)
        activity = {ActivityCategory(key): tuple(ids) for key, ids in activity_table.items()}
        self._compound = MappingProxyType(dict(compound_metrics))
        self._bootstrap_grants = tuple(bootstrap_grants)

        validate_catalog(
            self._achievements, self._badges, activity, self._compound, self._bootstrap_grants
        )

        self._by_id = MappingProxyType({a.id: a for a in self._achievements})
        by_category: dict[AchievementCategory, list[AchievementDefinition]] = {}
        for definition in self._achievements:
            by_category.setdefault(definition.category, []).append(definition)
        self._by_category = MappingProxyType({k: tuple(v) for k, v in by_category.items()})
        self._by_activity = MappingProxyType({
            key: tuple(self._by_id[i] for i in ids) for key, ids in activity.items()
        })
        self._badges_by_id = MappingProxyType({b.id: b for b in self._badges})

    @property
    def achievements(self) -> tuple[AchievementDefinition, ...]:
        return self._achievements

    @property
    def badges(self) -> tuple[CustomBadgeDefinition, ...]:
        return self._badges

    @property
    def compound_metrics(self) -> Mapping[str, Callable[["ProfileAccount"], int]]:
        return self._compound

    @property
    def bootstrap_grants(self) -> tuple[str, ...]:
        return self._bootstrap_grants

    def get(self, achievement_id: str) -> AchievementDefinition | None:
        return self._by_id.get(achievement_id)

    def for_category(self, category: AchievementCategory | str) -> tuple[AchievementDefinition, ...]:
        return self._by_category.get(AchievementCategory(category), ())

    def achievements_for_activity(self, activity: ActivityCategory) -> tuple[AchievementDefinition, ...]:
        return self._by_activity.get(activity, ())

    def badge(self, badge_id: str) -> CustomBadgeDefinition | None:
        return self._badges_by_id.get(badge_id)

    def __len__(self) -> int:
        return len(self._achievements)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._by_id


def validate_catalog(
    achievements: tuple[AchievementDefinition, ...],
    badges: tuple[CustomBadgeDefinition, ...],
    activity_table: Mapping[ActivityCategory, tuple[str, ...]],
    compound_metrics: Mapping[str, Callable],
    bootstrap_grants: tuple[str, ...],
) -> None:
    """Raise CatalogError on the first configuration gap found."""
    by_id: dict[str, AchievementDefinition] = {}
    for definition in achievements:
        if definition.id in by_id:
            raise CatalogError(f"Duplicate achievement id: {definition.id}")
        if definition.target <= 0:
            raise CatalogError(f"Achievement {definition.id} must have a positive target")
        if definition.reward.experience_points < 0:
            raise CatalogError(f"Achievement {definition.id} has a negative reward")
        by_id[definition.id] = definition

    reached_by: dict[str, ActivityCategory] = {}
    for activity, ids in activity_table.items():
        for achievement_id in ids:
            if achievement_id not in by_id:
                raise CatalogError(f"Activity {activity.value} references unknown achievement {achievement_id}")
            if achievement_id in reached_by:
                raise CatalogError(
                    f"Achievement {achievement_id} is reachable from both "
                    f"{reached_by[achievement_id].value} and {activity.value}"
                )
            reached_by[achievement_id] = activity

    for achievement_id in (*compound_metrics, *bootstrap_grants):
        if achievement_id not in by_id:
            raise CatalogError(f"Special rule references unknown achievement {achievement_id}")
        if achievement_id in reached_by:
            raise CatalogError(f"Special achievement {achievement_id} is also tied to an activity")

    special = set(compound_metrics) | set(bootstrap_grants)
    for definition in achievements:
        if definition.id not in reached_by and definition.id not in special:
            raise CatalogError(f"Achievement {definition.id} can never be unlocked")

    badge_ids: set[str] = set()
    for badge in badges:
        if badge.id in badge_ids:
            raise CatalogError(f"Duplicate badge id: {badge.id}")
        if badge.id in by_id:
            raise CatalogError(f"Badge id {badge.id} collides with an achievement id")
        badge_ids.add(badge.id)


def build_catalog(
    founder_limit: int | None = None,
    elite_percentile: float | None = None,
) -> Catalog:
    """Build the production catalog with the configured badge cut-offs."""
    from medquest.core.config import settings
    from medquest.services.custom_badges import build_custom_badges

    badges = build_custom_badges(
        founder_limit=founder_limit if founder_limit is not None else settings.founder_limit,
        elite_percentile=elite_percentile if elite_percentile is not None else settings.elite_percentile,
    )
    return Catalog(ACHIEVEMENTS, badges)
