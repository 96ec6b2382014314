"""Custom badge definitions.

Each predicate receives the account and a ``BadgeLookups`` object and returns
a bool (or an awaitable of one). Predicates only read; awarding is done by
``BadgeEvaluator``.
"""

import math
from datetime import date, timedelta

from medquest.core.utils import ensure_utc
from medquest.models.achievement import BadgeRarity
from medquest.services.catalog import CustomBadgeDefinition


# =============================================================================
# PREDICATE HELPERS
# =============================================================================

def _last_active_hour(account) -> int | None:
    last_active = ensure_utc(account.last_active_at)
    return last_active.hour if last_active else None


def _last_active_on(account, day: date) -> bool:
    last_active = ensure_utc(account.last_active_at)
    return last_active is not None and last_active.date() == day


def _joined_between(account, start: date, end: date) -> bool:
    joined = ensure_utc(account.created_at)
    return joined is not None and start <= joined.date() <= end


def first_week(account, lookups) -> bool:
    joined = ensure_utc(account.created_at)
    if joined is None:
        return False
    active_for_a_week = lookups.now() - joined >= timedelta(days=7)
    tools_used = account.total_chats + account.total_reports + account.total_vision_analyses
    return active_for_a_week and tools_used >= 5


def early_bird(account, lookups) -> bool:
    hour = _last_active_hour(account)
    return hour is not None and hour < 8


def night_owl(account, lookups) -> bool:
    hour = _last_active_hour(account)
    return hour is not None and 0 <= hour < 5


def weekend_warrior(account, lookups) -> bool:
    last_active = ensure_utc(account.last_active_at)
    return last_active is not None and last_active.weekday() >= 5


async def social_butterfly(account, lookups) -> bool:
    return await lookups.team_count(account) >= 3


async def team_leader(account, lookups) -> bool:
    return await lookups.captains_top_team(account, top=10)


async def ultimate_champion(account, lookups) -> bool:
    completed, total = await lookups.achievement_completion(account)
    return total > 0 and completed == total


def perfectionist(account, lookups) -> bool:
    return (
        account.total_chats >= 50
        and account.total_reports >= 50
        and account.total_vision_analyses >= 50
        and account.total_runs >= 100
    )


def _founder(limit: int):
    async def founder(account, lookups) -> bool:
        return await lookups.registration_position(account) <= limit
    return founder


def _elite_athlete(percentile: float):
    async def elite_athlete(account, lookups) -> bool:
        rank, total = await lookups.experience_rank(account)
        if total == 0:
            return False
        return rank <= max(1, math.ceil(total * percentile))
    return elite_athlete


def _badge(id, name, icon, rarity, description, predicate) -> CustomBadgeDefinition:
    return CustomBadgeDefinition(
        id=id,
        name=name,
        icon=icon,
        rarity=rarity,
        description=description,
        predicate=predicate,
    )


_R = BadgeRarity


def build_custom_badges(founder_limit: int = 10, elite_percentile: float = 0.01) -> tuple[CustomBadgeDefinition, ...]:
    """Return every custom badge, grouped by rarity in display order."""
    return (
        # Common
        _badge("newcomer", "Newcomer", "🌱", _R.COMMON, "Welcome to MedQuest",
               lambda account, lookups: True),
        _badge("first_week", "First Week", "📅", _R.COMMON, "Stayed active through your first week", first_week),
        _badge("early_bird", "Early Bird", "🐦", _R.COMMON, "Active before 8 AM", early_bird),
        _badge("night_owl", "Night Owl", "🦉", _R.COMMON, "Active between midnight and 5 AM", night_owl),
        _badge("weekend_warrior", "Weekend Warrior", "🎯", _R.COMMON, "Active on a weekend", weekend_warrior),

        # Uncommon
        _badge("speed_demon", "Speed Demon", "⚡", _R.UNCOMMON, "Reach 25 km/h on a run",
               lambda account, lookups: account.best_speed_kmh >= 25),
        _badge("marathon_master", "Marathon Master", "🏃‍♂️", _R.UNCOMMON, "Run a marathon distance in total",
               lambda account, lookups: account.total_distance_km >= 42.195),
        _badge("social_butterfly", "Social Butterfly", "🦋", _R.UNCOMMON, "Join 3 or more teams", social_butterfly),
        _badge("territory_king", "Territory King", "👑", _R.UNCOMMON, "Capture 100 territories",
               lambda account, lookups: account.total_territories >= 100),
        _badge("challenge_hunter", "Challenge Hunter", "🎯", _R.UNCOMMON, "Complete 50 challenges",
               lambda account, lookups: account.total_challenges >= 50),
        _badge("health_advocate", "Health Advocate", "💚", _R.UNCOMMON, "Analyze 50 medical reports",
               lambda account, lookups: account.total_reports >= 50),
        _badge("vision_expert", "Vision Expert", "👁️", _R.UNCOMMON, "Analyze 25 medical images",
               lambda account, lookups: account.total_vision_analyses >= 25),
        _badge("helpful_hero", "Helpful Hero", "🦸‍♂️", _R.UNCOMMON, "Help 50 other users",
               lambda account, lookups: account.helped_users >= 50),
        _badge("motivator", "Motivator", "💪", _R.UNCOMMON, "Send 100 motivational messages",
               lambda account, lookups: account.motivations >= 100),

        # Rare
        _badge("legendary_runner", "Legendary Runner", "🏆", _R.RARE, "Run 1000 km in total",
               lambda account, lookups: account.total_distance_km >= 1000),
        _badge("leaderboard_champion", "Leaderboard Champion", "🥇", _R.RARE, "Reach first place on the leaderboard",
               lambda account, lookups: account.leaderboard_rank == 1),
        _badge("team_leader", "Team Leader", "⭐", _R.RARE, "Captain a top 10 team", team_leader),
        _badge("consistency_champion", "Consistency Champion", "🔥", _R.RARE, "Keep a 100 day streak",
               lambda account, lookups: account.streak_days >= 100),
        _badge("wellness_guru", "Wellness Guru", "🧘", _R.RARE, "Reach level 25",
               lambda account, lookups: account.level >= 25),
        _badge("territory_overlord", "Territory Overlord", "🏰", _R.RARE, "Capture 500 territories",
               lambda account, lookups: account.total_territories >= 500),
        _badge("speed_of_light", "Speed of Light", "💫", _R.RARE, "Reach 30 km/h on a run",
               lambda account, lookups: account.best_speed_kmh >= 30),
        _badge("valentine_2025", "Valentine 2025", "💝", _R.RARE, "Active on Valentine's Day 2025",
               lambda account, lookups: _last_active_on(account, date(2025, 2, 14))),
        _badge("new_year_2025", "New Year 2025", "🎉", _R.RARE, "Joined in the first week of 2025",
               lambda account, lookups: _joined_between(account, date(2025, 1, 1), date(2025, 1, 7))),
        _badge("halloween_2024", "Halloween 2024", "🎃", _R.RARE, "Active on Halloween 2024",
               lambda account, lookups: _last_active_on(account, date(2024, 10, 31))),
        _badge("christmas_2024", "Christmas 2024", "🎄", _R.RARE, "Active on Christmas Day 2024",
               lambda account, lookups: _last_active_on(account, date(2024, 12, 25))),
        _badge("ambassador", "Ambassador", "🎖️", _R.RARE, "Refer 25 new users",
               lambda account, lookups: account.referrals >= 25),

        # Legendary
        _badge("immortal", "Immortal", "💎", _R.LEGENDARY, "Keep a 365 day streak",
               lambda account, lookups: account.streak_days >= 365),
        _badge("ultimate_champion", "Ultimate Champion", "👑", _R.LEGENDARY, "Complete every achievement",
               ultimate_champion),
        _badge("world_conqueror", "World Conqueror", "🌍", _R.LEGENDARY, "Capture 1000 territories",
               lambda account, lookups: account.total_territories >= 1000),
        _badge("ultra_marathon", "Ultra Marathon", "🦸", _R.LEGENDARY, "Run 5000 km in total",
               lambda account, lookups: account.total_distance_km >= 5000),
        _badge("centurion", "Centurion", "💯", _R.LEGENDARY, "Reach level 100",
               lambda account, lookups: account.level >= 100),
        _badge("founder", "Founder", "🌟", _R.LEGENDARY, f"One of the first {founder_limit} members",
               _founder(founder_limit)),
        _badge("perfectionist", "Perfectionist", "✨", _R.LEGENDARY, "Master every health tool and log 100 runs",
               perfectionist),
        _badge("completionist_pro", "Completionist Pro", "🏅", _R.LEGENDARY, "Earn 30 badges",
               lambda account, lookups: len(account.badges) >= 30),
        _badge("elite_athlete", "Elite Athlete", "⚡", _R.LEGENDARY, f"Rank in the top {elite_percentile:.0%} by experience",
               _elite_athlete(elite_percentile)),
    )
