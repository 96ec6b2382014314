"""Tests for AchievementEngine.report_activity.

Covers:
  - Threshold unlocks per category, in declaration order
  - Exactly-once completion under repeated and concurrent reports
  - Monotonic progress and immutable completion timestamps
  - Compound achievements (completionist, dedicated, health_guru)
  - Rank achievements where lower is better
  - Graceful degradation for bad input and internal failures
"""

import asyncio
import math

import pytest
from sqlalchemy import func, select

from medquest.core.exceptions import NotFoundError
from medquest.core.utils import utcnow
from medquest.models import AccountBadge, ProgressRecord
from medquest.models.achievement import Comparison
from medquest.services.achievements import AchievementEngine, next_progress
from medquest.services.catalog import ACHIEVEMENTS, Catalog
from tests.conftest import (
    TestSession,
    create_account,
    load_account,
    load_progress,
    update_account,
)


def _ids(unlocks):
    return [u.achievement_id for u in unlocks]


async def _bootstrapped_account(bootstrapper, **fields):
    """Account that went through bootstrap (300 XP from pioneer + early_adopter)."""
    account = await create_account(**fields)
    await bootstrapper.initialize(account.id)
    return account


async def _badge_count(account_id: int, badge_id: str) -> int:
    async with TestSession() as db:
        result = await db.execute(
            select(func.count(AccountBadge.id)).where(
                AccountBadge.account_id == account_id,
                AccountBadge.badge_id == badge_id,
            )
        )
        return result.scalar()


# =============================================================================
# PURE HELPERS
# =============================================================================

class TestNextProgress:
    """Stored progress never regresses."""

    def test_counter_keeps_maximum(self):
        assert next_progress(3, 5, Comparison.AT_LEAST) == 5
        assert next_progress(5, 3, Comparison.AT_LEAST) == 5

    def test_rank_keeps_best_positive(self):
        assert next_progress(0, 40, Comparison.AT_MOST) == 40
        assert next_progress(40, 60, Comparison.AT_MOST) == 40
        assert next_progress(40, 2, Comparison.AT_MOST) == 2
        assert next_progress(40, 0, Comparison.AT_MOST) == 40


# =============================================================================
# CATEGORY UNLOCKS
# =============================================================================

class TestCategoryUnlocks:
    async def test_chat_thresholds_unlock_one_at_a_time(self, achievement_engine, bootstrapper):
        """Count 1 unlocks only the target-1 achievement; count 5 only adds target-5."""
        account = await _bootstrapped_account(bootstrapper, total_chats=1)

        first = await achievement_engine.report_activity(account.id, "chat", 1)
        assert _ids(first) == ["first_chat"]
        completed_at = (await load_progress(account.id))["first_chat"].completed_at

        await update_account(account.id, total_chats=5)
        second = await achievement_engine.report_activity(account.id, "chat", 5)
        assert _ids(second) == ["chat_5"]

        records = await load_progress(account.id)
        assert records["first_chat"].completed is True
        assert records["first_chat"].completed_at == completed_at
        assert records["chat_5"].completed is True
        assert records["chat_10"].completed is False
        assert records["chat_10"].progress == 5

    async def test_one_report_can_unlock_several(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_runs=12)
        unlocked = await achievement_engine.report_activity(account.id, "run", 12)
        assert _ids(unlocked) == ["first_run", "run_5", "run_10"]

    async def test_unlock_carries_reward_and_level(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_reports=1)
        await update_account(account.id, experience_total=395, level=4)

        [unlock] = await achievement_engine.report_activity(account.id, "report", 1)

        assert unlock.achievement_id == "first_report"
        assert unlock.title == "Report Rookie"
        assert unlock.reward.experience_points == 15
        assert unlock.reward.badge_icon == "📄"
        assert unlock.leveled_up is True
        assert unlock.new_level == 5
        stored = await load_account(account.id)
        assert stored.experience_total == 410
        assert stored.level == 5
        assert "first_report" in {b.badge_id for b in stored.badges}

    async def test_fractional_count_is_floored(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_distance_km=4.9)
        unlocked = await achievement_engine.report_activity(account.id, "distance", 4.9)
        assert _ids(unlocked) == ["distance_1km"]
        assert (await load_progress(account.id))["distance_5km"].progress == 4

    async def test_leaderboard_rank_lower_is_better(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper)

        assert _ids(await achievement_engine.report_activity(account.id, "leaderboard", 40)) == ["top_100", "top_50"]
        # Dropping out of the rankings does not undo progress
        assert await achievement_engine.report_activity(account.id, "leaderboard", 0) == []
        assert (await load_progress(account.id))["top_10"].progress == 40

        # The rank rewards push the account past level 10
        assert _ids(await achievement_engine.report_activity(account.id, "leaderboard", 2)) == [
            "top_10", "top_3", "health_guru",
        ]
        records = await load_progress(account.id)
        assert records["rank_1"].progress == 2
        assert records["rank_1"].completed is False


class TestMonotonicProgress:
    async def test_progress_never_decreases(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper)

        await achievement_engine.report_activity(account.id, "chat", 3)
        assert (await load_progress(account.id))["chat_5"].progress == 3

        await achievement_engine.report_activity(account.id, "chat", 2)
        assert (await load_progress(account.id))["chat_5"].progress == 3

        await achievement_engine.report_activity(account.id, "chat", 4)
        assert (await load_progress(account.id))["chat_5"].progress == 4


# =============================================================================
# EXACTLY-ONCE COMPLETION
# =============================================================================

class TestExactlyOnce:
    async def test_same_count_twice_rewards_once(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_chats=1)

        assert _ids(await achievement_engine.report_activity(account.id, "chat", 1)) == ["first_chat"]
        assert await achievement_engine.report_activity(account.id, "chat", 1) == []
        assert _ids(await achievement_engine.report_activity(account.id, "chat", 7)) == ["chat_5"]

        stored = await load_account(account.id)
        assert stored.experience_total == 300 + 10 + 25
        assert await _badge_count(account.id, "first_chat") == 1

    async def test_concurrent_reports_complete_once(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_chats=5)

        results = await asyncio.gather(
            *(achievement_engine.report_activity(account.id, "chat", 5) for _ in range(5))
        )

        unlocked = sorted(i for result in results for i in _ids(result))
        assert unlocked == ["chat_5", "first_chat"]
        assert (await load_account(account.id)).experience_total == 300 + 10 + 25
        assert await _badge_count(account.id, "first_chat") == 1
        assert await _badge_count(account.id, "chat_5") == 1

    async def test_concurrent_increasing_counts(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper, total_chats=10)

        results = await asyncio.gather(
            achievement_engine.report_activity(account.id, "chat", 10),
            achievement_engine.report_activity(account.id, "chat", 1),
            achievement_engine.report_activity(account.id, "chat", 5),
        )

        unlocked = [i for result in results for i in _ids(result)]
        assert sorted(unlocked) == ["chat_10", "chat_5", "first_chat"]
        assert (await load_account(account.id)).experience_total == 300 + 10 + 25 + 50

    async def test_conditional_claim_has_single_winner(self, bootstrapper):
        """Two sessions that both saw completed=false cannot both claim."""
        account = await _bootstrapped_account(bootstrapper)
        query = select(ProgressRecord).where(
            ProgressRecord.user_id == account.id,
            ProgressRecord.achievement_id == "first_chat",
        )

        async with TestSession() as first, TestSession() as second:
            mine = (await first.execute(query)).scalar_one()
            theirs = (await second.execute(query)).scalar_one()
            assert mine.completed is False and theirs.completed is False

            won = await AchievementEngine.claim_completion(first, mine, 1, utcnow())
            await first.commit()
            lost = await AchievementEngine.claim_completion(second, theirs, 1, utcnow())

            assert won is True
            assert lost is False
            assert theirs.completed is True

    async def test_stale_session_cannot_lower_completed_progress(self, achievement_engine, bootstrapper, catalog):
        """A session that read the record before another completed it keeps the stored count."""
        account = await _bootstrapped_account(bootstrapper)
        definition = catalog.get("chat_10")
        query = select(ProgressRecord).where(
            ProgressRecord.user_id == account.id,
            ProgressRecord.achievement_id == "chat_10",
        )

        async with TestSession() as first, TestSession() as second:
            mine = (await first.execute(query)).scalar_one()
            theirs = (await second.execute(query)).scalar_one()

            assert await AchievementEngine.claim_completion(first, mine, 10, utcnow())
            await first.commit()

            result = await achievement_engine._advance(second, account, theirs, definition, 7)
            await second.commit()
            assert result is None

        record = (await load_progress(account.id))["chat_10"]
        assert record.completed is True
        assert record.progress == 10

    async def test_stale_session_cannot_worsen_rank(self, bootstrapper):
        account = await _bootstrapped_account(bootstrapper)
        query = select(ProgressRecord).where(
            ProgressRecord.user_id == account.id,
            ProgressRecord.achievement_id == "top_3",
        )

        async with TestSession() as first, TestSession() as second:
            mine = (await first.execute(query)).scalar_one()
            theirs = (await second.execute(query)).scalar_one()

            assert await AchievementEngine.store_progress(first, mine, 5, Comparison.AT_MOST)
            await first.commit()
            stored = await AchievementEngine.store_progress(second, theirs, 8, Comparison.AT_MOST)
            await second.commit()

            assert stored is False
            assert theirs.progress == 5

        assert (await load_progress(account.id))["top_3"].progress == 5

    async def test_store_progress_only_raises_counters(self, bootstrapper):
        account = await _bootstrapped_account(bootstrapper)
        async with TestSession() as db:
            record = (await db.execute(
                select(ProgressRecord).where(
                    ProgressRecord.user_id == account.id,
                    ProgressRecord.achievement_id == "chat_50",
                )
            )).scalar_one()
            assert await AchievementEngine.store_progress(db, record, 12, Comparison.AT_LEAST)
            assert not await AchievementEngine.store_progress(db, record, 9, Comparison.AT_LEAST)
            await db.commit()
            assert record.progress == 12


# =============================================================================
# COMPOUND ACHIEVEMENTS
# =============================================================================

class TestCompoundAchievements:
    async def test_completionist_needs_all_four_features(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(
            bootstrapper,
            total_chats=1,
            total_reports=1,
            total_vision_analyses=1,
            total_symptom_checks=0,
        )

        unlocked = await achievement_engine.report_activity(account.id, "vision", 1)
        assert "completionist" not in _ids(unlocked)
        assert (await load_progress(account.id))["completionist"].progress == 3

        await update_account(account.id, total_symptom_checks=1)
        unlocked = await achievement_engine.report_activity(account.id, "symptom", 1)
        assert _ids(unlocked) == ["first_symptom", "completionist"]

        again = await achievement_engine.report_activity(account.id, "chat", 1)
        assert "completionist" not in _ids(again)
        assert await _badge_count(account.id, "completionist") == 1

    async def test_dedicated_counts_all_health_sessions(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(
            bootstrapper,
            total_chats=20,
            total_reports=15,
            total_vision_analyses=10,
            total_symptom_checks=5,
        )
        unlocked = await achievement_engine.report_activity(account.id, "symptom", 5)
        assert _ids(unlocked) == ["first_symptom", "symptom_5", "completionist", "dedicated", "health_guru"]

    async def test_compound_runs_after_category_level_ups(self, achievement_engine, bootstrapper):
        """Level 10 reached through distance rewards unlocks health_guru in the same call."""
        account = await _bootstrapped_account(bootstrapper, total_distance_km=500.0)

        unlocked = await achievement_engine.report_activity(account.id, "distance", 500)

        assert _ids(unlocked) == [
            "distance_1km", "distance_5km", "distance_10km", "distance_25km",
            "distance_50km", "distance_100km", "distance_250km", "distance_500km",
            "health_guru",
        ]
        stored = await load_account(account.id)
        assert stored.experience_total == 300 + 6070 + 300
        assert stored.level == stored.experience_total // 100 + 1


# =============================================================================
# DEGRADATION
# =============================================================================

class TestDegradation:
    async def test_unknown_category_is_noop(self, achievement_engine, bootstrapper):
        account = await _bootstrapped_account(bootstrapper)
        assert await achievement_engine.report_activity(account.id, "yoga", 10) == []

    @pytest.mark.parametrize("count", [-1, math.nan, math.inf, True, "5", None])
    async def test_malformed_count_is_noop(self, achievement_engine, bootstrapper, count):
        account = await _bootstrapped_account(bootstrapper)
        assert await achievement_engine.report_activity(account.id, "chat", count) == []
        assert (await load_progress(account.id))["first_chat"].progress == 0

    async def test_unknown_account_raises(self, achievement_engine):
        with pytest.raises(NotFoundError):
            await achievement_engine.report_activity(555, "chat", 1)

    async def test_account_without_records_is_noop(self, achievement_engine):
        account = await create_account(total_chats=3)
        assert await achievement_engine.report_activity(account.id, "chat", 3) == []
        assert (await load_account(account.id)).experience_total == 0

    async def test_internal_failure_is_logged_and_rolled_back(self, bootstrapper, catalog, locks, caplog):
        def broken(account):
            raise RuntimeError("counter store offline")

        broken_catalog = Catalog(
            ACHIEVEMENTS,
            catalog.badges,
            compound_metrics={
                "completionist": broken,
                "dedicated": lambda account: account.health_sessions,
                "health_guru": lambda account: account.level,
            },
        )
        engine = AchievementEngine(TestSession, broken_catalog, locks)
        account = await _bootstrapped_account(bootstrapper, total_chats=1)

        assert await engine.report_activity(account.id, "chat", 1) == []

        assert "Achievement evaluation failed" in caplog.text
        assert (await load_progress(account.id))["first_chat"].completed is False
        assert (await load_account(account.id)).experience_total == 300
