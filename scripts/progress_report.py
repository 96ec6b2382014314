"""
Print a progression report for every account.
Run with: python -m scripts.progress_report
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import case, func, select

from medquest.core.database import async_session_maker, engine
from medquest.models.account import AccountBadge, ProfileAccount
from medquest.models.achievement import ProgressRecord


async def progress_report():
    async with async_session_maker() as session:
        accounts = (
            await session.execute(select(ProfileAccount).order_by(ProfileAccount.id))
        ).scalars().all()

        completion = await session.execute(
            select(
                ProgressRecord.user_id,
                func.count(ProgressRecord.id),
                func.sum(case((ProgressRecord.completed.is_(True), 1), else_=0)),
            ).group_by(ProgressRecord.user_id)
        )
        by_user = {user_id: (total, completed or 0) for user_id, total, completed in completion.all()}

        badge_total = (await session.execute(select(func.count(AccountBadge.id)))).scalar() or 0

    if not accounts:
        print("No accounts found.")
        return

    print(f"{len(accounts)} accounts\n")
    for account in accounts:
        total, completed = by_user.get(account.id, (0, 0))
        print(f"[{account.id}] {account.display_name} <{account.email}>")
        print(f"  level {account.level}, {account.experience_total} XP, {len(account.badges)} badges")
        print(f"  achievements: {completed}/{total}" + ("  (not bootstrapped)" if total == 0 else ""))
        print(
            f"  chats={account.total_chats} reports={account.total_reports} "
            f"vision={account.total_vision_analyses} symptoms={account.total_symptom_checks} "
            f"streak={account.streak_days}"
        )
        print(
            f"  runs={account.total_runs} distance={account.total_distance_km:.1f}km "
            f"territories={account.total_territories} challenges={account.total_challenges} "
            f"best_speed={account.best_speed_kmh:.1f}km/h rank={account.leaderboard_rank or '-'}"
        )

    total_xp = sum(a.experience_total for a in accounts)
    unbootstrapped = sum(1 for a in accounts if a.id not in by_user)
    print("\nSummary:")
    print(f"  total XP awarded: {total_xp}")
    print(f"  badges held: {badge_total}")
    print(f"  highest level: {max(a.level for a in accounts)}")
    print(f"  accounts without progress records: {unbootstrapped}")
    await engine.dispose()


def main():
    asyncio.run(progress_report())


if __name__ == "__main__":
    main()
