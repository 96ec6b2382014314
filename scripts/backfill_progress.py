"""
Bootstrap achievements for every account that has no progress records yet.
Run with: python -m scripts.backfill_progress [--dry-run]
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from medquest.core.config import settings
from medquest.core.database import async_session_maker, engine, init_db
from medquest.core.locks import UserLocks
from medquest.models.account import ProfileAccount
from medquest.models.achievement import ProgressRecord
from medquest.services.achievements import Bootstrapper
from medquest.services.catalog import build_catalog


async def backfill_progress(dry_run: bool = False):
    """Seed progress records for accounts created before achievements existed."""
    await init_db()

    async with async_session_maker() as session:
        seeded = select(ProgressRecord.user_id).distinct()
        result = await session.execute(
            select(ProfileAccount.id)
            .where(ProfileAccount.id.not_in(seeded))
            .order_by(ProfileAccount.id)
        )
        account_ids = list(result.scalars().all())

    if not account_ids:
        print("Every account already has progress records.")
        return

    print(f"Found {len(account_ids)} accounts without progress records.")
    if dry_run:
        for account_id in account_ids:
            print(f"  would bootstrap account {account_id}")
        return

    bootstrapper = Bootstrapper(
        async_session_maker,
        build_catalog(),
        UserLocks(),
        pioneer_limit=settings.pioneer_limit,
    )
    total_records = 0
    total_bonus = 0
    for account_id in account_ids:
        outcome = await bootstrapper.initialize(account_id)
        total_records += outcome.created
        total_bonus += outcome.bonus_experience
        granted = ", ".join(outcome.granted) or "none"
        print(f"  account {account_id}: {outcome.created} records, grants: {granted}, +{outcome.bonus_experience} XP")

    print(f"\nCreated {total_records} progress records, awarded {total_bonus} bonus XP.")
    await engine.dispose()


def main():
    dry_run = "--dry-run" in sys.argv
    asyncio.run(backfill_progress(dry_run))


if __name__ == "__main__":
    main()
