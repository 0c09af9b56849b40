"""Seed the database with belt settings and demo data for development."""

import asyncio
import sys
from datetime import UTC, datetime, timedelta

sys.path.insert(0, "src")

# Per-type overrides on top of the model defaults
BELT_SETTINGS = {
    "ROOKIE": {"entry_fee_base": 50, "free_challenges_per_week": 2, "grace_period_days": 14},
    "CATEGORY": {},
    "CHAMPIONSHIP": {"entry_fee_base": 200, "mandatory_defense_days": 45, "max_declines": 1},
    "UNDEFEATED": {"entry_fee_base": 150},
    "TOURNAMENT": {},
}


async def seed():
    from sqlalchemy import select

    from podium.db.models.belt import Belt, BeltSettings
    from podium.db.models.user import User
    from podium.db.session import async_session_factory, engine

    async with async_session_factory() as db:
        existing = set((await db.execute(select(BeltSettings.belt_type))).scalars().all())
        created = 0
        for belt_type, overrides in BELT_SETTINGS.items():
            if belt_type in existing:
                continue
            db.add(BeltSettings(belt_type=belt_type, **overrides))
            created += 1

        users = []
        for i, name in enumerate(["aristotle", "hypatia", "socrates", "wollstonecraft"]):
            user = User(username=name, elo_rating=1200.0 + i * 50, coins=1000)
            db.add(user)
            users.append(user)
        await db.flush()

        # Held long enough that the grace period is over
        belt = Belt(
            name="Open Category Belt",
            type="CATEGORY",
            status="ACTIVE",
            holder_id=users[0].id,
            became_holder_at=datetime.now(UTC) - timedelta(days=31),
        )
        db.add(belt)

        await db.commit()
        print(f"Seeded {created} belt settings rows, {len(users)} users, 1 belt")
        print()
        print("User ids:")
        for user in users:
            print(f"  {user.username}: {user.id}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
