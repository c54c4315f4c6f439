"""Seed script — populates the mock backend with sample member accounts."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from recovery_service.database.engine import async_session_factory, init_db
from recovery_service.models.account import Account

SAMPLE_ACCOUNTS = [
    Account(
        card_number="12345678901",
        registration="100201",
        name="Alice Johnson",
        email="alice@example.com",
        mobile="(11) 98765-4321",
    ),
    Account(
        card_number="12345678902",
        registration="100202",
        name="Bob Smith",
        email="bob@example.com",
        mobile=None,
    ),
    Account(
        card_number="22233344455",
        registration="200301",
        name="Carol Davis",
        email=None,
        mobile="5521912345678",
    ),
    Account(
        card_number="99988877766",
        registration="200302",
        name="Dan Wilson",
        email="dan@example.com",
        mobile="12345",
    ),
]


async def seed() -> None:
    """Insert sample accounts into the database."""
    await init_db()
    async with async_session_factory() as session:
        session: AsyncSession
        for account in SAMPLE_ACCOUNTS:
            session.add(account)
        await session.commit()
    print(f"✅ Seeded {len(SAMPLE_ACCOUNTS)} accounts into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
