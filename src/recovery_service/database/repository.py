"""Account repository — data access for the mock legacy backend."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_service.models.account import Account


class AccountRepository:
    """Encapsulates all database queries related to member accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_card_number(self, card_number: str) -> Account | None:
        """Look up an active account by its card number (digits only)."""
        stmt = select(Account).where(
            Account.card_number == card_number, Account.is_active.is_(True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
