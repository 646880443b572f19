"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_idp.db.tables import TenantRow, UserRow
from tenant_idp.models.user import DEFAULT_SUBSCRIPTION_TIER, Tenant, User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy.

    Takes a session factory rather than a session: the OAuth core does
    single reads per request, each in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_user_by_id(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            stmt = select(UserRow).where(UserRow.id == user_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else row_to_user(row)

    async def find_user_by_email(self, email: str) -> User | None:
        async with self._session_factory() as session:
            stmt = select(UserRow).where(UserRow.email == email.strip().lower())
            row = (await session.execute(stmt)).scalar_one_or_none()
            return None if row is None else row_to_user(row)

    async def update_password_hash(self, user_id: str, password_hash: str) -> None:
        async with self._session_factory() as session:
            stmt = (
                update(UserRow)
                .where(UserRow.id == user_id)
                .values(password_hash=password_hash)
            )
            await session.execute(stmt)
            await session.commit()


def row_to_tenant(row: TenantRow) -> Tenant:
    return Tenant(
        id=row.id,
        name=row.name,
        subdomain=row.subdomain,
        licensed_modules=tuple(row.licensed_modules or ()),
        subscription_tier=row.subscription_tier or DEFAULT_SUBSCRIPTION_TIER,
    )


def row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        role=row.role,
        tenant=row_to_tenant(row.tenant),
        password_hash=row.password_hash or "",
        email_verified=bool(row.email_verified),
    )
