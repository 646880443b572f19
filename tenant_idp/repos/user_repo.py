from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from tenant_idp.models.user import DEFAULT_SUBSCRIPTION_TIER, User


class UserRepo(Protocol):
    """Read side of the user/tenant store used by the OAuth core.

    find_user_by_id returns the user with its tenant's *current* licensing.
    """

    async def find_user_by_id(self, user_id: str) -> User | None: ...
    async def find_user_by_email(self, email: str) -> User | None: ...
    async def update_password_hash(self, user_id: str, password_hash: str) -> None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, User] = {}

    async def find_user_by_id(self, user_id: str) -> User | None:
        return self._by_id.get(user_id)

    async def find_user_by_email(self, email: str) -> User | None:
        wanted = email.strip().lower()
        for user in self._by_id.values():
            if user.email == wanted:
                return user
        return None

    async def update_password_hash(self, user_id: str, password_hash: str) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        self._by_id[user_id] = replace(u, password_hash=password_hash)

    # --- write helpers for dev seeding and tests -------------------------

    def add(self, user: User) -> None:
        if any(u.email == user.email for u in self._by_id.values()):
            raise ValueError("email already exists")
        self._by_id[user.id] = user

    def remove(self, user_id: str) -> None:
        self._by_id.pop(user_id, None)

    def set_tenant_licensing(
        self,
        tenant_id: str,
        licensed_modules: tuple[str, ...],
        subscription_tier: str = DEFAULT_SUBSCRIPTION_TIER,
    ) -> None:
        """Model an admin changing a tenant's licence: every member sees it."""
        for user_id, u in list(self._by_id.items()):
            if u.tenant_id != tenant_id:
                continue
            tenant = replace(
                u.tenant,
                licensed_modules=tuple(licensed_modules),
                subscription_tier=subscription_tier,
            )
            self._by_id[user_id] = replace(u, tenant=tenant)

    def clear(self) -> None:
        self._by_id.clear()
