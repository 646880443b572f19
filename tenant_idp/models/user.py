from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

DEFAULT_SUBSCRIPTION_TIER = "free"


@dataclass(frozen=True, slots=True)
class Tenant:
    """A customer organization: the unit of licensing.

    licensed_modules is ordered as stored; callers treat it as a set.
    """

    id: str
    name: str
    subdomain: str
    licensed_modules: tuple[str, ...] = ()
    subscription_tier: str = DEFAULT_SUBSCRIPTION_TIER

    @staticmethod
    def new(
        *,
        name: str,
        subdomain: str,
        licensed_modules: tuple[str, ...] = (),
        subscription_tier: str = DEFAULT_SUBSCRIPTION_TIER,
    ) -> Tenant:
        return Tenant(
            id=str(uuid4()),
            name=name,
            subdomain=subdomain,
            licensed_modules=tuple(licensed_modules),
            subscription_tier=subscription_tier or DEFAULT_SUBSCRIPTION_TIER,
        )


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    name: str
    role: str
    tenant: Tenant
    password_hash: str = ""
    email_verified: bool = False

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    @staticmethod
    def new(
        *,
        email: str,
        name: str,
        tenant: Tenant,
        role: str = "user",
        password_hash: str = "",
        email_verified: bool = False,
    ) -> User:
        # Keep creation centralized so email normalization lives in one place.
        return User(
            id=str(uuid4()),
            email=email.strip().lower(),
            name=name,
            role=role,
            tenant=tenant,
            password_hash=password_hash,
            email_verified=email_verified,
        )
