from __future__ import annotations

from dataclasses import dataclass

from tenant_idp.models.user import User


@dataclass(frozen=True, slots=True)
class Identity:
    """Authorization-relevant identity recovered from a bearer credential.

    Produced by the SessionResolver.  licensed_modules and subscription_tier
    always come from the user/tenant store, never from the token, because
    an admin may have changed the tenant's licence after the token was
    issued.
    """

    user_id: str
    tenant_id: str
    email: str
    role: str
    licensed_modules: tuple[str, ...]
    subscription_tier: str

    @staticmethod
    def from_user(user: User) -> Identity:
        return Identity(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            role=user.role,
            licensed_modules=user.tenant.licensed_modules,
            subscription_tier=user.tenant.subscription_tier,
        )

    def has_module(self, module: str) -> bool:
        return module in self.licensed_modules
