"""GET /auth/me: who does this bearer token belong to, right now.

Same error taxonomy as /oauth/userinfo.  Licensing in the response is the
tenant's current licence, not whatever the token carried when it was
signed.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tenant_idp.api.dependencies import require_identity
from tenant_idp.models.principal import Identity

router = APIRouter(tags=["profile"])


class MeOut(BaseModel):
    user_id: str
    tenant_id: str
    email: str
    role: str
    licensed_modules: list[str]
    subscription_tier: str


@router.get("/auth/me", response_model=MeOut)
async def get_me(identity: Annotated[Identity, Depends(require_identity)]) -> MeOut:
    return MeOut(
        user_id=identity.user_id,
        tenant_id=identity.tenant_id,
        email=identity.email,
        role=identity.role,
        licensed_modules=list(identity.licensed_modules),
        subscription_tier=identity.subscription_tier,
    )
