from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..database import get_db
from ..errors import AuthRequired, InvalidSession
from ..models import Plan, User
from ..security import SessionSigner
from ..services.accounts import AccountService
from ..services.links import LinkService
from ..services.plans import require_plan

security = HTTPBearer(auto_error=False)


def get_link_service(request: Request) -> LinkService:
    return request.app.state.link_service


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_signer(request: Request) -> SessionSigner:
    return request.app.state.signer


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    signer: SessionSigner = Depends(get_signer),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Anonymous callers and bad tokens both come back as None."""
    if credentials is None:
        return None
    try:
        payload = signer.decode_access_token(credentials.credentials)
    except InvalidSession:
        return None
    return await crud.get_user_by_id(db, payload["sub"])


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    signer: SessionSigner = Depends(get_signer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthRequired("No token provided")
    payload = signer.decode_access_token(credentials.credentials)
    # Reloaded on every request, so plan and deactivation apply immediately.
    user = await crud.get_user_by_id(db, payload["sub"])
    if user is None:
        raise InvalidSession()
    return user


class RequirePlan:
    def __init__(self, plan: Plan):
        self.plan = plan

    async def __call__(self, user: User = Depends(get_current_user)) -> User:
        require_plan(user.plan, self.plan)
        return user
