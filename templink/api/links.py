from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..database import get_db
from ..errors import LinkNotFound
from ..models import Plan, User
from ..observability import LINKS_CREATED_TOTAL
from ..schemas import AnalyticsResponse, LinkCreate, LinkResponse, LinkSummary
from ..services.links import LinkService
from ..services.rate_limiter import api_rate_limit, client_ip
from .deps import RequirePlan, get_current_user, get_current_user_optional, get_link_service

router = APIRouter(prefix="/links", tags=["links"], dependencies=[Depends(api_rate_limit)])


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_in: LinkCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    links: LinkService = Depends(get_link_service),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    link = await links.create(
        db,
        original_url=link_in.url,
        expires_in_seconds=link_in.expires_in,
        max_views=link_in.max_views,
        password=link_in.password or None,
        custom_slug=link_in.custom_slug or None,
        creator_ip=client_ip(request),
        owner_id=current_user.id if current_user else None,
    )
    LINKS_CREATED_TOTAL.inc()

    base_url = request.app.state.settings.BASE_URL.rstrip("/")
    return LinkResponse(
        id=link.id,
        short_url=f"{base_url}/{link.id}",
        original_url=link.original_url,
        created_at=link.created_at,
        expires_at=link.expires_at,
        max_views=link.max_views,
        has_password=link.password_digest is not None,
    )


@router.get("", response_model=List[LinkSummary])
async def recent_links(
    limit: int = 20,
    db: AsyncSession = Depends(get_db),
    links: LinkService = Depends(get_link_service),
    _: User = Depends(RequirePlan(Plan.BUSINESS)),
):
    rows = await links.recent_links(db, min(max(limit, 1), 100))
    return [LinkSummary.model_validate(row) for row in rows]


@router.get("/{link_id}/analytics", response_model=AnalyticsResponse)
async def link_analytics(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    links: LinkService = Depends(get_link_service),
):
    report = await links.analytics_report(db, link_id)
    if report is None:
        raise LinkNotFound()
    return AnalyticsResponse.model_validate(report)


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    links: LinkService = Depends(get_link_service),
    current_user: User = Depends(get_current_user),
):
    link = await crud.get_link_by_id(db, link_id)
    # Other people's links look the same as missing ones.
    if link is None or link.owner_id != current_user.id:
        raise LinkNotFound()
    await links.deactivate(db, link.id)
    return None
