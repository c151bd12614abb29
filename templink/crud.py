from typing import List, Optional

from sqlalchemy import and_, case, false, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AnalyticsEvent, Link, Token, User

# Link CRUD

async def insert_link(db: AsyncSession, link: Link) -> Link:
    """Adds and commits; IntegrityError on a duplicate id or slug is left to the caller."""
    db.add(link)
    await db.commit()
    return link


async def get_link_by_id(db: AsyncSession, link_id: str) -> Optional[Link]:
    result = await db.execute(
        select(Link).where(Link.id == link_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_link(db: AsyncSession, id_or_slug: str) -> Optional[Link]:
    result = await db.execute(
        select(Link)
        .where(or_(Link.id == id_or_slug, Link.custom_slug == id_or_slug), Link.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def identifier_in_use(db: AsyncSession, identifier: str) -> bool:
    """True if any link, active or not, already owns this identifier."""
    result = await db.execute(
        select(Link.id).where(or_(Link.id == identifier, Link.custom_slug == identifier)).limit(1)
    )
    return result.first() is not None


async def claim_view(db: AsyncSession, link_id: str, now: int) -> bool:
    """Atomically take one view from a link.

    The increment only applies while the link is still redeemable, and the
    same statement switches the link off when this view reaches the cap.
    Does not commit.
    """
    result = await db.execute(
        update(Link)
        .where(
            Link.id == link_id,
            Link.is_active.is_(True),
            or_(Link.max_views.is_(None), Link.current_views < Link.max_views),
            or_(Link.expires_at.is_(None), Link.expires_at > now),
        )
        .values(
            current_views=Link.current_views + 1,
            is_active=case(
                (and_(Link.max_views.is_not(None), Link.current_views + 1 >= Link.max_views), false()),
                else_=Link.is_active,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def deactivate_link(db: AsyncSession, link_id: str) -> bool:
    result = await db.execute(
        update(Link)
        .where(Link.id == link_id, Link.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0


async def deactivate_expired_links(db: AsyncSession, now: int) -> int:
    result = await db.execute(
        update(Link)
        .where(Link.expires_at.is_not(None), Link.expires_at <= now, Link.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def list_recent_links(db: AsyncSession, limit: int = 20) -> List[Link]:
    result = await db.execute(
        select(Link).order_by(Link.created_at.desc()).limit(limit).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def owner_stats(db: AsyncSession, owner_id: str) -> tuple[int, int]:
    result = await db.execute(
        select(func.count(Link.id), func.coalesce(func.sum(Link.current_views), 0)).where(Link.owner_id == owner_id)
    )
    count, views = result.one()
    return int(count), int(views)

# Analytics

def add_event(db: AsyncSession, event: AnalyticsEvent) -> AnalyticsEvent:
    """Stages an event in the caller's transaction."""
    db.add(event)
    return event


async def recent_events(db: AsyncSession, link_id: str, limit: int = 100) -> List[AnalyticsEvent]:
    result = await db.execute(
        select(AnalyticsEvent)
        .where(AnalyticsEvent.link_id == link_id)
        .order_by(AnalyticsEvent.accessed_at.desc(), AnalyticsEvent.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())

# User CRUD

async def get_user_by_id(db: AsyncSession, user_id: str, active_only: bool = True) -> Optional[User]:
    stmt = select(User).where(User.id == user_id)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str, active_only: bool = True) -> Optional[User]:
    stmt = select(User).where(User.email == email)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def email_taken(db: AsyncSession, email: str, exclude_user_id: Optional[str] = None) -> bool:
    stmt = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await db.execute(stmt.limit(1))
    return result.first() is not None

# Token CRUD

async def get_token_by_secret(db: AsyncSession, secret: str) -> Optional[Token]:
    result = await db.execute(
        select(Token).where(Token.secret == secret).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_token(db: AsyncSession, token_id: str, kind: str, now: int) -> bool:
    """Marks a token used only if it is still unused, unexpired and of this kind."""
    result = await db.execute(
        update(Token)
        .where(Token.id == token_id, Token.kind == kind, Token.used.is_(False), Token.expires_at > now)
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def invalidate_tokens(db: AsyncSession, user_id: str, kind: str) -> int:
    """Marks every outstanding token of a kind used. Does not commit."""
    result = await db.execute(
        update(Token)
        .where(Token.user_id == user_id, Token.kind == kind, Token.used.is_(False))
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
