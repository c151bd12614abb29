"""Link lifecycle: creation, validity, redemption, deactivation, analytics."""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..errors import IdentifierExhausted, InvalidInput, InvalidSlug, InvalidUrl, SlugTaken
from ..models import AnalyticsEvent, Link
from ..security import PasswordHasher
from ..utils import generate_random_code, now_ms

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,64}$")

# Path segments the HTTP layer serves itself.
RESERVED_SLUGS = frozenset({
    "api", "health", "metrics", "docs", "redoc", "openapi.json",
    "favicon.ico", "robots.txt", "static", "verify", "reset-password",
})

ALLOWED_SCHEMES = ("http", "https")
GENERATE_ATTEMPTS = 5
RECENT_VISITS_LIMIT = 100
# Keep expires_at and max_views inside the BigInteger and Integer columns.
MAX_EXPIRES_IN_SECONDS = 10 * 365 * 24 * 3600
MAX_VIEWS_LIMIT = 2**31 - 1


class RedeemStatus(str, enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_INCORRECT = "password_incorrect"


@dataclass(frozen=True)
class RedeemOutcome:
    status: RedeemStatus
    original_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is RedeemStatus.SUCCESS


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass
class AnalyticsReport:
    total_views: int
    max_views: Optional[int]
    remaining_views: Optional[int]
    created_at: int
    expires_at: Optional[int]
    is_active: bool
    original_url: str
    recent_visits: List[AnalyticsEvent] = field(default_factory=list)


def validate_url(original_url: str) -> str:
    if not isinstance(original_url, str):
        raise InvalidUrl()
    candidate = original_url.strip()
    try:
        parsed = urlparse(candidate)
    except ValueError:
        raise InvalidUrl()
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc or not parsed.hostname:
        raise InvalidUrl()
    return candidate


def validate_slug(slug: str) -> str:
    if not SLUG_PATTERN.match(slug):
        raise InvalidSlug()
    if slug.lower() in RESERVED_SLUGS:
        raise InvalidSlug(f"'{slug}' is reserved")
    return slug


class LinkService:
    def __init__(
        self,
        hasher: PasswordHasher,
        clock: Callable[[], int] = now_ms,
        generate_id: Callable[[int], str] = generate_random_code,
        id_length: int = 8,
    ):
        self.hasher = hasher
        self.clock = clock
        self.generate_id = generate_id
        self.id_length = id_length

    async def create(
        self,
        db: AsyncSession,
        original_url: str,
        expires_in_seconds: Optional[int] = None,
        max_views: Optional[int] = None,
        password: Optional[str] = None,
        custom_slug: Optional[str] = None,
        creator_ip: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Link:
        original_url = validate_url(original_url)
        if max_views is not None and not 1 <= max_views <= MAX_VIEWS_LIMIT:
            raise InvalidInput(f"maxViews must be between 1 and {MAX_VIEWS_LIMIT}")
        if expires_in_seconds is not None and expires_in_seconds > MAX_EXPIRES_IN_SECONDS:
            raise InvalidInput(f"expiresIn must be at most {MAX_EXPIRES_IN_SECONDS} seconds")

        if custom_slug:
            link_id = validate_slug(custom_slug)
            # Slugs stay reserved after deactivation.
            if await crud.identifier_in_use(db, link_id):
                raise SlugTaken()
        else:
            for _ in range(GENERATE_ATTEMPTS):
                link_id = self.generate_id(self.id_length)
                if not await crud.identifier_in_use(db, link_id):
                    break
            else:
                raise IdentifierExhausted()

        created_at = self.clock()
        expires_at = None
        if expires_in_seconds and expires_in_seconds > 0:
            expires_at = created_at + expires_in_seconds * 1000

        link = Link(
            id=link_id,
            original_url=original_url,
            created_at=created_at,
            expires_at=expires_at,
            max_views=max_views,
            current_views=0,
            password_digest=self.hasher.hash(password) if password else None,
            custom_slug=custom_slug or None,
            creator_ip=creator_ip,
            owner_id=owner_id,
            is_active=True,
        )
        try:
            await crud.insert_link(db, link)
        except IntegrityError:
            await db.rollback()
            if custom_slug:
                raise SlugTaken()
            # A generated id lost a race with another insert.
            raise IdentifierExhausted()

        logger.info(
            "Link created",
            extra={"link_id": link.id, "has_password": link.password_digest is not None},
        )
        return link

    async def resolve(self, db: AsyncSession, id_or_slug: str) -> Optional[Link]:
        return await crud.get_active_link(db, id_or_slug)

    def check_validity(self, link: Link) -> bool:
        if not link.is_active:
            return False
        if link.expires_at is not None and self.clock() >= link.expires_at:
            return False
        if link.max_views is not None and link.current_views >= link.max_views:
            return False
        return True

    async def redeem(
        self,
        db: AsyncSession,
        link: Optional[Link],
        password: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> RedeemOutcome:
        if link is None:
            return RedeemOutcome(RedeemStatus.NOT_FOUND)

        if not self.check_validity(link):
            await self.deactivate(db, link.id)
            return RedeemOutcome(RedeemStatus.EXPIRED)

        if link.password_digest:
            if not password:
                return RedeemOutcome(RedeemStatus.PASSWORD_REQUIRED)
            if not self.hasher.verify(password, link.password_digest):
                logger.info("Incorrect link password", extra={"link_id": link.id})
                return RedeemOutcome(RedeemStatus.PASSWORD_INCORRECT)

        context = context or RequestContext()
        link_id, original_url = link.id, link.original_url
        now = self.clock()
        if not await crud.claim_view(db, link_id, now):
            # Another redemption took the last view, or the link lapsed meanwhile.
            # The UPDATE matched nothing, so there is nothing to roll back.
            await self.deactivate(db, link_id)
            return RedeemOutcome(RedeemStatus.EXPIRED)

        crud.add_event(
            db,
            AnalyticsEvent(
                link_id=link_id,
                accessed_at=now,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                referer=context.referer,
            ),
        )
        await db.commit()
        return RedeemOutcome(RedeemStatus.SUCCESS, original_url)

    async def redeem_identifier(
        self,
        db: AsyncSession,
        id_or_slug: str,
        password: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> RedeemOutcome:
        """Resolve then redeem. A link that existed but is no longer active reports Expired."""
        link = await self.resolve(db, id_or_slug)
        if link is None and await crud.identifier_in_use(db, id_or_slug):
            return RedeemOutcome(RedeemStatus.EXPIRED)
        return await self.redeem(db, link, password=password, context=context)

    async def deactivate(self, db: AsyncSession, link_id: str) -> None:
        if await crud.deactivate_link(db, link_id):
            logger.info("Link deactivated", extra={"link_id": link_id})

    async def analytics_report(self, db: AsyncSession, link_id: str) -> Optional[AnalyticsReport]:
        link = await crud.get_link_by_id(db, link_id)
        if link is None:
            return None

        remaining = None
        if link.max_views is not None:
            remaining = max(link.max_views - link.current_views, 0)

        return AnalyticsReport(
            total_views=link.current_views,
            max_views=link.max_views,
            remaining_views=remaining,
            created_at=link.created_at,
            expires_at=link.expires_at,
            is_active=link.is_active,
            original_url=link.original_url,
            recent_visits=await crud.recent_events(db, link.id, RECENT_VISITS_LIMIT),
        )

    async def recent_links(self, db: AsyncSession, limit: int = 20) -> List[Link]:
        return await crud.list_recent_links(db, limit)
