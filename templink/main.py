import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .api import auth, links
from .api.deps import get_link_service
from .config import Settings, settings as default_settings
from .database import Database, get_db
from .errors import ErrorKind, TemplinkError
from .logging_config import setup_logging
from .middleware import RequestContextMiddleware
from .observability import REDIRECT_TOTAL, PrometheusMiddleware, metrics_endpoint
from .redis import redis_client
from .security import PasswordHasher, SessionSigner
from .services.accounts import AccountService
from .services.cleanup import run_janitor
from .services.links import LinkService, RedeemStatus, RequestContext
from .services.notifications import LoggingNotifier, Notifier
from .services.rate_limiter import client_ip
from .services.tokens import TokenService
from .utils import now_ms

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.EXPIRED: 410,
    ErrorKind.AUTH_REQUIRED: 401,
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INTERNAL: 500,
}

REDIRECT_FAILURES = {
    RedeemStatus.NOT_FOUND: (404, "This link doesn't exist or has expired."),
    RedeemStatus.EXPIRED: (410, "This link has expired or reached its view limit."),
    RedeemStatus.PASSWORD_REQUIRED: (401, "This link requires a password to access."),
    RedeemStatus.PASSWORD_INCORRECT: (401, "Incorrect password. Please try again."),
}


async def templink_error_handler(request: Request, exc: TemplinkError):
    status_code = ERROR_STATUS[exc.kind]
    if status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


def create_app(
    app_settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    notifier: Optional[Notifier] = None,
    clock=now_ms,
) -> FastAPI:
    app_settings = app_settings or default_settings
    database = database or Database(app_settings.DATABASE_URL, echo=app_settings.ENVIRONMENT == "development")

    hasher = PasswordHasher(rounds=app_settings.BCRYPT_ROUNDS)
    signer = SessionSigner(
        app_settings.JWT_SECRET,
        algorithm=app_settings.JWT_ALGORITHM,
        expires_days=app_settings.JWT_EXPIRES_DAYS,
    )
    tokens = TokenService(clock=clock, secret_length=app_settings.TOKEN_SECRET_LENGTH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.open()
        await redis_client.connect(app_settings.REDIS_URL)
        app.state.janitor = None
        if app_settings.CLEANUP_ENABLED:
            app.state.janitor = asyncio.create_task(
                run_janitor(database, app_settings.CLEANUP_INTERVAL_SECONDS, clock)
            )
        yield
        if app.state.janitor is not None:
            app.state.janitor.cancel()
            with suppress(asyncio.CancelledError):
                await app.state.janitor
        await redis_client.close()
        await database.close()

    app = FastAPI(
        title="TempLink",
        description="Disposable, trackable short links",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.database = database
    app.state.signer = signer
    app.state.link_service = LinkService(hasher, clock=clock, id_length=app_settings.SHORT_ID_LENGTH)
    app.state.account_service = AccountService(
        hasher,
        signer,
        tokens,
        notifier or LoggingNotifier(app_settings.EMAIL_FROM),
        base_url=app_settings.BASE_URL,
        clock=clock,
        password_min_length=app_settings.PASSWORD_MIN_LENGTH,
        verification_ttl_minutes=app_settings.VERIFICATION_TOKEN_TTL_MINUTES,
        reset_ttl_minutes=app_settings.RESET_TOKEN_TTL_MINUTES,
    )

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(TemplinkError, templink_error_handler)

    app.add_route("/metrics", metrics_endpoint)
    app.include_router(auth.router, prefix="/api")
    app.include_router(links.router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": clock()}

    @app.get("/{link_id}")
    async def redirect_to_url(
        link_id: str,
        request: Request,
        password: Optional[str] = None,
        db: AsyncSession = Depends(get_db),
        link_service: LinkService = Depends(get_link_service),
    ):
        outcome = await link_service.redeem_identifier(
            db,
            link_id,
            password=password,
            context=RequestContext(
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
                referer=request.headers.get("referer"),
            ),
        )
        REDIRECT_TOTAL.labels(outcome=outcome.status.value).inc()

        if outcome.ok:
            return RedirectResponse(url=outcome.original_url)
        status_code, detail = REDIRECT_FAILURES[outcome.status]
        return JSONResponse(status_code=status_code, content={"error": outcome.status.value, "detail": detail})

    return app


setup_logging(default_settings.LOG_LEVEL)

app = create_app()
