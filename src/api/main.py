"""FastAPI application entry point."""
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from api.routers import auth, bookmarks, health, pages
from core.config import Settings, get_settings
from core.redis import RedisClient
from db.session import create_engine, create_session_factory, create_tables
from schemas.identity import Identity
from services.change_feed import ChangeFeed, RedisChangeFeed
from services.record_store import RecordStore, SQLAlchemyRecordStore
from services.session_provider import (
    DevSessionProvider,
    OAuthSessionProvider,
    SessionProvider,
)
from services.view_session import ViewSessionRegistry


logger = logging.getLogger(__name__)

# Paths served without a browser view session
SESSIONLESS_PREFIXES = ("/health", "/docs", "/openapi.json")


@dataclass
class AppServices:
    """Collaborators shared by every view session, built once per process."""

    registry: ViewSessionRegistry
    record_store: RecordStore
    change_feed: ChangeFeed
    engine: AsyncEngine | None = None
    redis_client: RedisClient | None = None

    async def aclose(self) -> None:
        await self.registry.close_all()
        await self.change_feed.close()
        if self.redis_client is not None:
            await self.redis_client.close()
        if self.engine is not None:
            await self.engine.dispose()


def session_provider_factory(settings: Settings) -> Callable[[], SessionProvider]:
    """Per-view-session provider: a fixed local identity in dev mode, Google OAuth otherwise."""
    if settings.dev_mode:
        identity = Identity(id=settings.dev_user_id, email=settings.dev_user_email)
        return lambda: DevSessionProvider(identity)
    return lambda: OAuthSessionProvider(
        settings.google_client_id,
        settings.google_client_secret,
    )


async def build_services(settings: Settings) -> AppServices:
    """Connect to Redis and the database and wire the record store."""
    redis_client = RedisClient(settings.redis_url, enabled=settings.redis_enabled)
    await redis_client.connect()
    change_feed = RedisChangeFeed(redis_client)

    engine = create_engine(settings.database_url)
    if settings.dev_mode:
        await create_tables(engine)
    record_store = SQLAlchemyRecordStore(create_session_factory(engine), change_feed)

    registry = ViewSessionRegistry(
        session_provider_factory(settings),
        record_store,
        idle_timeout=settings.session_idle_timeout,
        max_sessions=settings.max_view_sessions,
    )
    return AppServices(
        registry=registry,
        record_store=record_store,
        change_feed=change_feed,
        engine=engine,
        redis_client=redis_client,
    )


def create_app(
    settings: Settings | None = None,
    services: AppServices | None = None,
) -> FastAPI:
    """
    Build the application.

    Pass `services` to substitute collaborators (tests); otherwise they are
    built from settings when the app starts.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.services is None
        if owned:
            app.state.services = await build_services(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
                app.state.services = None

    app = FastAPI(
        title="Smart Bookmark Manager",
        description="Save, list and delete bookmarks, kept in sync across devices.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def view_session_cookie(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Attach the browser's view session, creating one on first visit."""
        if request.url.path.startswith(SESSIONLESS_PREFIXES):
            return await call_next(request)

        cookie_name = settings.session_cookie_name
        cookie = request.cookies.get(cookie_name)
        view = await request.app.state.services.registry.get_or_create(cookie)
        request.state.view_session = view
        response = await call_next(request)
        if view.session_id != cookie:
            response.set_cookie(
                cookie_name,
                view.session_id,
                httponly=True,
                samesite="lax",
                secure=settings.cookie_secure,
            )
        return response

    app.include_router(health.router)
    app.include_router(pages.router)
    app.include_router(auth.router)
    app.include_router(bookmarks.router)
    return app
