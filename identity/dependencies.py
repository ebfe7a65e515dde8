"""
Service wiring for the identity service.

Builds the stores, services and ``AuthGateway`` once at startup and exposes
getters (usable as FastAPI dependencies) for transport adapters.
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.auth import JWTCodec
from common.database import MongoDB, set_main_database
from identity.config import Settings, settings
from identity.gateway import AuthGateway
from identity.schemes import AuthScheme, BearerScheme, SessionScheme
from identity.services import (
    AccountLifecycle,
    EmailService,
    HttpSearchIndex,
    LoggingSearchIndex,
    PasswordHasher,
    SearchIndex,
    SessionManager,
    TaskDispatcher,
    TokenIssuer,
)
from identity.stores import (
    IdentityStore,
    MongoIdentityStore,
    MongoSessionStore,
    MongoTokenStore,
    SessionStore,
    TokenStore,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ─────────────────────────────────────────────────────────────────
# Service singletons
# ─────────────────────────────────────────────────────────────────

_auth_gateway: Optional[AuthGateway] = None
_task_dispatcher: Optional[TaskDispatcher] = None
_stores: tuple = ()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_search_index(config: Settings) -> SearchIndex:
    if config.SEARCH_SERVICE_URL:
        return HttpSearchIndex(config.SEARCH_SERVICE_URL, timeout=config.SEARCH_TIMEOUT_SECONDS)
    return LoggingSearchIndex()


def build_gateway(
    identity_store: IdentityStore,
    token_store: TokenStore,
    session_store: SessionStore,
    config: Settings,
    search_index: Optional[SearchIndex] = None,
    email_service: Optional[EmailService] = None,
    dispatcher: Optional[TaskDispatcher] = None,
) -> AuthGateway:
    """
    Assemble an ``AuthGateway`` over the given stores.

    Args:
        identity_store: Account persistence
        token_store: Refresh token persistence
        session_store: Cookie session persistence
        config: Settings (auth scheme, lifetimes, account rules)
        search_index: Search collaborator (default from SEARCH_SERVICE_URL)
        email_service: Welcome-email sender (default from EMAIL_* settings)
        dispatcher: Background task dispatcher (default: a new one)
    """
    codec = JWTCodec(
        secret=config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
        expire_minutes=config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    )
    token_issuer = TokenIssuer(
        token_store,
        identity_store,
        codec,
        refresh_expire_days=config.REFRESH_TOKEN_EXPIRE_DAYS,
    )
    session_manager = SessionManager(
        session_store,
        identity_store,
        expire_hours=config.SESSION_EXPIRE_HOURS,
    )

    scheme: AuthScheme
    if config.uses_sessions():
        scheme = SessionScheme(session_manager, rotate_on_me=config.SESSION_ROTATE_ON_ME)
    else:
        scheme = BearerScheme(token_issuer, identity_store)

    lifecycle = AccountLifecycle(
        identity_store=identity_store,
        password_hasher=PasswordHasher(rounds=config.PASSWORD_BCRYPT_ROUNDS),
        scheme=scheme,
        token_issuer=token_issuer,
        session_manager=session_manager,
        search_index=search_index or build_search_index(config),
        email_service=email_service or EmailService.from_settings(config),
        dispatcher=dispatcher or TaskDispatcher(),
        config=config,
    )

    logger.info(f"Auth gateway built with {scheme.name} scheme")
    return AuthGateway(lifecycle, scheme, token_issuer)


# ─────────────────────────────────────────────────────────────────
# Initialization functions
# ─────────────────────────────────────────────────────────────────

def init_all_services(db: AsyncIOMotorDatabase, config: Optional[Settings] = None) -> AuthGateway:
    """
    Initialize all services at application startup.

    Args:
        db: Main MongoDB database connection
        config: Settings (default: module-level settings)
    """
    global _auth_gateway, _task_dispatcher, _stores

    config = config or settings
    _stores = (
        MongoIdentityStore(db),
        MongoTokenStore(db),
        MongoSessionStore(db),
    )
    _task_dispatcher = TaskDispatcher()
    _auth_gateway = build_gateway(*_stores, config=config, dispatcher=_task_dispatcher)
    return _auth_gateway


async def ensure_indexes() -> None:
    for store in _stores:
        await store.ensure_indexes()


# ─────────────────────────────────────────────────────────────────
# Getters
# ─────────────────────────────────────────────────────────────────

def get_auth_gateway() -> AuthGateway:
    """Get the auth gateway instance."""
    if _auth_gateway is None:
        raise RuntimeError("Identity services not initialized.")
    return _auth_gateway


def get_task_dispatcher() -> TaskDispatcher:
    """Get the background task dispatcher."""
    if _task_dispatcher is None:
        raise RuntimeError("Identity services not initialized.")
    return _task_dispatcher


AuthGatewayDep = Annotated[AuthGateway, Depends(get_auth_gateway)]


# ─────────────────────────────────────────────────────────────────
# Application lifespan
# ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Connects to MongoDB, builds the services, ensures indexes and schedules
    the startup reindex; on shutdown waits for background tasks and
    disconnects.
    """
    configure_logging(settings.LOG_LEVEL)
    settings.validate_required()
    logger.info(f"Starting identity service ({settings.ENVIRONMENT})...")

    main_db = MongoDB()
    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
        server_selection_timeout_ms=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
    )
    set_main_database(main_db)

    gateway = init_all_services(main_db.db)
    await ensure_indexes()

    if settings.REINDEX_ON_STARTUP:
        get_task_dispatcher().submit(_startup_reindex(gateway), name="startup-reindex")

    logger.info("Identity service started")
    yield

    logger.info("Shutting down identity service...")
    await get_task_dispatcher().drain(timeout=10)
    await main_db.disconnect()
    logger.info("Identity service shut down complete.")


async def _startup_reindex(gateway: AuthGateway) -> None:
    result = await gateway.reindex()
    if not result.ok:
        logger.info(f"Startup reindex skipped: {result.message}")
