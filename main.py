import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from dal.session_dal import SessionDAL
from routes.auth_route import router as auth_router
from routes.chat_ws import router as chat_router
from routes.portal_route import router as portal_router
from services.portal_api import PortalApiClient
from services.session_store import SessionStore
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the session database (kept across restarts, at DATABASE_DIR/session.db)
      - the session store loaded from it
      - the HealthNet API client
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    store = SessionStore(SessionDAL(db_initializer))
    await store.load()
    app.state.session_store = store

    app.state.portal_api = PortalApiClient()

    try:
        yield
    finally:
        try:
            await app.state.session_store.persist()
        except Exception:
            LOGGER.exception("Failed to persist session store on shutdown")
        client = getattr(app.state, "portal_api", None)
        if client is not None:
            await client.aclose()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies session store and API client presence.
        """
        has_store = getattr(request.app.state, "session_store", None) is not None
        has_api = getattr(request.app.state, "portal_api", None) is not None
        return {"ok": True, "session_store": has_store, "api_available": has_api}

    # Register application routers; the portal router owns the catch-all and goes last.
    app.include_router(auth_router)
    app.include_router(chat_router)
    app.include_router(portal_router)

    return app


app = create_app()
