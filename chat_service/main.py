import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from chat_service.config import APP_ENV, HOST, LOG_LEVEL, PORT
from chat_service.dependencies import engine
from chat_service.errors import register_error_handlers
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.message_transport.registry import ConnectionRegistry
from chat_service.models import Base
from chat_service.routes.conversations import router as conversations_router
from chat_service.routes.groups import router as groups_router
from chat_service.routes.session import router as session_router
from chat_service.routes.users import router as users_router
from chat_service.routes.websocket import router as websocket_router

# --- Logging Setup ---
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --- Lifespan Setup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    if APP_ENV in ("development", "test"):
        logger.info("[chat-service] Running in %s mode: creating tables...", APP_ENV)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("[chat-service] Tables created.")

    registry = ConnectionRegistry()
    app.state.registry = registry
    app.state.broadcaster = Broadcaster(registry)
    yield

    await app.state.broadcaster.drain()
    await registry.close_all()
    await engine.dispose()
    logger.info("[chat-service] Lifespan shutdown: cleanup complete")


# --- FastAPI App ---
app = FastAPI(title="wasa-chat", lifespan=lifespan)
register_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %s (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


# --- Routers ---
app.include_router(session_router)
app.include_router(users_router)
app.include_router(conversations_router)
app.include_router(groups_router)
app.include_router(websocket_router)


@app.get("/liveness")
async def liveness():
    return {"status": "ok"}


# --- Dev Entry Point ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chat_service.main:app", host=HOST, port=PORT, reload=APP_ENV == "development")
