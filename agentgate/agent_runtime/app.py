from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger

from agentgate.agent_runtime.bus import EventBus
from agentgate.agent_runtime.execution.engine import ClaudeEngine
from agentgate.agent_runtime.execution.permissions import PermissionBroker
from agentgate.agent_runtime.log import setup_logging
from agentgate.agent_runtime.managers.sessions import SessionManager
from agentgate.agent_runtime.registry import SessionRegistry
from agentgate.agent_runtime.settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, json=settings.log_json, log_file=settings.log_file)

    logger.info("agentgate starting (host={}, port={})", settings.host, settings.port)
    logger.info("Default working directory: {}", settings.default_cwd)

    # -- Shared components (owned by this app instance) ------------------------
    registry = SessionRegistry()
    bus = EventBus()
    broker = PermissionBroker(registry, bus.publish)
    engine = ClaudeEngine(
        include_partial_messages=settings.include_partial_messages,
        setting_sources=settings.setting_sources,
    )

    _app.state.registry = registry
    _app.state.event_bus = bus
    _app.state.session_manager = SessionManager(
        registry=registry,
        bus=bus,
        engine=engine,
        broker=broker,
        settings=settings,
    )
    logger.info("SessionManager: initialised")

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("agentgate shutting down (active_runs={})", registry.active_count)

    # 1. Stop accepting new runs.
    registry.begin_shutdown()

    # 2. Wait for active runs to complete naturally.
    if registry.active_count > 0:
        timeout = settings.graceful_shutdown_timeout
        logger.info("Waiting for {} active runs to finish (timeout={}s)...", registry.active_count, timeout)
        drained = await registry.wait_until_drained(timeout=timeout)
        if not drained:
            # Last resort: cancel remaining runs.  Pending decisions resolve to deny.
            cancelled = registry.cancel_all()
            logger.warning("Cancelled {} runs after timeout", cancelled)
            await registry.wait_until_drained(timeout=5.0)

    # 3. End SSE streams.  Must happen AFTER the drain so that observers
    #    receive the terminal status events before their feed closes.
    bus.close()
    logger.info("SSE: signalled streams to close")


app = FastAPI(title="agentgate", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from agentgate.agent_runtime.routers.sessions import events_router  # noqa: E402
from agentgate.agent_runtime.routers.sessions import router as sessions_router  # noqa: E402

api.include_router(sessions_router)
api.include_router(events_router)

app.include_router(api)
