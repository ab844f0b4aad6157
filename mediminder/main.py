import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from langgraph.checkpoint.sqlite.aio import AsyncSqliteSaver

from mediminder.api.deps import ServiceContainer, build_container
from mediminder.api.routes_chat import router as chat_router
from mediminder.api.routes_dev import notifications_router, router as dev_router
from mediminder.api.routes_doses import router as doses_router
from mediminder.api.routes_medications import router as medications_router
from mediminder.api.routes_prescriptions import router as prescriptions_router
from mediminder.core.config import CHECKPOINT_DB_PATH, DB_PATH, LOG_FILE, LOG_JSON, LOG_LEVEL
from mediminder.core.logging_config import setup_logging
from mediminder.services.kv_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the API; pass a ready container to skip the SQLite-backed wiring (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(LOG_LEVEL, log_file=LOG_FILE, format_json=LOG_JSON)
        async with AsyncExitStack() as stack:
            c = container
            if c is None:
                kv = SqliteKeyValueStore(DB_PATH)
                stack.callback(kv.close)
                CHECKPOINT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
                checkpointer = await stack.enter_async_context(
                    AsyncSqliteSaver.from_conn_string(str(CHECKPOINT_DB_PATH))
                )
                c = build_container(kv, checkpointer)

            await c.scheduler.init()
            c.chat.init()
            app.state.container = c
            logger.info("MediMinder API started")
            try:
                yield
            finally:
                c.chat.teardown()
                await c.scheduler.teardown()
                app.state.container = None
                logger.info("MediMinder API stopped")

    app = FastAPI(title="MediMinder (reminders + LangGraph review)", version="1.0", lifespan=lifespan)

    app.include_router(medications_router)
    app.include_router(doses_router)
    app.include_router(prescriptions_router)
    app.include_router(chat_router)
    app.include_router(notifications_router)
    app.include_router(dev_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def root():
        return {"ok": True, "service": "MediMinder"}

    return app

app = create_app()
