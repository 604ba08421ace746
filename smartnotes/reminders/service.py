import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from smartnotes.agenda.api import router as agenda_router
from smartnotes.core.config import settings as core_settings
from .api import router as reminders_router
from .config import settings
from .runtime import ReminderRuntime, build_runtime


def create_app(runtime: Optional[ReminderRuntime] = None) -> FastAPI:
    """Reminder service app. A runtime passed in is used as is and not closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = runtime is None
        app.state.runtime = runtime or build_runtime()
        try:
            yield
        finally:
            if owned:
                app.state.runtime.close()

    logging.basicConfig(
        level=core_settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = FastAPI(title=f"{core_settings.PROJECT_NAME} Reminder Service", lifespan=lifespan)
    if runtime is not None:
        app.state.runtime = runtime
    app.include_router(reminders_router, prefix="/api/v1/reminders", tags=["reminders"])
    app.include_router(agenda_router, prefix="/api/v1/agenda", tags=["agenda"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()
