"""issuebridge FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from issuebridge import __version__, config
from issuebridge.db import connection, migrations
from issuebridge.dispatcher import DestinationHandler
from issuebridge.observability import initialize as initialize_observability, shutdown as shutdown_observability
from issuebridge.pipeline import EventPipeline
from issuebridge.routers.dispatches import dispatches_router
from issuebridge.routers.events import events_router
from issuebridge.routers.projects import projects_router
from issuebridge.routers.subscriptions import subscriptions_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("issuebridge")


def register_destination_handler(app: FastAPI, handler: DestinationHandler) -> None:
    """Install the callback that delivers an event to one Jira subscription."""
    app.state.destination_handler = handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("issuebridge starting up")
    initialize_observability(app)

    db = await connection.get_connection()
    await migrations.run_migrations(db)

    app.state.pipeline = EventPipeline.from_db(db)
    if not hasattr(app.state, "destination_handler"):
        app.state.destination_handler = None
        logger.warning("No destination handler registered; events will only be logged")

    yield

    logger.info("issuebridge shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="issuebridge API",
    description="Delivers source-control events to every Jira site subscribed to them",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(events_router)
app.include_router(subscriptions_router)
app.include_router(projects_router)
app.include_router(dispatches_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection.is_connected() else "disconnected",
        "pipeline": "ready" if getattr(app.state, "pipeline", None) else "starting",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("issuebridge.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
