import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends

from . import __version__
from .api import (
    metrics_router,
    triggers_router,
    deployments_router,
    experiments_router,
    alerts_router,
    export_router,
)
from .config import get_settings
from .observability import configure_logging
from .services import AlertDispatcher, get_dispatcher, get_metric_feed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

    dispatcher = get_dispatcher()
    dispatcher.start()

    feed = get_metric_feed(settings.metric_feed_url)
    if feed is not None:
        feed.start()

    yield

    if feed is not None and feed.is_running:
        await feed.stop()
    await dispatcher.stop()


app = FastAPI(
    title="releasewatch API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
)

app.include_router(metrics_router, prefix="/api")
app.include_router(triggers_router, prefix="/api")
app.include_router(deployments_router, prefix="/api")
app.include_router(experiments_router, prefix="/api")
app.include_router(alerts_router, prefix="/api")
app.include_router(export_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "releasewatch API",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
async def health(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    ingestion = dispatcher.ingestion.stats()
    triggers = dispatcher.triggers.stats()
    feed = get_metric_feed()

    return {
        "status": "healthy",
        "dispatcher": {
            "is_running": dispatcher.is_running,
            "ticks": dispatcher.stats()["ticks"],
        },
        "ingestion": {
            "samples_ingested": ingestion["samples_ingested"],
            "metrics": ingestion["metrics"],
            "deployments": ingestion["deployments"],
        },
        "triggers": {
            "rules": triggers["rules_count"],
            "enabled": triggers["enabled_rules"],
            "fires": triggers["fires"],
        },
        "metric_feed": feed.stats.to_dict() if feed is not None else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("releasewatch.main:app", host="0.0.0.0", port=8000, reload=True)
