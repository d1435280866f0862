# catalog_sync/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from catalog_sync.core.config import get_settings
from catalog_sync.core.logging_config import configure_logging
from catalog_sync.database import async_session, engine, init_models
from catalog_sync.scheduler import SyncScheduler
from catalog_sync.services.sync_orchestrator import SyncOrchestrator
from catalog_sync.services.vendors.setup import build_registry, seed_vendor_definitions


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    if engine.dialect.name == "sqlite":
        await init_models(engine)

    registry = build_registry(settings=settings)
    async with async_session() as session:
        await seed_vendor_definitions(session, registry)

    orchestrator = SyncOrchestrator(async_session, registry, settings)
    await orchestrator.start()

    sync_scheduler = SyncScheduler(orchestrator, settings)
    sync_scheduler.start()

    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.scheduler = sync_scheduler

    yield

    await sync_scheduler.stop()
    await orchestrator.stop()
    await engine.dispose()


app = FastAPI(
    title="Catalog Sync",
    description="Vendor catalog synchronization engine",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "ok",
        "vendors": app.state.registry.slugs() if hasattr(app.state, "registry") else [],
        "scheduler": scheduler.status()["status"] if scheduler else "not_initialized",
    }
