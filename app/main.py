import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.v1.dispensations.router import router as dispensations_router
from app.api.v1.school.router import router as school_router
from app.api.v1.teachers.router import router as teachers_router
from app.core.config import Settings, settings as default_settings
from app.core.logging import configure_logging
from app.dispensations.lifecycle import DispensationLifecycle
from app.dispensations.rate_limiter import SubmissionRateLimiter
from app.dispensations.store import DispensationStore, build_store
from app.dispensations.uploads import UPLOADS_URL_PREFIX, AttachmentStorage
from app.dispensations.verifier import ReturnVerifier
from app.geo.geofence import Coordinate, GeoFence
from app.notifications.discord import build_notifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = app.state
    await state.store.init()
    Path(state.settings.uploads_dir).mkdir(parents=True, exist_ok=True)
    sweeper = asyncio.create_task(state.rate_limiter.run_sweeper(state.settings.rate_limit_sweep_seconds))
    logger.info("Dispensation service ready")
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await state.notifier.aclose()
        await state.store.close()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DispensationStore] = None,
    notifier=None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    app = FastAPI(title="Dispensation Tracker", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Components are built once here and injected through app.state
    store = store or build_store(settings)
    notifier = notifier or build_notifier(settings.discord_webhook_url)
    rate_limiter = SubmissionRateLimiter(
        window=settings.submission_window_seconds,
        retention=settings.rate_limit_retention_seconds,
    )
    attachments = AttachmentStorage(settings.uploads_dir, max_bytes=settings.max_upload_bytes)
    fence = GeoFence(
        Coordinate(settings.school_latitude, settings.school_longitude),
        settings.school_radius_meters,
    )
    lifecycle = DispensationLifecycle(store, notifier, rate_limiter, attachments=attachments)

    app.state.settings = settings
    app.state.store = store
    app.state.notifier = notifier
    app.state.rate_limiter = rate_limiter
    app.state.attachments = attachments
    app.state.fence = fence
    app.state.lifecycle = lifecycle
    app.state.verifier = ReturnVerifier(lifecycle, fence)

    # Routers
    app.include_router(dispensations_router)
    app.include_router(teachers_router)
    app.include_router(school_router)

    app.mount(
        UPLOADS_URL_PREFIX,
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
