import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from webanalyzer.api_routers.v1 import api_router
from webanalyzer.features.analysis.dependencies import build_components
from webanalyzer.features.health.routes.health import router as health_router
from webanalyzer.platform.config import settings
from webanalyzer.platform.exceptions import add_exception_handlers
from webanalyzer.platform.logger import LOG_FORMAT

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.SKIP_DB:
        from webanalyzer.platform.db.session import init_models

        await init_models()

    components = await build_components()
    app.state.components = components

    worker_task = None
    if settings.RUN_EMBEDDED_WORKER:
        logger.info("Starting embedded analysis worker")
        worker_task = asyncio.create_task(components.worker.run_forever())

    try:
        yield
    finally:
        components.worker.stop()
        if worker_task is not None:
            await worker_task
        await components.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Queue websites for technology, SEO, performance, accessibility and security analysis",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": f"{settings.APP_NAME} API",
            "description": "Asynchronous website analysis service.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
