import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskgraph import __version__
from taskgraph.api import api_router
from taskgraph.core.config import settings
from taskgraph.core.exceptions import register_exception_handlers
from taskgraph.core.logger import setup_logging
from taskgraph.db.client import check_database_connection, create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Configure logging and check the task store before serving.
    Tables are created on the fly in development only.
    :param app: FastAPI application
    """
    setup_logging()
    logger.info(
        f"Starting {settings.APP_NAME} {__version__} "
        f"(environment={settings.ENVIRONMENT}, debug={settings.DEBUG})"
    )

    if not await check_database_connection():
        logger.warning("Task store unreachable at startup, requests will fail until it is up")
    elif settings.ENVIRONMENT == "development":
        await create_tables()

    yield

    logger.info(f"Stopping {settings.APP_NAME}")


def create_app() -> FastAPI:
    """
    Build the FastAPI application with routers and error handlers.
    :return: FastAPI application
    """
    docs = settings.DOCS_ENABLED
    app = FastAPI(
        title=settings.APP_NAME,
        description="Task graph engine: anchor dates, completion cascades and role assignment",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "taskgraph.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
