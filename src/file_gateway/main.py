import logging
from contextlib import asynccontextmanager
from textwrap import dedent

import pydantic
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from file_gateway.errors import (
    handle_broad_exceptions,
    handle_pydantic_validation_errors,
)
from file_gateway.logging_config import configure_logging
from file_gateway.routers.files import router as files_router
from file_gateway.routers.health import router as health_router
from file_gateway.service import FileService, build_file_service
from file_gateway.settings import Settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, file_service: FileService | None = None) -> FastAPI:
    """Create a FastAPI application.

    The file service is built on startup and closed on shutdown. Passing
    ``file_service`` skips the build; the app still closes it on shutdown.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        service = file_service or build_file_service(settings)
        app.state.file_service = service
        logger.info(f"File gateway started with {service.blob_store.kind} storage")
        try:
            yield
        finally:
            service.close()
            logger.info("File gateway stopped")

    app = FastAPI(
        title="File Gateway",
        summary="Store and retrieve user files",
        version="v1",
        description=dedent(
            """\
        Upload files to object storage or the local filesystem, keep their
        metadata in an index and download them again by id.
        """
        ),
        docs_url="/",  # its easier to find the docs when they live on the base url
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings

    app.include_router(files_router, prefix="/v1", tags=["files"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.middleware("http")(handle_broad_exceptions)

    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
