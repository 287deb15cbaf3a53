from contextlib import asynccontextmanager
from datetime import timedelta
from textwrap import dedent
from typing import Optional
import logging
import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute
from fastapi.middleware.cors import CORSMiddleware

from database.mongo_adapter import MongoAdapter
from share_api.adapters.storage import ObjectStore
from share_api.errors import (
    ShareError,
    handle_broad_exceptions,
    handle_pydantic_validation_errors,
    handle_share_errors,
)
from share_api.routers.files import router as files_router
from share_api.routers.health import router as health_router
from share_api.services import AccessTokenService, ListingService, TransferService
from share_api.settings import Settings

# Set up logging
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Set the root log format and level once for the process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def metadata_store_from_settings(settings: Settings) -> MongoAdapter:
    return MongoAdapter(
        connection_string=settings.mongodb_uri,
        database=settings.mongodb_database,
        collection=settings.mongodb_collection,
        timeout_seconds=settings.io_timeout_seconds,
    )


def build_services(app: FastAPI, object_store: ObjectStore, metadata_store: MongoAdapter) -> None:
    """Wire the services around the two store handles and keep them on app state."""
    settings: Settings = app.state.settings
    timeout = settings.io_timeout_seconds

    app.state.object_store = object_store
    app.state.metadata_store = metadata_store
    app.state.transfer_service = TransferService(
        object_store,
        metadata_store,
        io_timeout=timeout,
        retention=timedelta(hours=settings.file_retention_hours),
    )
    app.state.access_token_service = AccessTokenService(
        object_store,
        metadata_store,
        io_timeout=timeout,
        one_time_lifetime=timedelta(minutes=settings.one_time_token_minutes),
        download_url_lifetime=timedelta(minutes=settings.download_url_minutes),
        max_duration=timedelta(minutes=settings.max_token_duration_minutes),
    )
    app.state.listing_service = ListingService(object_store, metadata_store, io_timeout=timeout)


def create_app(
    settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None,
    metadata_store: Optional[MongoAdapter] = None,
) -> FastAPI:
    """
    Create a FastAPI application.

    Store handles may be injected; otherwise they are built from settings
    when the application starts.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_metadata_store = metadata_store is None
        build_services(
            app,
            object_store or ObjectStore.from_settings(settings),
            metadata_store or metadata_store_from_settings(settings),
        )
        logger.info(f"{settings.app_name} started in {settings.deployment_mode} mode")
        try:
            yield
        finally:
            await app.state.transfer_service.wait_for_compensations()
            if owns_metadata_store:
                app.state.metadata_store.close()
            logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title="Secure Share API",
        summary="Share files through one-time and time-limited download links",
        version="v1",
        description=dedent(
            """\
        Files are stored in S3 with their records in MongoDB.

        | Route | Notes |
        | --- | --- |
        | `POST /v1/files` | Upload a file |
        | `POST /v1/files/{file_id}/presigned` | Issue a download token |
        | `GET /v1/files/{file_id}/download` | Redeem a download token |
        """
        ),
        docs_url="/",  # its easier to find the docs when they live on the base url
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings

    app.include_router(files_router, prefix="/v1", tags=["files"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(
        exc_class_or_status_code=ShareError,
        handler=handle_share_errors,
    )
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

    settings = Settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host="0.0.0.0", port=8000)
