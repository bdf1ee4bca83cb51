"""HTTP service for credential validation, backup and upload.

This module provides a FastAPI application exposing the transfer workflows
to a browser front end. Request bodies are JSON: the service account key and
the data files travel as JSON values.

Uploads are gated on the SessionStore: until a key has passed
``/validate-service-account``, ``/upload-collection`` answers 401 without
contacting the database.

Example:
    # Run locally for testing
    uvicorn firestore_transfer.firestore.service:app --reload

    # Or via python
    python -m firestore_transfer.firestore.service
"""

import asyncio
import os
import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from firestore_transfer import __version__
from firestore_transfer.firestore.config import TransferConfig, load_config
from firestore_transfer.firestore.errors import (
    AuthenticationError,
    FirestoreTransferError,
    StructuralCredentialError,
)
from firestore_transfer.firestore.processor import TransferProcessor
from firestore_transfer.firestore.session import SessionStore
from firestore_transfer.firestore.validator import parse_service_account
from firestore_transfer.models import DataFile

logger = structlog.get_logger()


class ValidateRequest(BaseModel):
    """Request model for credential validation.

    Attributes:
        service_account: The parsed service account key file.
    """
    model_config = ConfigDict(populate_by_name=True)

    service_account: Any = Field(
        ...,
        alias="serviceAccount",
        description="Parsed service account key JSON",
    )


class BackupRequest(BaseModel):
    """Request model for a full backup."""

    credentials: Any = Field(..., description="Parsed service account key JSON")


class UploadRequest(BaseModel):
    """Request model for a multi-file upload."""

    collections: List[DataFile] = Field(
        default_factory=list,
        description="Data files; each becomes the collection named after it",
    )
    batch_size: Optional[int] = Field(
        default=None,
        alias="batchSize",
        ge=1,
        le=500,
        description="Overrides the configured batch size",
    )

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    session_active: bool = Field(alias="sessionActive")

    model_config = ConfigDict(populate_by_name=True)


def create_app(
    config: Optional[TransferConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Transfer configuration. Loaded from the environment if not provided.
        transport: Optional httpx transport for outgoing requests.
        sleep: Awaitable sleep for backoff, pacing and rate limiting.

    Returns:
        Configured FastAPI application.
    """
    config = config or load_config()
    http_client = httpx.AsyncClient(transport=transport)
    processor = TransferProcessor(http_client, config, sleep=sleep)
    sessions = SessionStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await http_client.aclose()

    app = FastAPI(
        title="Firestore Transfer",
        description="Validate service accounts, back up and upload Firestore collections",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.processor = processor
    app.state.sessions = sessions

    if config.service.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.service.allowed_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    def error_response(
        status_code: int, error: str, details: Optional[str] = None, **extra: Any
    ) -> JSONResponse:
        body: Dict[str, Any] = {"success": False, "error": error, **extra}
        if details is not None:
            body["details"] = details
        if config.service.developer_mode and status_code >= 500:
            body["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=status_code, content=body)

    @app.post("/validate-service-account")
    async def validate_service_account(request: ValidateRequest) -> JSONResponse:
        """Validate a key and, when valid, make it the trusted session.

        An invalid key clears any previously trusted session.
        """
        logger.info("validate_request_received")
        try:
            result = await processor.validate(request.service_account)
        except Exception as e:
            sessions.clear()
            logger.error(
                "validate_request_failed",
                error=str(e),
                traceback=traceback.format_exc(),
            )
            return error_response(500, "Validation process failed", str(e))

        sessions.apply(result)
        return JSONResponse(
            status_code=200 if result.valid else 400,
            content=result.to_payload(),
        )

    @app.post("/backup")
    async def backup(request: BackupRequest) -> JSONResponse:
        """Read every root collection of the credential's project."""
        try:
            key = parse_service_account(
                request.credentials, config.validation.service_account_domain
            )
            listings = await processor.backup(key)
        except StructuralCredentialError as e:
            return error_response(400, e.message, e.details, checks=e.flags)
        except AuthenticationError as e:
            return error_response(401, e.message, e.details)
        except FirestoreTransferError as e:
            logger.error("backup_request_failed", error=e.message, details=e.details)
            return error_response(502, "Error processing the backup.", e.message)

        return JSONResponse(
            content={
                "success": True,
                "collections": [listing.to_payload() for listing in listings],
            }
        )

    @app.post("/upload-collection")
    async def upload_collection(request: UploadRequest) -> JSONResponse:
        """Upload data files with the trusted session."""
        try:
            session = sessions.require()
        except AuthenticationError as e:
            logger.warning("upload_rejected_no_session")
            return error_response(401, e.message)

        if not request.collections:
            return error_response(400, "No files uploaded")

        try:
            report = await processor.upload_files(
                session, request.collections, batch_size=request.batch_size
            )
        except AuthenticationError as e:
            return error_response(401, e.message, e.details)
        except Exception as e:
            logger.error(
                "upload_request_failed",
                error=str(e),
                traceback=traceback.format_exc(),
            )
            return error_response(500, "Error uploading collections", str(e))

        return JSONResponse(content=report.to_payload())

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Check service health."""
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(),
            version=__version__,
            session_active=sessions.current is not None,
        )

    @app.exception_handler(FirestoreTransferError)
    async def transfer_error_handler(request: Request, exc: FirestoreTransferError) -> JSONResponse:
        logger.error("unhandled_transfer_error", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=500, content={"success": False, **exc.to_payload()})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
