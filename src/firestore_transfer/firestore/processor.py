"""Transfer orchestrator.

This module provides the TransferProcessor class that runs the two complete
workflows of the package:

Upload:
1. Obtain a fresh access token for the validated session
2. Parse each data file into a collection of documents
3. Write each collection through the BatchWriter
4. Aggregate per-file results into an UploadReport

Backup:
1. Obtain a fresh access token for the key
2. List root collections
3. Read each collection's documents

Files are processed one after another and a failing file never stops the
others.

Example:
    async with httpx.AsyncClient() as http:
        processor = TransferProcessor(http, config)
        result = await processor.validate(candidate)
        report = await processor.upload_files(result.session, files)
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

import httpx
import structlog

from firestore_transfer.firestore.auth import TokenProvider
from firestore_transfer.firestore.client import FirestoreClient
from firestore_transfer.firestore.config import TransferConfig
from firestore_transfer.firestore.errors import InputFormatError
from firestore_transfer.firestore.ingestion import collection_name_for, parse_data_file
from firestore_transfer.firestore.rate_limiter import RateLimiter
from firestore_transfer.firestore.reader import DocumentReader
from firestore_transfer.firestore.validator import (
    CredentialValidator,
    ValidatedSession,
    VerificationResult,
)
from firestore_transfer.firestore.writer import BatchWriter
from firestore_transfer.models import (
    CollectionListing,
    DataFile,
    ServiceAccountKey,
    UploadReport,
    UploadResult,
    UploadSummary,
)

logger = structlog.get_logger()


@dataclass
class TransferProgress:
    """Progress tracking for a multi-file upload.

    Attributes:
        total_files: Number of files in the call.
        processed_files: Files finished so far, successful or not.
        successful_files: Files fully written.
        failed_files: Files that reported an error.
        current_file: Name of the file being processed.
        current_stage: "parsing" or "writing".
    """

    total_files: int = 0
    processed_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    current_file: Optional[str] = None
    current_stage: Optional[str] = None


class TransferProcessor:
    """Composes validation, ingestion, writing and reading.

    All writers created by one processor share its RateLimiter.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Optional[TransferConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the processor.

        Args:
            http_client: Shared async HTTP client.
            config: Transfer configuration. Uses defaults if not provided.
            sleep: Awaitable sleep for backoff, pacing and rate limiting.
            clock: Source of the current UNIX time.
        """
        self._config = config or TransferConfig()

        self.token_provider = TokenProvider(
            http_client, self._config.auth, sleep=sleep, clock=clock
        )
        self.client = FirestoreClient(http_client, self._config.endpoints)
        self.rate_limiter = RateLimiter(
            max_requests=self._config.rate_limit.max_requests,
            window_seconds=self._config.rate_limit.window_seconds,
            sleep=sleep,
        )
        self.writer = BatchWriter(
            self.client,
            rate_limiter=self.rate_limiter,
            config=self._config.writer,
            sleep=sleep,
            clock=clock,
        )
        self.reader = DocumentReader(self.client)
        self.validator = CredentialValidator(
            self.token_provider, self.client, self._config.validation
        )

    async def validate(self, candidate: Any) -> VerificationResult:
        """Run the staged credential verification."""
        return await self.validator.verify(candidate)

    async def upload_files(
        self,
        session: ValidatedSession,
        files: List[DataFile],
        batch_size: Optional[int] = None,
        progress_callback: Optional[Callable[[TransferProgress], None]] = None,
    ) -> UploadReport:
        """Upload each data file into the collection named after it.

        Args:
            session: Proof of a validated credential.
            files: Data files, processed in order.
            batch_size: Overrides the configured batch size.
            progress_callback: Optional callback for progress updates.

        Returns:
            UploadReport; ``success`` is True when at least one file succeeded.

        Raises:
            AuthenticationError: If no access token can be obtained.
        """
        started_at = datetime.now()
        project_id = session.project_id

        logger.info(
            "upload_started",
            project_id=project_id,
            files=len(files),
            batch_size=batch_size or self.writer.batch_size,
        )

        token = await self.token_provider.get_access_token(session.key)

        progress = TransferProgress(total_files=len(files))
        results: List[UploadResult] = []

        for data_file in files:
            progress.current_file = data_file.filename
            progress.current_stage = "parsing"
            if progress_callback:
                progress_callback(progress)

            try:
                collection, documents = parse_data_file(data_file)
            except InputFormatError as e:
                logger.error(
                    "data_file_rejected",
                    file_name=data_file.filename,
                    error=e.message,
                    details=e.details,
                )
                result = UploadResult(
                    collection=collection_name_for(data_file.filename),
                    success=False,
                    error=e.message,
                    details=e.details,
                )
            else:
                progress.current_stage = "writing"
                if progress_callback:
                    progress_callback(progress)

                result = await self.writer.upload(
                    project_id, token, collection, documents, batch_size=batch_size
                )
                if result.error:
                    logger.error(
                        "collection_upload_failed",
                        collection=collection,
                        documents_uploaded=result.documents_uploaded,
                        total_documents=result.total_documents,
                        error=result.error,
                    )
                else:
                    logger.info(
                        "collection_uploaded",
                        collection=collection,
                        documents=result.documents_uploaded,
                    )

            results.append(result)
            progress.processed_files += 1
            if result.success:
                progress.successful_files += 1
            else:
                progress.failed_files += 1
            if progress_callback:
                progress_callback(progress)

        summary = UploadSummary.from_results(results)
        logger.info(
            "upload_complete",
            project_id=project_id,
            successful_files=summary.successful_files,
            failed_files=summary.failed_files,
            documents=summary.total_documents_uploaded,
            duration_seconds=(datetime.now() - started_at).total_seconds(),
        )

        return UploadReport(
            success=summary.successful_files > 0,
            results=results,
            summary=summary,
        )

    async def backup(self, key: ServiceAccountKey) -> List[CollectionListing]:
        """Read every root collection of the key's project.

        Raises:
            AuthenticationError: If no access token can be obtained.
            StoreReadError: If a listing request fails.
        """
        logger.info("backup_started", project_id=key.project_id)
        token = await self.token_provider.get_access_token(key)
        listings = await self.reader.read_all(key.project_id, token)
        logger.info(
            "backup_complete",
            project_id=key.project_id,
            collections=len(listings),
            documents=sum(len(listing.documents) for listing in listings),
            truncated=[listing.collection for listing in listings if listing.truncated],
        )
        return listings
