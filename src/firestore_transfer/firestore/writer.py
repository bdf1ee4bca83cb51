"""Batch writer for bulk Firestore imports.

This module partitions a document list into fixed-size runs and writes each
run with retry, backoff and pacing.

Example:
    from firestore_transfer.firestore.writer import BatchWriter, WriteMode

    writer = BatchWriter(client, rate_limiter=limiter)
    result = await writer.upload("my-project", token, "books", documents)
"""

import asyncio
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import httpx
import structlog

from firestore_transfer.firestore.auth import AccessToken
from firestore_transfer.firestore.client import FirestoreClient, describe_error
from firestore_transfer.firestore.codec import TypedValue, encode_fields
from firestore_transfer.firestore.config import WriterConfig
from firestore_transfer.firestore.errors import (
    FatalWriteError,
    InputFormatError,
    TransientWriteError,
)
from firestore_transfer.firestore.rate_limiter import RateLimiter
from firestore_transfer.firestore.retry import RetryPolicy
from firestore_transfer.models import RESERVED_ID_KEY, UploadResult

logger = structlog.get_logger()

T = TypeVar("T")


class WriteMode(Enum):
    """How a batch reaches the database.

    Attributes:
        COMMIT: One atomic ``documents:commit`` call per batch.
        PATCH: One ``PATCH`` per document; any failure fails the batch,
            which is then retried as a whole (PATCH replaces, so replays
            are harmless).
    """

    COMMIT = "commit"
    PATCH = "patch"


@dataclass(frozen=True)
class PreparedDocument:
    """A document with its final id and encoded fields.

    Attributes:
        id: Caller-supplied ``_id`` or a synthesized ``doc_<timestamp>_<index>``.
        fields: Typed values, reserved id key removed.
    """

    id: str
    fields: Dict[str, TypedValue]


def partition(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into contiguous runs of ``size``; the last may be shorter."""
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


def _check_document_id(doc_id: str, index: int) -> None:
    if not doc_id or "/" in doc_id or doc_id in (".", ".."):
        raise InputFormatError(
            f"Invalid document id {doc_id!r}",
            details=f"Document {index}: ids must be non-empty, must not contain '/' "
            "and must not be '.' or '..'",
        )


class BatchWriter:
    """Writes document sets to one collection in paced, retried batches.

    For each run of ``batch_size`` documents:

    1. Commit the run (atomic commit or per-document PATCH)
    2. On failure, retry the same run with exponential backoff
    3. After the retry ceiling, stop; earlier runs stay committed
    4. After each successful run, wait ``inter_batch_delay_seconds``

    Attributes:
        write_mode: How batches are written.
        batch_size: Default run length.
    """

    def __init__(
        self,
        client: FirestoreClient,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[WriterConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the batch writer.

        Args:
            client: Firestore REST client.
            rate_limiter: Optional limiter shared with other writers.
            config: Writer settings. Uses defaults if not provided.
            retry_policy: Commit retry policy. Defaults to
                ``max_retries`` attempts starting at ``retry_base_delay_seconds``.
            sleep: Awaitable sleep used for backoff and pacing.
            clock: Source of the current UNIX time, used in synthesized ids.
        """
        self._client = client
        self._rate_limiter = rate_limiter
        self._config = config or WriterConfig()
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=self._config.max_retries,
            base_delay_seconds=self._config.retry_base_delay_seconds,
        )
        self._sleep = sleep
        self._clock = clock
        self.write_mode = WriteMode(self._config.write_mode)
        self.batch_size = self._config.batch_size

    def prepare(self, documents: Sequence[Dict[str, Any]]) -> List[PreparedDocument]:
        """Assign ids and encode fields.

        A caller-supplied ``_id`` (string or integer) is used and stripped
        from the fields; otherwise ``doc_<timestamp>_<index>`` is synthesized,
        with ``index`` counted across the whole call so ids stay unique within
        it.

        Raises:
            InputFormatError: If a supplied id is not a string or integer, or
                is not a valid document id.
        """
        timestamp = int(self._clock() * 1000)
        prepared: List[PreparedDocument] = []

        for index, document in enumerate(documents):
            raw_id = document.get(RESERVED_ID_KEY)
            fields = {k: v for k, v in document.items() if k != RESERVED_ID_KEY}

            if raw_id is None or raw_id == "":
                doc_id = f"doc_{timestamp}_{index}"
            elif isinstance(raw_id, str) or (
                isinstance(raw_id, int) and not isinstance(raw_id, bool)
            ):
                doc_id = str(raw_id)
                _check_document_id(doc_id, index)
            else:
                raise InputFormatError(
                    f"Invalid document id {raw_id!r}",
                    details=f"Document {index}: {RESERVED_ID_KEY} must be a string or an integer",
                )

            prepared.append(PreparedDocument(id=doc_id, fields=encode_fields(fields)))

        return prepared

    async def write(
        self,
        project_id: str,
        token: AccessToken,
        collection: str,
        documents: Sequence[Dict[str, Any]],
        batch_size: Optional[int] = None,
    ) -> int:
        """Write ``documents`` and return how many were committed.

        Raises:
            InputFormatError: If a supplied document id is invalid.
            FatalWriteError: If a batch still fails after the retry ceiling.
        """
        size = batch_size or self.batch_size
        prepared = self.prepare(documents)
        batches = partition(prepared, size)
        uploaded = 0

        logger.info(
            "collection_upload_started",
            collection=collection,
            documents=len(prepared),
            batches=len(batches),
            batch_size=size,
            write_mode=self.write_mode.value,
        )

        for number, batch in enumerate(batches, 1):
            try:
                await self._retry_policy.run(
                    self._commit_batch,
                    project_id,
                    token,
                    collection,
                    batch,
                    retry_on=TransientWriteError,
                    sleep=self._sleep,
                    label=f"commit:{collection}",
                )
            except TransientWriteError as e:
                logger.error(
                    "batch_commit_failed",
                    collection=collection,
                    batch=number,
                    attempts=self._retry_policy.max_attempts,
                    documents_uploaded=uploaded,
                    error=e.message,
                )
                raise FatalWriteError(
                    f"Batch commit failed for {collection} after "
                    f"{self._retry_policy.max_attempts} attempts",
                    collection=collection,
                    attempts=self._retry_policy.max_attempts,
                    documents_uploaded=uploaded,
                    details=e.details or e.message,
                ) from e

            uploaded += len(batch)
            logger.info(
                "batch_committed",
                collection=collection,
                batch=number,
                of=len(batches),
                documents=len(batch),
                progress_percent=round(uploaded / len(prepared) * 100),
            )

            await self._sleep(self._config.inter_batch_delay_seconds)

        return uploaded

    async def upload(
        self,
        project_id: str,
        token: AccessToken,
        collection: str,
        documents: Sequence[Dict[str, Any]],
        batch_size: Optional[int] = None,
    ) -> UploadResult:
        """Write ``documents`` and report the outcome as an UploadResult.

        Write failures do not raise; they are reported in the result with
        the count of documents committed before the failure. An empty
        document list is a successful no-op (0 of 0 uploaded).
        """
        try:
            uploaded = await self.write(project_id, token, collection, documents, batch_size)
        except FatalWriteError as e:
            return UploadResult(
                collection=collection,
                documents_uploaded=e.documents_uploaded,
                total_documents=len(documents),
                success=False,
                error=e.message,
                details=e.details,
            )
        except InputFormatError as e:
            return UploadResult(
                collection=collection,
                total_documents=len(documents),
                success=False,
                error=e.message,
                details=e.details,
            )

        return UploadResult(
            collection=collection,
            documents_uploaded=uploaded,
            total_documents=len(documents),
            success=True,
        )

    def expected_commits(self, document_count: int, batch_size: Optional[int] = None) -> int:
        """Number of batches ``document_count`` documents are split into."""
        return math.ceil(document_count / (batch_size or self.batch_size))

    async def _commit_batch(
        self,
        project_id: str,
        token: AccessToken,
        collection: str,
        batch: List[PreparedDocument],
    ) -> None:
        """Write one batch once.

        Raises:
            TransientWriteError: If the batch was not (fully) written.
        """
        logger.debug("committing_batch", collection=collection, documents=len(batch))

        if self.write_mode is WriteMode.COMMIT:
            writes = [
                {
                    "update": {
                        "name": self._client.document_name(project_id, collection, doc.id),
                        "fields": doc.fields,
                    }
                }
                for doc in batch
            ]
            await self._send(
                collection,
                self._client.commit(project_id, token, writes),
            )
            return

        for doc in batch:
            await self._send(
                collection,
                self._client.patch_document(project_id, token, collection, doc.id, doc.fields),
                doc_id=doc.id,
            )

    async def _send(
        self,
        collection: str,
        request: Awaitable[httpx.Response],
        doc_id: Optional[str] = None,
    ) -> None:
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        try:
            response = await request
        except httpx.TransportError as e:
            raise TransientWriteError(
                f"Write request failed for {collection}",
                collection=collection,
                details=str(e),
            ) from e

        if not response.is_success:
            target = f"{collection}/{doc_id}" if doc_id else collection
            logger.debug(
                "write_rejected",
                target=target,
                status_code=response.status_code,
                response_body=response.text,
            )
            raise TransientWriteError(
                f"Write rejected for {target}: HTTP {response.status_code}",
                collection=collection,
                status_code=response.status_code,
                details=describe_error(response),
            )
