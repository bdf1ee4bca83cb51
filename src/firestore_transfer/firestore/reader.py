"""Collection and document reader for Firestore backups.

Reads are single-page: ``list_documents`` issues one GET per collection and
does not follow ``nextPageToken``. When the service signals more pages the
listing is flagged ``truncated`` and a warning is logged, so callers can
tell an incomplete backup from a complete one.

Example:
    reader = DocumentReader(client)
    for name in await reader.list_collections("my-project", token):
        listing = await reader.list_documents("my-project", token, name)
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from firestore_transfer.firestore.auth import AccessToken
from firestore_transfer.firestore.client import FirestoreClient, describe_error
from firestore_transfer.firestore.codec import decode_fields
from firestore_transfer.firestore.errors import StoreReadError
from firestore_transfer.models import CollectionListing, Document

logger = structlog.get_logger()


class DocumentReader:
    """Enumerates collections and reads their documents in native form."""

    def __init__(self, client: FirestoreClient) -> None:
        self._client = client

    async def list_collections(self, project_id: str, token: AccessToken) -> List[str]:
        """Return the ids of the root collections.

        Raises:
            StoreReadError: If the listing request fails.
        """
        try:
            response = await self._client.list_collection_ids(project_id, token)
        except httpx.TransportError as e:
            raise StoreReadError(
                "Failed to fetch collection IDs",
                details=str(e),
            ) from e

        if not response.is_success:
            raise StoreReadError(
                f"Failed to fetch collection IDs: {response.reason_phrase}",
                status_code=response.status_code,
                details=describe_error(response),
            )

        data = _response_object(response, "Failed to fetch collection IDs")
        collection_ids = list(data.get("collectionIds") or [])
        logger.info("collections_listed", project_id=project_id, count=len(collection_ids))
        return collection_ids

    async def list_documents(
        self, project_id: str, token: AccessToken, collection: str
    ) -> CollectionListing:
        """Read the first page of documents of ``collection``.

        Raises:
            StoreReadError: If the request fails.
        """
        try:
            response = await self._client.list_documents(project_id, token, collection)
        except httpx.TransportError as e:
            raise StoreReadError(
                f"Failed to fetch documents for {collection}",
                collection=collection,
                details=str(e),
            ) from e

        if not response.is_success:
            raise StoreReadError(
                f"Failed to fetch documents for {collection}: {response.reason_phrase}",
                collection=collection,
                status_code=response.status_code,
                details=describe_error(response),
            )

        data = _response_object(response, f"Failed to fetch documents for {collection}", collection)
        documents = [_to_document(raw) for raw in data.get("documents") or []]
        truncated = bool(data.get("nextPageToken"))

        if truncated:
            logger.warning(
                "collection_listing_truncated",
                collection=collection,
                documents_read=len(documents),
            )

        logger.info("documents_listed", collection=collection, count=len(documents))
        return CollectionListing(collection=collection, documents=documents, truncated=truncated)

    async def read_all(self, project_id: str, token: AccessToken) -> List[CollectionListing]:
        """Read every root collection, one after another."""
        listings: List[CollectionListing] = []
        for collection in await self.list_collections(project_id, token):
            listings.append(await self.list_documents(project_id, token, collection))
        return listings


def _to_document(raw: dict[str, Any]) -> Document:
    return Document(
        id=raw["name"].rsplit("/", 1)[-1],
        fields=decode_fields(raw.get("fields")),
    )


def _response_object(
    response: httpx.Response, message: str, collection: Optional[str] = None
) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise StoreReadError(
            f"{message}: response is not JSON",
            collection=collection,
            status_code=response.status_code,
        ) from e
    if not isinstance(data, dict):
        raise StoreReadError(
            f"{message}: unexpected response shape",
            collection=collection,
            status_code=response.status_code,
        )
    return data
