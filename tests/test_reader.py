"""Unit tests for the document reader.

Tests collection listing, document decoding, truncation flagging and error
mapping.
"""

import httpx
import pytest

from firestore_transfer.firestore.client import FirestoreClient
from firestore_transfer.firestore.errors import StoreReadError
from firestore_transfer.firestore.reader import DocumentReader


class TestListCollections:
    """Tests for DocumentReader.list_collections."""

    async def test_returns_collection_ids(self, fake_apis, access_token) -> None:
        fake_apis.seed("books", {"b1": {"t": "Dune"}})
        fake_apis.seed("users", {})

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            reader = DocumentReader(FirestoreClient(http))
            collections = await reader.list_collections("demo-project", access_token)

        assert collections == ["books", "users"]
        request = fake_apis.requests[0]
        assert request.method == "POST"
        assert request.content == b"{}"

    async def test_empty_database(self, fake_apis, access_token) -> None:
        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            collections = await DocumentReader(FirestoreClient(http)).list_collections(
                "demo-project", access_token
            )
        assert collections == []

    async def test_failure_raises_store_read_error(self, fake_apis, access_token) -> None:
        fake_apis.list_collections_status = 403

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            with pytest.raises(StoreReadError, match="Failed to fetch collection IDs") as exc_info:
                await DocumentReader(FirestoreClient(http)).list_collections(
                    "demo-project", access_token
                )
        assert exc_info.value.status_code == 403
        assert exc_info.value.details == "HTTP 403 Forbidden"


class TestListDocuments:
    """Tests for DocumentReader.list_documents."""

    async def test_documents_decoded_with_ids(self, fake_apis, access_token) -> None:
        fake_apis.seed("books", {"b1": {"t": "Dune", "year": 1965, "tags": ["sf"]}})

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            listing = await DocumentReader(FirestoreClient(http)).list_documents(
                "demo-project", access_token, "books"
            )

        assert listing.collection == "books"
        assert listing.truncated is False
        assert [doc.id for doc in listing.documents] == ["b1"]
        assert listing.documents[0].to_native() == {
            "id": "b1",
            "t": "Dune",
            "year": 1965,
            "tags": ["sf"],
        }

    async def test_next_page_token_marks_truncated(self, fake_apis, access_token) -> None:
        fake_apis.seed("big", {"d1": {"n": 1}})
        fake_apis.next_page_tokens["big"] = "page-2"

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            listing = await DocumentReader(FirestoreClient(http)).list_documents(
                "demo-project", access_token, "big"
            )

        assert listing.truncated is True
        assert listing.to_payload()["truncated"] is True

    async def test_transport_error_raises(self, access_token) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(StoreReadError) as exc_info:
                await DocumentReader(FirestoreClient(http)).list_documents(
                    "demo-project", access_token, "books"
                )
        assert exc_info.value.collection == "books"

    async def test_error_body_summarized(self, access_token) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                json={
                    "error": {
                        "code": 403,
                        "status": "PERMISSION_DENIED",
                        "message": "Missing or insufficient permissions.",
                        "details": [{"reason": "internal trace"}],
                    }
                },
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(StoreReadError) as exc_info:
                await DocumentReader(FirestoreClient(http)).list_documents(
                    "demo-project", access_token, "books"
                )
        assert exc_info.value.details == (
            "HTTP 403 PERMISSION_DENIED: Missing or insufficient permissions."
        )

    async def test_non_json_listing_raises(self, access_token) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>proxy page</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(StoreReadError, match="response is not JSON"):
                await DocumentReader(FirestoreClient(http)).list_documents(
                    "demo-project", access_token, "books"
                )


class TestReadAll:
    """Tests for DocumentReader.read_all."""

    async def test_reads_every_collection(self, fake_apis, access_token) -> None:
        fake_apis.seed("a", {"1": {"v": 1}})
        fake_apis.seed("b", {"2": {"v": 2}, "3": {"v": 3}})

        async with httpx.AsyncClient(transport=fake_apis.transport()) as http:
            listings = await DocumentReader(FirestoreClient(http)).read_all(
                "demo-project", access_token
            )

        assert [(l.collection, len(l.documents)) for l in listings] == [("a", 1), ("b", 2)]
