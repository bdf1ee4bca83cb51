"""Thin async client for the Firestore, Firebase and IAM REST endpoints.

The client only builds URLs and sends requests with the bearer token; status
interpretation lives with the callers (reader, writer, validator), which
know which failures are fatal and which are retryable.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from firestore_transfer.firestore.auth import AccessToken
from firestore_transfer.firestore.codec import TypedValue
from firestore_transfer.firestore.config import EndpointConfig


class FirestoreClient:
    """REST surface of one Firestore database.

    Example:
        client = FirestoreClient(http, EndpointConfig())
        response = await client.list_collection_ids("my-project", token)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoints: Optional[EndpointConfig] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._http = http_client
        self._endpoints = endpoints or EndpointConfig()
        self._timeout = timeout_seconds

    def database_path(self, project_id: str) -> str:
        """Resource name of the database, e.g. ``projects/p/databases/(default)``."""
        return f"projects/{project_id}/databases/{self._endpoints.database}"

    def document_name(self, project_id: str, collection: str, doc_id: str) -> str:
        """Fully-qualified resource name of a document."""
        return f"{self.database_path(project_id)}/documents/{collection}/{doc_id}"

    def _documents_url(self, project_id: str) -> str:
        return f"{self._endpoints.firestore_url}/v1/{self.database_path(project_id)}/documents"

    async def list_collection_ids(self, project_id: str, token: AccessToken) -> httpx.Response:
        """``POST documents:listCollectionIds`` with an empty body."""
        return await self._http.post(
            f"{self._documents_url(project_id)}:listCollectionIds",
            json={},
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def list_documents(
        self, project_id: str, token: AccessToken, collection: str
    ) -> httpx.Response:
        """``GET documents/{collection}`` (first page only)."""
        return await self._http.get(
            f"{self._documents_url(project_id)}/{quote(collection, safe='')}",
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def patch_document(
        self,
        project_id: str,
        token: AccessToken,
        collection: str,
        doc_id: str,
        fields: Dict[str, TypedValue],
    ) -> httpx.Response:
        """``PATCH documents/{collection}/{id}``: create or replace one document."""
        return await self._http.patch(
            f"{self._documents_url(project_id)}/{quote(collection, safe='')}/{quote(doc_id, safe='')}",
            json={"fields": fields},
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def commit(
        self, project_id: str, token: AccessToken, writes: List[Dict[str, Any]]
    ) -> httpx.Response:
        """``POST documents:commit``: apply ``writes`` atomically."""
        return await self._http.post(
            f"{self._documents_url(project_id)}:commit",
            json={"writes": writes},
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def get_database(self, project_id: str, token: AccessToken) -> httpx.Response:
        """``GET projects/{p}/databases/(default)``."""
        return await self._http.get(
            f"{self._endpoints.firestore_url}/v1/{self.database_path(project_id)}",
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def get_project(self, project_id: str, token: AccessToken) -> httpx.Response:
        """``GET`` Firebase project metadata (reports ``state``)."""
        return await self._http.get(
            f"{self._endpoints.firebase_url}/v1beta1/projects/{project_id}",
            headers=token.authorization_header,
            timeout=self._timeout,
        )

    async def list_service_account_keys(
        self, project_id: str, token: AccessToken, client_email: str
    ) -> httpx.Response:
        """``GET`` the IAM key listing of a service account."""
        return await self._http.get(
            f"{self._endpoints.iam_url}/v1/projects/{project_id}"
            f"/serviceAccounts/{client_email}/keys",
            headers=token.authorization_header,
            timeout=self._timeout,
        )


def describe_error(response: httpx.Response) -> str:
    """Summarize a failed response without echoing its body.

    Google APIs report failures as ``{"error": {"code", "status", "message"}}``;
    only ``status`` and ``message`` are kept. Without a ``status`` the HTTP
    reason phrase stands in.

    Example:
        describe_error(response)  # "HTTP 503 UNAVAILABLE: The service is unavailable."
    """
    try:
        data = response.json()
    except ValueError:
        data = None

    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        error = {}

    summary = f"HTTP {response.status_code} {error.get('status') or response.reason_phrase}"
    message = error.get("message")
    if message:
        summary = f"{summary}: {message}"
    return summary.rstrip()
