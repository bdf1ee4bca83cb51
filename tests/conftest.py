"""
Shared pytest fixtures for firestore_transfer tests.

This module provides common fixtures used across test modules including:
- A generated RSA service account key
- A fake Google API backend served through httpx.MockTransport
- Recording sleep and fixed clocks for retry/pacing tests
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from firestore_transfer.firestore.auth import AccessToken
from firestore_transfer.firestore.codec import encode_fields
from firestore_transfer.models import ServiceAccountKey

FIXED_TIME = 1_700_000_000.0
FIXED_NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


# ============================================================================
# Key Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate one RSA key for the whole test session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    """PKCS8 PEM encoding of the test key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def service_account_dict(private_key_pem: str) -> Dict[str, Any]:
    """A structurally valid service account key file, as parsed JSON."""
    return {
        "type": "service_account",
        "project_id": "demo-project",
        "private_key_id": "abc123def456",
        "private_key": private_key_pem,
        "client_email": "importer@demo-project.iam.gserviceaccount.com",
        "client_id": "109876543210",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
        "client_x509_cert_url": (
            "https://www.googleapis.com/robot/v1/metadata/x509/"
            "importer%40demo-project.iam.gserviceaccount.com"
        ),
        "universe_domain": "googleapis.com",
    }


@pytest.fixture
def service_account_key(service_account_dict: Dict[str, Any]) -> ServiceAccountKey:
    """The same key as a ServiceAccountKey model."""
    return ServiceAccountKey.model_validate(service_account_dict)


@pytest.fixture
def access_token() -> AccessToken:
    """A bearer token valid for one hour from FIXED_TIME."""
    issued = datetime.fromtimestamp(FIXED_TIME, tz=timezone.utc)
    return AccessToken(
        value="test-token",
        issued_at=issued,
        expires_at=datetime.fromtimestamp(FIXED_TIME + 3600, tz=timezone.utc),
    )


# ============================================================================
# Fake Google APIs
# ============================================================================


class FakeGoogleApis:
    """In-memory stand-in for the token, Firebase, IAM and Firestore endpoints.

    Stored documents are kept in wire form (typed fields) per collection.
    ``commit_failures`` and ``patch_failures`` script the next commit/PATCH
    calls in order: a status code fails that call, None lets it succeed.
    Failed writes answer with ``write_error_body``; ``keys_raw_body``, when
    set, replaces the IAM key listing with arbitrary bytes.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.token_body: Dict[str, Any] = {
            "access_token": "test-token",
            "expires_in": 3600,
            "token_type": "Bearer",
        }
        self.project_status = 200
        self.project_state = "ACTIVE"
        self.database_status = 200
        self.list_collections_status = 200
        self.keys_status = 200
        self.keys: List[Dict[str, Any]] = [
            {
                "name": "projects/demo-project/serviceAccounts/importer/keys/abc123def456",
                "validAfterTime": "2025-01-01T00:00:00Z",
                "validBeforeTime": "2025-06-11T00:00:00Z",
                "keyAlgorithm": "KEY_ALG_RSA_2048",
                "keyType": "USER_MANAGED",
            }
        ]
        self.store: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.next_page_tokens: Dict[str, str] = {}
        self.commit_failures: List[Optional[int]] = []
        self.patch_failures: List[Optional[int]] = []
        self.write_error_body: Dict[str, Any] = {
            "error": {
                "code": 503,
                "status": "UNAVAILABLE",
                "message": "The service is currently unavailable.",
                "details": [{"debugInfo": "backend shard 7 overloaded"}],
            }
        }
        self.keys_raw_body: Optional[bytes] = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def seed(self, collection: str, documents: Dict[str, Dict[str, Any]]) -> None:
        """Store native documents keyed by id."""
        self.store[collection] = {
            doc_id: encode_fields(fields) for doc_id, fields in documents.items()
        }

    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.store.get(collection, {})

    @property
    def commit_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(":commit")]

    @property
    def patch_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "PATCH"]

    @property
    def write_requests(self) -> List[httpx.Request]:
        return self.commit_requests + self.patch_requests

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        path = request.url.path

        if host == "oauth2.googleapis.com":
            return httpx.Response(self.token_status, json=self.token_body)

        if host == "firebase.googleapis.com":
            if self.project_status != 200:
                return httpx.Response(self.project_status, json={"error": {}})
            return httpx.Response(
                200,
                json={
                    "projectId": "demo-project",
                    "projectNumber": "1234567890",
                    "displayName": "Demo Project",
                    "state": self.project_state,
                },
            )

        if host == "iam.googleapis.com":
            if self.keys_raw_body is not None:
                return httpx.Response(self.keys_status, content=self.keys_raw_body)
            return httpx.Response(self.keys_status, json={"keys": self.keys})

        if path.endswith(":listCollectionIds"):
            if self.list_collections_status != 200:
                return httpx.Response(self.list_collections_status, json={"error": {}})
            return httpx.Response(200, json={"collectionIds": list(self.store)})

        if path.endswith(":commit"):
            status = self.commit_failures.pop(0) if self.commit_failures else None
            if status is not None:
                return httpx.Response(status, json=self.write_error_body)
            writes = json.loads(request.content)["writes"]
            for write in writes:
                collection, doc_id = write["update"]["name"].split("/documents/", 1)[1].split("/")
                self.store.setdefault(collection, {})[doc_id] = write["update"]["fields"]
            return httpx.Response(200, json={"writeResults": [{} for _ in writes]})

        if path.endswith("/databases/(default)"):
            return httpx.Response(self.database_status, json={"name": path})

        relative = path.split("/documents/", 1)[1]

        if request.method == "PATCH":
            status = self.patch_failures.pop(0) if self.patch_failures else None
            if status is not None:
                return httpx.Response(status, json=self.write_error_body)
            collection, doc_id = relative.split("/")
            fields = json.loads(request.content)["fields"]
            self.store.setdefault(collection, {})[doc_id] = fields
            return httpx.Response(200, json={"name": path, "fields": fields})

        collection = relative
        body: Dict[str, Any] = {
            "documents": [
                {
                    "name": f"projects/demo-project/databases/(default)/documents/{collection}/{doc_id}",
                    "fields": fields,
                }
                for doc_id, fields in self.store.get(collection, {}).items()
            ]
        }
        if collection in self.next_page_tokens:
            body["nextPageToken"] = self.next_page_tokens[collection]
        return httpx.Response(200, json=body)


@pytest.fixture
def fake_apis() -> FakeGoogleApis:
    """A fresh fake backend per test."""
    return FakeGoogleApis()


# ============================================================================
# Time Fixtures
# ============================================================================


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fixed_clock():
    """UNIX-time clock frozen at FIXED_TIME."""
    return lambda: FIXED_TIME

