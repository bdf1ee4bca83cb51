"""
Core data models for the Firestore transfer client.

All data structures exchanged between the reader, the writer, the
processor and the outer surfaces (CLI, HTTP service) are defined here.
Report models serialize with camelCase keys, which is the shape the
upload/backup UI renders.
"""

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Reserved key carrying a caller-supplied document id
RESERVED_ID_KEY = "_id"

REQUIRED_KEY_FIELDS: tuple[str, ...] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "auth_uri",
    "token_uri",
    "auth_provider_x509_cert_url",
    "client_x509_cert_url",
)


class ServiceAccountKey(BaseModel):
    """A Google service account key file.

    Only built after the structural check passed, so every field is present
    and non-empty. Unknown keys (e.g. ``universe_domain``) are ignored.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = Field(description="Always 'service_account'")
    project_id: str = Field(description="Project the key belongs to")
    private_key_id: str = Field(description="Identifier of the key pair")
    private_key: str = Field(repr=False, description="PEM-encoded PKCS8 RSA private key")
    client_email: str = Field(description="Service account email (JWT issuer)")
    client_id: str = Field(description="Numeric OAuth2 client id")
    auth_uri: str = Field(description="OAuth2 authorization endpoint")
    token_uri: str = Field(description="OAuth2 token endpoint")
    auth_provider_x509_cert_url: str = Field(description="Issuer certificate URL")
    client_x509_cert_url: str = Field(description="Service account certificate URL")


class Document(BaseModel):
    """A single document of a collection, in native (decoded) form."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Document id, last segment of the resource name")
    fields: dict[str, Any] = Field(default_factory=dict, description="Decoded field values")

    def to_native(self) -> dict[str, Any]:
        """Return the backup shape: ``{"id": ..., **fields}``."""
        return {"id": self.id, **self.fields}


class CollectionListing(BaseModel):
    """Documents read from one collection.

    ``truncated`` is set when the service reported more pages than the single
    page that was read.
    """
    model_config = ConfigDict(frozen=True)

    collection: str = Field(description="Collection id")
    documents: list[Document] = Field(default_factory=list)
    truncated: bool = Field(default=False, description="More documents exist than were read")

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape of a backup entry."""
        return {
            "collection": self.collection,
            "documents": [doc.to_native() for doc in self.documents],
            "truncated": self.truncated,
        }


class DataFile(BaseModel):
    """A named JSON data file destined for one collection."""
    model_config = ConfigDict(frozen=True)

    filename: str = Field(min_length=1, description="Original file name, extension included")
    content: Union[str, bytes] = Field(
        description="Raw file contents; bytes are decoded as UTF-8 when parsed"
    )


class UploadResult(BaseModel):
    """Outcome of uploading one data file."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    collection: str = Field(description="Target collection name")
    documents_uploaded: int = Field(default=0, ge=0)
    total_documents: int = Field(default=0, ge=0)
    success: bool = Field(default=False)
    error: str | None = Field(default=None, description="Short error message")
    details: str | None = Field(default=None, description="Error details")


class UploadSummary(BaseModel):
    """Aggregate counts across all files of one upload call."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    total_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    total_documents_uploaded: int = 0

    @classmethod
    def from_results(cls, results: list[UploadResult]) -> "UploadSummary":
        """Aggregate per-file results."""
        return cls(
            total_files=len(results),
            successful_files=sum(1 for r in results if r.success),
            failed_files=sum(1 for r in results if r.error is not None),
            total_documents_uploaded=sum(r.documents_uploaded for r in results),
        )


class UploadReport(BaseModel):
    """Full report of an upload call, as rendered by the UI."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool
    results: list[UploadResult] = Field(default_factory=list)
    summary: UploadSummary = Field(default_factory=UploadSummary)

    @property
    def errors(self) -> list[UploadResult]:
        """Results that carry an error."""
        return [r for r in self.results if r.error is not None]

    def to_payload(self) -> dict[str, Any]:
        """Return the ``{success, results, summary, errors}`` JSON shape."""
        return {
            "success": self.success,
            "results": [r.model_dump(by_alias=True, exclude_none=True) for r in self.results],
            "summary": self.summary.model_dump(by_alias=True),
            "errors": [r.model_dump(by_alias=True, exclude_none=True) for r in self.errors],
        }
