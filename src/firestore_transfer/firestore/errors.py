"""Custom exception classes for the Firestore REST integration.

This module defines the exceptions raised while validating credentials,
exchanging tokens, reading collections, and writing document batches.
Every exception carries a short message plus an optional ``details`` string
so callers can report both without exposing raw protocol payloads.
"""

from typing import Dict, Optional


class FirestoreTransferError(Exception):
    """Base class for all transfer errors.

    Attributes:
        message: Short human-readable message.
        details: Longer explanation, upstream error summary, or None.
    """

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_payload(self) -> Dict[str, str]:
        """Return the ``{error, details}`` payload reported to callers."""
        return {"error": self.message, "details": self.details or ""}


class StructuralCredentialError(FirestoreTransferError):
    """Raised when a service account key is malformed or incomplete.

    This typically occurs when:
    - One of the ten required fields is missing or empty
    - ``type`` is not ``service_account``
    - ``client_email`` is not a service account address
    - ``private_key`` is not a PEM-encoded private key

    Attributes:
        flags: One boolean per structural check that failed.
    """

    def __init__(
        self,
        message: str,
        flags: Optional[Dict[str, bool]] = None,
        details: Optional[str] = None,
    ) -> None:
        self.flags = flags or {}
        super().__init__(message, details)


class AuthenticationError(FirestoreTransferError):
    """Raised when signing the assertion or exchanging it for a token fails.

    This typically occurs when:
    - The private key cannot be parsed as PKCS8 RSA
    - The key was revoked or belongs to a deleted service account
    - The token endpoint rejects the assertion (``invalid_grant``)
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.error_code = error_code
        super().__init__(message, details)


class ProjectAccessError(FirestoreTransferError):
    """Raised when the project is inactive or not accessible.

    To resolve: Ensure the service account has a Firebase role on the
    project and that the project has not been shut down.
    """

    def __init__(
        self,
        message: str,
        project_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        self.project_id = project_id
        self.status_code = status_code
        super().__init__(message, details)


class StoreReadError(FirestoreTransferError):
    """Raised when listing collections or documents fails."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        self.collection = collection
        self.status_code = status_code
        super().__init__(message, details)


class TransientWriteError(FirestoreTransferError):
    """Raised when a single batch commit fails.

    The writer retries the same batch with backoff. This typically occurs when:
    - The service answers 429 (rate limited) or 503 (unavailable)
    - The connection drops mid-request
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        self.collection = collection
        self.status_code = status_code
        super().__init__(message, details)


class FatalWriteError(FirestoreTransferError):
    """Raised when a batch still fails after the retry ceiling.

    Batches committed before the failure remain committed; the rest of the
    collection is not written.

    Attributes:
        attempts: Number of commit attempts made for the failing batch.
        documents_uploaded: Documents committed before the failure.
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        attempts: int = 0,
        documents_uploaded: int = 0,
        details: Optional[str] = None,
    ) -> None:
        self.collection = collection
        self.attempts = attempts
        self.documents_uploaded = documents_uploaded
        super().__init__(message, details)


class InputFormatError(FirestoreTransferError):
    """Raised when a data file is not usable as a collection.

    This typically occurs when:
    - The file is not valid JSON
    - The top level is an empty object
    - The top level is neither an object nor an array
    """

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.file_name = file_name
        super().__init__(message, details)
