"""Firestore REST integration for the transfer client.

This module provides:
- Service account token exchange (signed JWT assertion)
- Conversion between JSON values and Firestore typed values
- Collection listing and document reads
- Batched, retried and rate-limited document writes
- Credential validation and the trusted session
- Orchestration of multi-file uploads and full backups

Example:
    import httpx
    from firestore_transfer.firestore import TransferConfig, TransferProcessor

    async with httpx.AsyncClient() as http:
        processor = TransferProcessor(http, TransferConfig())
        result = await processor.validate(key_json)
        if result.valid:
            report = await processor.upload_files(result.session, files)
"""

# Authentication
from firestore_transfer.firestore.auth import (
    AccessToken,
    TokenProvider,
    create_assertion,
)

# Client
from firestore_transfer.firestore.client import FirestoreClient

# Codec
from firestore_transfer.firestore.codec import (
    decode_fields,
    decode_value,
    encode_fields,
    encode_value,
)

# Configuration
from firestore_transfer.firestore.config import (
    AuthConfig,
    EndpointConfig,
    RateLimitConfig,
    ServiceConfig,
    TransferConfig,
    ValidationConfig,
    WriterConfig,
    load_config,
)

# Errors
from firestore_transfer.firestore.errors import (
    AuthenticationError,
    FatalWriteError,
    FirestoreTransferError,
    InputFormatError,
    ProjectAccessError,
    StoreReadError,
    StructuralCredentialError,
    TransientWriteError,
)

# Ingestion
from firestore_transfer.firestore.ingestion import (
    JsonShape,
    classify,
    normalize,
    parse_data_file,
)

# Processor
from firestore_transfer.firestore.processor import (
    TransferProcessor,
    TransferProgress,
)

# Rate limiting and retry
from firestore_transfer.firestore.rate_limiter import RateLimiter
from firestore_transfer.firestore.retry import RetryPolicy

# Reader
from firestore_transfer.firestore.reader import DocumentReader

# Session
from firestore_transfer.firestore.session import SessionStore

# Validation
from firestore_transfer.firestore.validator import (
    CredentialValidator,
    StructureCheck,
    ValidatedSession,
    VerificationResult,
    parse_service_account,
    validate_structure,
)

# Writer
from firestore_transfer.firestore.writer import (
    BatchWriter,
    WriteMode,
    partition,
)

__all__ = [
    # Authentication
    "AccessToken",
    "TokenProvider",
    "create_assertion",
    # Client
    "FirestoreClient",
    # Codec
    "encode_value",
    "decode_value",
    "encode_fields",
    "decode_fields",
    # Configuration
    "TransferConfig",
    "AuthConfig",
    "EndpointConfig",
    "WriterConfig",
    "RateLimitConfig",
    "ValidationConfig",
    "ServiceConfig",
    "load_config",
    # Ingestion
    "JsonShape",
    "classify",
    "normalize",
    "parse_data_file",
    # Processor
    "TransferProcessor",
    "TransferProgress",
    # Rate limiting and retry
    "RateLimiter",
    "RetryPolicy",
    # Reader
    "DocumentReader",
    # Session
    "SessionStore",
    # Validation
    "CredentialValidator",
    "StructureCheck",
    "ValidatedSession",
    "VerificationResult",
    "parse_service_account",
    "validate_structure",
    # Writer
    "BatchWriter",
    "WriteMode",
    "partition",
    # Errors
    "FirestoreTransferError",
    "StructuralCredentialError",
    "AuthenticationError",
    "ProjectAccessError",
    "StoreReadError",
    "TransientWriteError",
    "FatalWriteError",
    "InputFormatError",
]
