"""Configuration dataclasses for the Firestore transfer client.

This module defines the configuration structure for token exchange, REST
endpoints, batch writing, rate limiting, credential validation, and the
HTTP service.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml  # type: ignore[import-untyped]

# Upper bound imposed by Firestore on writes per commit
MAX_BATCH_SIZE = 500


@dataclass
class AuthConfig:
    """Token exchange configuration."""

    token_uri: str = "https://oauth2.googleapis.com/token"
    scopes: List[str] = field(default_factory=lambda: [
        "https://www.googleapis.com/auth/cloud-platform",
        "https://www.googleapis.com/auth/datastore",
        "https://www.googleapis.com/auth/firebase",
    ])
    token_lifetime_seconds: int = 3600
    # 1 disables retry of the token exchange
    max_attempts: int = 1
    request_timeout_seconds: float = 30.0


@dataclass
class EndpointConfig:
    """Base URLs of the REST APIs consumed."""

    firestore_url: str = "https://firestore.googleapis.com"
    firebase_url: str = "https://firebase.googleapis.com"
    iam_url: str = "https://iam.googleapis.com"
    database: str = "(default)"


@dataclass
class WriterConfig:
    """Batch writer configuration."""

    batch_size: int = 15
    write_mode: str = "commit"  # "commit" or "patch"
    max_retries: int = 3
    retry_base_delay_seconds: float = 2.0
    inter_batch_delay_seconds: float = 1.0


@dataclass
class RateLimitConfig:
    """Rate limiting configuration shared by all writers."""

    max_requests: int = 500
    window_seconds: float = 60.0


@dataclass
class ValidationConfig:
    """Credential verification configuration."""

    check_key_validity: bool = True
    service_account_domain: str = ".gserviceaccount.com"


@dataclass
class ServiceConfig:
    """HTTP service configuration."""

    developer_mode: bool = False
    allowed_origins: List[str] = field(default_factory=list)


@dataclass
class TransferConfig:
    """Main configuration for the transfer client.

    Example:
        config = TransferConfig()
        config.writer.batch_size = 50
        config.rate_limit.max_requests = 300
    """

    auth: AuthConfig = field(default_factory=AuthConfig)
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    writer: WriterConfig = field(default_factory=WriterConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not 1 <= self.writer.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"writer.batch_size must be between 1 and {MAX_BATCH_SIZE}, "
                f"got {self.writer.batch_size}"
            )
        if self.writer.write_mode not in ("commit", "patch"):
            raise ValueError(
                f"writer.write_mode must be 'commit' or 'patch', got {self.writer.write_mode!r}"
            )
        if self.writer.max_retries < 1:
            raise ValueError("writer.max_retries must be at least 1")
        if self.auth.max_attempts < 1:
            raise ValueError("auth.max_attempts must be at least 1")

    @classmethod
    def from_dict(cls, data: Dict) -> "TransferConfig":
        """Create a TransferConfig from a dictionary (e.g., from YAML).

        Args:
            data: Dictionary with configuration values.

        Returns:
            TransferConfig instance with values from the dictionary.

        Raises:
            ValueError: If a setting is out of range.
        """
        config = cls()

        if "auth" in data:
            auth_data = data["auth"]
            config.auth.token_uri = auth_data.get("token_uri", config.auth.token_uri)
            config.auth.scopes = auth_data.get("scopes", config.auth.scopes)
            config.auth.token_lifetime_seconds = auth_data.get(
                "token_lifetime_seconds", config.auth.token_lifetime_seconds
            )
            config.auth.max_attempts = auth_data.get("max_attempts", config.auth.max_attempts)
            config.auth.request_timeout_seconds = auth_data.get(
                "request_timeout_seconds", config.auth.request_timeout_seconds
            )

        if "endpoints" in data:
            endpoint_data = data["endpoints"]
            config.endpoints.firestore_url = endpoint_data.get(
                "firestore_url", config.endpoints.firestore_url
            )
            config.endpoints.firebase_url = endpoint_data.get(
                "firebase_url", config.endpoints.firebase_url
            )
            config.endpoints.iam_url = endpoint_data.get("iam_url", config.endpoints.iam_url)
            config.endpoints.database = endpoint_data.get("database", config.endpoints.database)

        if "writer" in data:
            writer_data = data["writer"]
            config.writer.batch_size = writer_data.get("batch_size", config.writer.batch_size)
            config.writer.write_mode = writer_data.get("write_mode", config.writer.write_mode)
            config.writer.max_retries = writer_data.get("max_retries", config.writer.max_retries)
            config.writer.retry_base_delay_seconds = writer_data.get(
                "retry_base_delay_seconds", config.writer.retry_base_delay_seconds
            )
            config.writer.inter_batch_delay_seconds = writer_data.get(
                "inter_batch_delay_seconds", config.writer.inter_batch_delay_seconds
            )

        if "rate_limit" in data:
            rate_data = data["rate_limit"]
            config.rate_limit.max_requests = rate_data.get(
                "max_requests", config.rate_limit.max_requests
            )
            config.rate_limit.window_seconds = rate_data.get(
                "window_seconds", config.rate_limit.window_seconds
            )

        if "validation" in data:
            validation_data = data["validation"]
            config.validation.check_key_validity = validation_data.get(
                "check_key_validity", config.validation.check_key_validity
            )
            config.validation.service_account_domain = validation_data.get(
                "service_account_domain", config.validation.service_account_domain
            )

        if "service" in data:
            service_data = data["service"]
            config.service.developer_mode = service_data.get(
                "developer_mode", config.service.developer_mode
            )
            config.service.allowed_origins = service_data.get(
                "allowed_origins", config.service.allowed_origins
            )

        config.validate()
        return config


def load_config(path: Optional[Path] = None) -> TransferConfig:
    """Load configuration from a YAML file, falling back to defaults.

    When ``path`` is None the ``FIRESTORE_TRANSFER_CONFIG`` environment
    variable is consulted. ``FIRESTORE_TRANSFER_DEVELOPER_MODE=1`` turns on
    developer mode regardless of the file.

    Args:
        path: Optional path to settings.yaml.

    Returns:
        TransferConfig instance.
    """
    if path is None and os.environ.get("FIRESTORE_TRANSFER_CONFIG"):
        path = Path(os.environ["FIRESTORE_TRANSFER_CONFIG"])

    data: Dict = {}
    if path is not None and path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}

    config = TransferConfig.from_dict(data)

    if os.environ.get("FIRESTORE_TRANSFER_DEVELOPER_MODE", "").lower() in ("1", "true", "yes"):
        config.service.developer_mode = True

    return config
