"""Service account credential validation.

Validation runs in stages and stops at the first blocking failure:

1. structure       all required fields present, type/email/PEM shape
2. authentication  a signed assertion is exchanged for an access token
3. iam             recorded as passed (no permission probe is made)
4. project         the Firebase project exists and is ACTIVE
5. firestore       the default database answers (warning only)
6. key             the key is inside its validity window (warning only)

The credential is valid when stages 1-4 pass. Only a valid result carries a
ValidatedSession, which is the sole way to unlock writes.

Example:
    validator = CredentialValidator(token_provider, client)
    result = await validator.verify(json.loads(key_text))
    if result.valid:
        session_store.replace(result.session)
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from firestore_transfer.firestore.auth import AccessToken, TokenProvider
from firestore_transfer.firestore.client import FirestoreClient
from firestore_transfer.firestore.config import ValidationConfig
from firestore_transfer.firestore.errors import (
    AuthenticationError,
    FirestoreTransferError,
    ProjectAccessError,
    StructuralCredentialError,
)
from firestore_transfer.models import REQUIRED_KEY_FIELDS, ServiceAccountKey

logger = structlog.get_logger()

SERVICE_ACCOUNT_TYPE = "service_account"


@dataclass(frozen=True)
class StructureCheck:
    """Result of the offline structural check.

    Each flag is True when that check failed, matching the error payload
    shape returned to callers.
    """

    missing_fields: bool
    invalid_type: bool
    invalid_email: bool
    invalid_private_key: bool
    missing_field_names: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not (
            self.missing_fields
            or self.invalid_type
            or self.invalid_email
            or self.invalid_private_key
        )

    @property
    def flags(self) -> Dict[str, bool]:
        """Flags keyed by their camelCase payload names."""
        return {
            "missingFields": self.missing_fields,
            "invalidType": self.invalid_type,
            "invalidEmail": self.invalid_email,
            "invalidPrivateKey": self.invalid_private_key,
        }


def validate_structure(
    candidate: Any, service_account_domain: str = ".gserviceaccount.com"
) -> StructureCheck:
    """Check the shape of a candidate key without touching the network."""
    if not isinstance(candidate, dict):
        return StructureCheck(
            missing_fields=True,
            invalid_type=True,
            invalid_email=True,
            invalid_private_key=True,
            missing_field_names=list(REQUIRED_KEY_FIELDS),
        )

    missing = [name for name in REQUIRED_KEY_FIELDS if candidate.get(name) in (None, "")]
    email = candidate.get("client_email")
    private_key = candidate.get("private_key")

    return StructureCheck(
        missing_fields=bool(missing),
        invalid_type=candidate.get("type") != SERVICE_ACCOUNT_TYPE,
        invalid_email=not (isinstance(email, str) and email.endswith(service_account_domain)),
        invalid_private_key=not (
            isinstance(private_key, str)
            and "BEGIN PRIVATE KEY" in private_key
            and "END PRIVATE KEY" in private_key
        ),
        missing_field_names=missing,
    )


def parse_service_account(
    candidate: Any, service_account_domain: str = ".gserviceaccount.com"
) -> ServiceAccountKey:
    """Structurally check ``candidate`` and build a ServiceAccountKey.

    Raises:
        StructuralCredentialError: If any structural check fails.
    """
    check = validate_structure(candidate, service_account_domain)
    if not check.valid:
        details = ", ".join(name for name, failed in check.flags.items() if failed)
        if check.missing_field_names:
            details += f" (missing: {', '.join(check.missing_field_names)})"
        raise StructuralCredentialError(
            "Invalid service account structure",
            flags=check.flags,
            details=details,
        )

    try:
        return ServiceAccountKey.model_validate(candidate)
    except ValidationError as e:
        # Present but non-string values, e.g. a numeric client_id
        raise StructuralCredentialError(
            "Invalid service account structure",
            flags=check.flags,
            details=str(e),
        ) from e


@dataclass(frozen=True)
class ValidatedSession:
    """Proof that a key passed verification.

    Instances are created by CredentialValidator.verify only; holding one is
    what authorizes uploads.
    """

    key: ServiceAccountKey
    validated_at: datetime

    @property
    def project_id(self) -> str:
        return self.key.project_id


@dataclass
class ValidationChecks:
    """Per-stage pass/fail record."""

    structure: bool = False
    authentication: bool = False
    iam: bool = False
    project: bool = False
    firestore: bool = False
    key: bool = False


@dataclass
class ValidationIssue:
    """One failed stage: its type, a short message, and details."""

    type: str
    message: str
    details: Any = None


@dataclass
class VerificationResult:
    """Outcome of CredentialValidator.verify.

    Attributes:
        valid: structure, authentication, iam and project all passed.
        checks: Per-stage results.
        errors: Blocking failures.
        warnings: Non-blocking failures (firestore, key).
        account_info: Identity, key and project details, once authenticated.
        session: Set only when ``valid`` is True.
    """

    valid: bool = False
    checks: ValidationChecks = field(default_factory=ValidationChecks)
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    account_info: Optional[Dict[str, Any]] = None
    session: Optional[ValidatedSession] = None

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON response shape for this result."""
        if self.valid:
            return {
                "success": True,
                "message": "Service account validated successfully",
                "checks": asdict(self.checks),
                "accountInfo": self.account_info,
                "warnings": [asdict(w) for w in self.warnings],
            }
        return {
            "success": False,
            "error": "Service account validation failed",
            "checks": asdict(self.checks),
            "errors": [asdict(e) for e in self.errors],
            "details": "; ".join(f"{e.type}: {e.message}" for e in self.errors),
        }


class CredentialValidator:
    """Runs the staged verification of a service account key.

    Example:
        validator = CredentialValidator(provider, client, config.validation)
        result = await validator.verify(candidate)
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        client: FirestoreClient,
        config: Optional[ValidationConfig] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._token_provider = token_provider
        self._client = client
        self._config = config or ValidationConfig()
        self._now = now

    async def verify(self, candidate: Any) -> VerificationResult:
        """Validate ``candidate`` and return the per-stage result."""
        result = VerificationResult()

        # 1. Structure
        try:
            key = parse_service_account(candidate, self._config.service_account_domain)
        except StructuralCredentialError as e:
            result.errors.append(ValidationIssue("structure", e.message, e.flags))
            logger.warning("credential_structure_invalid", details=e.details)
            return result
        result.checks.structure = True

        # 2. Authentication
        try:
            token = await self._token_provider.get_access_token(key)
        except AuthenticationError as e:
            result.errors.append(
                ValidationIssue(
                    "authentication",
                    "Failed to authenticate with Google APIs",
                    e.details or e.message,
                )
            )
            logger.warning(
                "credential_authentication_failed",
                client_email=key.client_email,
                error=e.message,
            )
            return result
        result.checks.authentication = True

        # 3. IAM
        result.checks.iam = True

        # 4. Project
        project_info: Optional[Dict[str, Any]] = None
        try:
            project_info = await self._check_project(key, token)
            result.checks.project = True
        except ProjectAccessError as e:
            result.errors.append(
                ValidationIssue("project", "Firebase project validation failed", e.message)
            )

        # 5. Firestore
        try:
            await self._check_firestore(key, token)
            result.checks.firestore = True
        except FirestoreTransferError as e:
            result.warnings.append(
                ValidationIssue("firestore", "Firestore access validation failed", e.message)
            )

        # 6. Key validity window
        key_info: Optional[Dict[str, Any]] = None
        if self._config.check_key_validity:
            try:
                key_info = await self._check_key(key, token)
                result.checks.key = True
            except FirestoreTransferError as e:
                result.warnings.append(
                    ValidationIssue("key", "Service account key validation failed", e.message)
                )

        validated_at = self._now()
        result.account_info = {
            "email": key.client_email,
            "projectId": key.project_id,
            "keyId": key.private_key_id,
            "clientId": key.client_id,
            "validatedAt": validated_at.isoformat(),
            "keyInfo": key_info,
            "projectInfo": project_info,
        }

        checks = result.checks
        result.valid = checks.structure and checks.authentication and checks.iam and checks.project
        if result.valid:
            result.session = ValidatedSession(key=key, validated_at=validated_at)

        logger.info(
            "credential_validation_complete",
            project_id=key.project_id,
            valid=result.valid,
            checks=asdict(checks),
            warnings=len(result.warnings),
        )
        return result

    async def _check_project(self, key: ServiceAccountKey, token: AccessToken) -> Dict[str, Any]:
        """Return project details, or raise ProjectAccessError."""
        try:
            response = await self._client.get_project(key.project_id, token)
        except httpx.TransportError as e:
            raise ProjectAccessError(
                f"Firebase API unreachable: {e}", project_id=key.project_id
            ) from e

        if response.status_code == 404:
            raise ProjectAccessError(
                "Firebase project not found or not accessible",
                project_id=key.project_id,
                status_code=404,
            )
        if response.status_code == 403:
            raise ProjectAccessError(
                "Service account lacks Firebase project access permissions",
                project_id=key.project_id,
                status_code=403,
            )
        if not response.is_success:
            raise ProjectAccessError(
                f"Firebase API error: {response.status_code} {response.reason_phrase}",
                project_id=key.project_id,
                status_code=response.status_code,
            )

        data = _json_object(response)
        if data is None:
            raise ProjectAccessError(
                "Firebase API returned an unreadable project description",
                project_id=key.project_id,
                status_code=response.status_code,
            )
        state = data.get("state")
        if state != "ACTIVE":
            raise ProjectAccessError(
                f"Firebase project is not active. Current state: {state}",
                project_id=key.project_id,
                status_code=response.status_code,
            )

        return {
            "projectId": data.get("projectId"),
            "displayName": data.get("displayName"),
            "state": state,
            "projectNumber": data.get("projectNumber"),
        }

    async def _check_firestore(self, key: ServiceAccountKey, token: AccessToken) -> None:
        try:
            response = await self._client.get_database(key.project_id, token)
        except httpx.TransportError as e:
            raise ProjectAccessError(f"Firestore API unreachable: {e}") from e

        if response.status_code == 403:
            raise ProjectAccessError(
                "Service account lacks Firestore access permissions", status_code=403
            )
        if response.status_code == 404:
            raise ProjectAccessError(
                "Firestore database not found or not enabled", status_code=404
            )
        if not response.is_success:
            raise ProjectAccessError(
                f"Firestore API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            probe = await self._client.list_collection_ids(key.project_id, token)
            can_list = probe.is_success
        except httpx.TransportError:
            can_list = False

        logger.debug("firestore_access_checked", project_id=key.project_id, can_list=can_list)

    async def _check_key(self, key: ServiceAccountKey, token: AccessToken) -> Dict[str, Any]:
        """Return validity details of the key in use."""
        try:
            response = await self._client.list_service_account_keys(
                key.project_id, token, key.client_email
            )
        except httpx.TransportError as e:
            raise FirestoreTransferError(f"Keys API unreachable: {e}") from e

        if not response.is_success:
            raise FirestoreTransferError(
                f"Keys API error: {response.status_code} {response.reason_phrase}"
            )

        data = _json_object(response)
        if data is None:
            raise FirestoreTransferError("Keys API returned an unreadable key listing")

        keys = data.get("keys") or []
        current = next(
            (
                k for k in keys
                if isinstance(k, dict) and key.private_key_id in str(k.get("name", ""))
            ),
            None,
        )
        if current is None:
            raise FirestoreTransferError("Service account key not found in the project")

        now = self._now()
        valid_after = _parse_timestamp(current.get("validAfterTime"), "validAfterTime")
        valid_before = _parse_timestamp(current.get("validBeforeTime"), "validBeforeTime")

        if now < valid_after:
            raise FirestoreTransferError("Service account key is not yet valid")
        if now > valid_before:
            raise FirestoreTransferError("Service account key has expired")

        return {
            "keyId": key.private_key_id,
            "validAfter": current["validAfterTime"],
            "validBefore": current["validBeforeTime"],
            "keyType": current.get("keyType"),
            "keyAlgorithm": current.get("keyAlgorithm"),
            "daysUntilExpiry": math.ceil((valid_before - now).total_seconds() / 86400),
        }


def _json_object(response: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _parse_timestamp(value: Any, field_name: str) -> datetime:
    """Parse an RFC 3339 timestamp from the keys API.

    Raises:
        FirestoreTransferError: If the value is missing or malformed.
    """
    if not isinstance(value, str) or not value:
        raise FirestoreTransferError(f"Service account key has no {field_name}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise FirestoreTransferError(
            f"Service account key has a malformed {field_name}", details=value
        ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
