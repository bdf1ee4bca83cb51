"""Service account authentication for the Firestore REST API.

This module exchanges a service account key for a short-lived OAuth2 bearer
token without any Google SDK:

1. Build the JWT claims (issuer, scopes, audience, issued/expiry times)
2. Sign ``base64url(header) + "." + base64url(claims)`` with RS256
3. POST the assertion to the token endpoint using the JWT-bearer grant

Tokens are never cached: every operation sequence asks for a fresh one.

Example:
    async with httpx.AsyncClient() as http:
        provider = TokenProvider(http)
        token = await provider.get_access_token(key)
        headers = token.authorization_header
"""

import asyncio
import base64
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from firestore_transfer.firestore.config import AuthConfig
from firestore_transfer.firestore.errors import AuthenticationError
from firestore_transfer.firestore.retry import RetryPolicy
from firestore_transfer.models import ServiceAccountKey

# Set up structured logging
logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

JWT_HEADER: Dict[str, str] = {"alg": "RS256", "typ": "JWT"}

_PEM_MARKERS = re.compile(r"-----(BEGIN|END) PRIVATE KEY-----")


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and its validity window.

    Attributes:
        value: The opaque access token string.
        issued_at: When the assertion was issued.
        expires_at: ``issued_at`` plus the token lifetime (one hour).
    """

    value: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return True once the token must no longer be presented."""
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    @property
    def authorization_header(self) -> Dict[str, str]:
        """``Authorization`` header carrying this token."""
        return {"Authorization": f"Bearer {self.value}"}


def base64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding, as required by JWS compact form."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def load_private_key(private_key_pem: str) -> rsa.RSAPrivateKey:
    """Decode a PEM private key into an RSA key object.

    The PEM header and footer and all whitespace are stripped, then the body
    is base64-decoded and parsed as PKCS8 DER.

    Raises:
        AuthenticationError: If the key is not a PKCS8 RSA private key.
    """
    body = "".join(_PEM_MARKERS.sub("", private_key_pem).split())
    try:
        der = base64.b64decode(body, validate=True)
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise AuthenticationError(
            "Failed to load private key",
            error_code="invalid_private_key",
            details=f"The private_key field is not a PKCS8 PEM key: {e}",
        ) from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise AuthenticationError(
            "Failed to load private key",
            error_code="invalid_private_key",
            details=f"Expected an RSA key, got {type(key).__name__}",
        )
    return key


def build_claims(
    key: ServiceAccountKey,
    scopes: list[str],
    audience: str,
    issued_at: int,
    lifetime_seconds: int = 3600,
) -> Dict[str, Any]:
    """Build the JWT claim set for the service account."""
    return {
        "iss": key.client_email,
        "scope": " ".join(scopes),
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + lifetime_seconds,
    }


def create_assertion(claims: Dict[str, Any], private_key_pem: str) -> str:
    """Sign claims into a compact RS256 JWT.

    The signature covers exactly ``base64url(header) + "." + base64url(claims)``.

    Raises:
        AuthenticationError: If the private key cannot be loaded.
    """
    encoded_header = base64url_encode(json.dumps(JWT_HEADER, separators=(",", ":")).encode())
    encoded_claims = base64url_encode(json.dumps(claims, separators=(",", ":")).encode())
    signing_input = f"{encoded_header}.{encoded_claims}"

    private_key = load_private_key(private_key_pem)
    signature = private_key.sign(
        signing_input.encode("ascii"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    return f"{signing_input}.{base64url_encode(signature)}"


class TokenProvider:
    """Exchanges signed assertions for bearer tokens.

    The exchange is not retried unless ``auth.max_attempts`` is raised above
    one; callers decide whether to retry the whole operation.

    Attributes:
        config: Token exchange settings (endpoint, scopes, lifetime).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Optional[AuthConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the token provider.

        Args:
            http_client: Shared async HTTP client.
            config: Token settings. Defaults to the Google OAuth2 endpoint.
            retry_policy: Policy for transport failures of the exchange.
                Defaults to ``auth.max_attempts`` attempts.
            sleep: Awaitable sleep used between attempts.
            clock: Source of the current UNIX time.
        """
        self._http = http_client
        self.config = config or AuthConfig()
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=self.config.max_attempts)
        self._sleep = sleep
        self._clock = clock

    async def get_access_token(self, key: ServiceAccountKey) -> AccessToken:
        """Obtain a fresh access token for ``key``.

        Returns:
            AccessToken valid for ``auth.token_lifetime_seconds``.

        Raises:
            AuthenticationError: If signing fails or the endpoint rejects the
                assertion.
        """
        now = int(self._clock())
        claims = build_claims(
            key,
            scopes=self.config.scopes,
            audience=self.config.token_uri,
            issued_at=now,
            lifetime_seconds=self.config.token_lifetime_seconds,
        )
        assertion = create_assertion(claims, key.private_key)

        logger.debug(
            "Requesting access token",
            extra={"client_email": key.client_email, "token_uri": self.config.token_uri},
        )

        try:
            response = await self._retry_policy.run(
                self._post_assertion,
                assertion,
                retry_on=httpx.TransportError,
                sleep=self._sleep,
                label="token_exchange",
            )
        except httpx.TransportError as e:
            logger.error(
                "Token endpoint unreachable",
                extra={"error": str(e), "token_uri": self.config.token_uri},
            )
            raise AuthenticationError(
                "Token request failed",
                error_code="transport_error",
                details=f"Could not reach {self.config.token_uri}: {e}",
            ) from e

        if not response.is_success:
            error_data = _json_or_empty(response)
            error_code = error_data.get("error")
            description = error_data.get("error_description") or error_code or response.reason_phrase
            logger.error(
                "Token request rejected",
                extra={
                    "status_code": response.status_code,
                    "error": error_code,
                    "client_email": key.client_email,
                },
            )
            raise AuthenticationError(
                f"Token request failed: {description}",
                error_code=error_code,
                details=f"HTTP {response.status_code} from token endpoint: {description}",
            )

        data = _json_or_empty(response)
        token_value = data.get("access_token")
        if not token_value:
            raise AuthenticationError(
                "Token request failed: response has no access_token",
                error_code="missing_access_token",
            )

        issued_at = datetime.fromtimestamp(now, tz=timezone.utc)
        logger.info("Obtained access token", extra={"client_email": key.client_email})
        return AccessToken(
            value=token_value,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.config.token_lifetime_seconds),
        )

    async def _post_assertion(self, assertion: str) -> httpx.Response:
        return await self._http.post(
            self.config.token_uri,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            timeout=self.config.request_timeout_seconds,
        )


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
