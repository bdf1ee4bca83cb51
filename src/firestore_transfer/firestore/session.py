"""Holder for the single trusted credential session.

The store keeps one ValidatedSession reference. Each validation replaces it
wholesale: a valid result installs its session, an invalid one clears it.
Readers see either the old or the new session, never a partial one.
"""

from typing import Optional

import structlog

from firestore_transfer.firestore.errors import AuthenticationError
from firestore_transfer.firestore.validator import ValidatedSession, VerificationResult

logger = structlog.get_logger()


class SessionStore:
    """The currently trusted session, if any."""

    def __init__(self) -> None:
        self._session: Optional[ValidatedSession] = None

    @property
    def current(self) -> Optional[ValidatedSession]:
        return self._session

    def replace(self, session: Optional[ValidatedSession]) -> None:
        """Install ``session`` (None clears)."""
        self._session = session
        if session is None:
            logger.info("session_cleared")
        else:
            logger.info(
                "session_installed",
                project_id=session.project_id,
                client_email=session.key.client_email,
            )

    def apply(self, result: VerificationResult) -> None:
        """Install the session of a valid result, clear on an invalid one."""
        self.replace(result.session if result.valid else None)

    def clear(self) -> None:
        self.replace(None)

    def require(self) -> ValidatedSession:
        """Return the current session.

        Raises:
            AuthenticationError: If no credential has been validated.
        """
        session = self._session
        if session is None:
            raise AuthenticationError(
                "Valid service account required. Please validate your service account first.",
                error_code="no_validated_session",
                details="Upload requires a service account validated in this session",
            )
        return session
