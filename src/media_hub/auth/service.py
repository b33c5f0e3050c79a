"""Google Drive API service factory backed by a service account."""

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Optional

from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account
from googleapiclient.discovery import build

from ..common.constants import SCOPES
from ..common.exceptions import AuthenticationError, ConfigError
from ..common.logging import get_logger
from ..config.settings import Settings

logger = get_logger(__name__)


def load_service_account_info(raw: str) -> dict[str, Any]:
    """Decode a service account key given as JSON or base64-encoded JSON.

    Args:
        raw: Key material from configuration

    Returns:
        Parsed key dictionary

    Raises:
        ConfigError: If the value is neither form
    """
    raw = raw.strip()
    if raw.startswith("{"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Service account key is not valid JSON: {e}") from e

    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
        return json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(
            "Service account key must be either base64 encoded JSON or a JSON string"
        ) from e


class DriveServiceFactory:
    """Factory for Drive API services and authorized HTTP sessions."""

    def __init__(
        self,
        key_info: Optional[dict[str, Any]] = None,
        key_file: Optional[Path] = None,
    ) -> None:
        """Initialize service factory.

        Args:
            key_info: Parsed service account key
            key_file: Path to a service account key file
        """
        if key_info is None and key_file is None:
            raise ConfigError(
                "No service account configured. Set MEDIA_HUB_SERVICE_ACCOUNT_KEY "
                "or MEDIA_HUB_SERVICE_ACCOUNT_FILE."
            )
        self.key_info = key_info
        self.key_file = key_file
        self._creds: Optional[service_account.Credentials] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DriveServiceFactory":
        """Build a factory from application settings."""
        if settings.service_account_key:
            return cls(key_info=load_service_account_info(settings.service_account_key))
        return cls(key_file=settings.service_account_file)

    def get_credentials(self) -> service_account.Credentials:
        """Load service account credentials once.

        Raises:
            AuthenticationError: If the key cannot be loaded
        """
        if self._creds is None:
            try:
                if self.key_info is not None:
                    self._creds = service_account.Credentials.from_service_account_info(
                        self.key_info, scopes=SCOPES
                    )
                else:
                    self._creds = service_account.Credentials.from_service_account_file(
                        str(self.key_file), scopes=SCOPES
                    )
                logger.info("Service account initialized")
            except (ValueError, OSError) as e:
                raise AuthenticationError(f"Failed to load service account: {e}") from e
        return self._creds

    def create_service(self) -> Any:
        """Create authenticated Drive API service.

        Returns:
            Google Drive API service instance
        """
        creds = self.get_credentials()
        service = build("drive", "v3", credentials=creds, cache_discovery=False)
        logger.debug("Created Drive API service")
        return service

    def create_session(self) -> AuthorizedSession:
        """Create an HTTP session that signs requests with the service account.

        Used for the raw resumable upload protocol, which the discovery
        client does not expose chunk by chunk.
        """
        return AuthorizedSession(self.get_credentials())
