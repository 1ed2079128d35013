"""
Credential Store

Read-only view of the provider credentials managed by the settings UI.
Credentials live in a JSON file; when it is missing, a single credential is
built from the API_KEY / BASE_URL environment settings.
"""

import json
from pathlib import Path
from typing import List, Optional

from order_sync.config.settings import Settings, settings as default_settings
from order_sync.core.logger import setup_logger
from order_sync.models.order import ApiCredential

logger = setup_logger(__name__)

ENV_CREDENTIAL_ID = "env"


class CredentialStore:
    """Loads ApiCredential records; the engine never writes them."""

    def __init__(
        self,
        credentials: Optional[List[ApiCredential]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        if credentials is None:
            credentials = self._load()
        self._credentials = list(credentials)

    def _load(self) -> List[ApiCredential]:
        """
        Load credentials from the JSON file.

        Accepts either a bare list or an object with a "configs" list.
        """
        path = Path(self.settings.credentials_path)
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                records = data.get("configs", []) if isinstance(data, dict) else data
                credentials = [ApiCredential.model_validate(record) for record in records]
                logger.info(f"Loaded {len(credentials)} credential(s) from {path}")
                return credentials
            except Exception as e:
                logger.error(f"Failed to load credentials from {path}: {e}")
                return self._initialize_from_env()

        logger.info("No credentials file found, initializing from environment variables")
        return self._initialize_from_env()

    def _initialize_from_env(self) -> List[ApiCredential]:
        if not self.settings.api_key:
            return []
        return [
            ApiCredential(
                id=ENV_CREDENTIAL_ID,
                display_name="Environment",
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                is_active=True,
            )
        ]

    def all(self) -> List[ApiCredential]:
        return list(self._credentials)

    def get(self, credential_id: str) -> Optional[ApiCredential]:
        return next((c for c in self._credentials if c.id == credential_id), None)

    def active(self) -> Optional[ApiCredential]:
        """The credential flagged active; the first one if none is flagged."""
        flagged = [c for c in self._credentials if c.is_active]
        if len(flagged) > 1:
            logger.warning(
                f"{len(flagged)} credentials flagged active, using '{flagged[0].label}'"
            )
        if flagged:
            return flagged[0]
        return self._credentials[0] if self._credentials else None

    def usable(self) -> List[ApiCredential]:
        """Credentials a sync cycle fans out over."""
        if self.settings.sync_all_credentials:
            return self.all()
        active = self.active()
        return [active] if active else []
