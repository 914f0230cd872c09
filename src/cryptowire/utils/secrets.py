"""Google Cloud Secret Manager access for deployment credentials."""

from functools import lru_cache

from google.cloud import secretmanager

from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)


class SecretManagerClient:
    """Reads secret payloads for one GCP project."""

    def __init__(self, project_id: str) -> None:
        self._project_id = project_id
        self._client = secretmanager.SecretManagerServiceClient()

    def get_secret(self, secret_id: str, version: str = "latest") -> str:
        """Retrieve a secret value, e.g. the production database URL.

        Args:
            secret_id: The ID of the secret to retrieve.
            version: The version of the secret (default: "latest").

        Returns:
            The secret payload decoded as UTF-8, stripped of surrounding whitespace.
        """
        name = f"projects/{self._project_id}/secrets/{secret_id}/versions/{version}"
        logger.info("Reading secret", secret_id=secret_id, version=version)
        response = self._client.access_secret_version(request={"name": name})
        return response.payload.data.decode("UTF-8").strip()


@lru_cache(maxsize=1)
def get_secret_manager(project_id: str) -> SecretManagerClient:
    """Get or create a cached SecretManagerClient instance."""
    return SecretManagerClient(project_id)
