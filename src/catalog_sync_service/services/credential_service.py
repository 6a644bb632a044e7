"""Credential store for POS OAuth tokens.

Tokens are stored Fernet-encrypted. An access token is refreshed through the
vendor's token endpoint only when it has expired and the refresh token has
not.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from cryptography.fernet import Fernet, InvalidToken

from catalog_sync_service.adapters.base_adapter import PosAdapter
from catalog_sync_service.exceptions import ExternalServiceError, NotFoundError
from catalog_sync_service.models.sync_models import PosCredential
from catalog_sync_service.repositories.sync_repositories import PosCredentialRepository

logger = logging.getLogger(__name__)


def _utc_timestamp() -> float:
    return datetime.now(UTC).timestamp()


class CredentialService:
    """Reads, refreshes and stores encrypted POS credentials."""

    def __init__(
        self,
        repository: PosCredentialRepository,
        adapter: PosAdapter,
        encryption_key: str | bytes,
        clock: Callable[[], float] = _utc_timestamp,
    ) -> None:
        """Initialize the credential service.

        Args:
            repository: Repository holding encrypted credentials
            adapter: POS adapter used to refresh tokens
            encryption_key: Fernet key (urlsafe base64, 32 bytes)
            clock: Returns the current epoch time in seconds
        """
        self.repository = repository
        self.adapter = adapter
        self.fernet = Fernet(encryption_key)
        self.clock = clock

    def encrypt(self, value: str) -> str:
        return self.fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, value: str) -> str:
        try:
            return self.fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise ExternalServiceError("Stored POS credentials cannot be decrypted") from e

    def store_credentials(
        self,
        restaurant_id: str,
        merchant_id: str,
        access_token: str,
        access_token_expiration: int,
        refresh_token: str,
        refresh_token_expiration: int,
        credentials_id: str | None = None,
    ) -> PosCredential:
        """Encrypt and persist a token pair.

        Raises:
            ExternalServiceError: If the record cannot be saved
        """
        credential = PosCredential(
            credentials_id=credentials_id or f"cred_{uuid.uuid4().hex[:16]}",
            restaurant_id=restaurant_id,
            platform=self.adapter.platform_name,
            merchant_id=merchant_id,
            access_token=self.encrypt(access_token),
            access_token_expiration=access_token_expiration,
            refresh_token=self.encrypt(refresh_token),
            refresh_token_expiration=refresh_token_expiration,
        )
        if not self.repository.save_credential(credential):
            raise ExternalServiceError("Failed to store POS credentials")
        return credential

    def load(self, restaurant_id: str, credentials_id: str | None = None) -> PosCredential:
        """Load the credential record by id, or the restaurant's record.

        Raises:
            NotFoundError: If no matching record exists
        """
        if credentials_id is not None:
            credential = self.repository.get_credential(credentials_id)
        else:
            credential = self.repository.get_credential_for_restaurant(restaurant_id)

        if credential is None or credential.restaurant_id != restaurant_id:
            raise NotFoundError(
                f"No POS credentials for restaurant {restaurant_id}",
                details={"restaurant_id": restaurant_id, "credentials_id": credentials_id},
            )
        return credential

    async def get_access_token(
        self, restaurant_id: str, credentials_id: str | None = None
    ) -> tuple[str, str]:
        """Return ``(merchant_id, access_token)`` refreshing the token when needed.

        Raises:
            NotFoundError: If the restaurant has no credentials
            ExternalServiceError: If both tokens expired or the refresh fails
        """
        credential = self.load(restaurant_id, credentials_id)
        credential = await self.refresh_if_expired(credential)
        return credential.merchant_id, self.decrypt(credential.access_token)

    async def refresh_if_expired(self, credential: PosCredential) -> PosCredential:
        """Refresh the token pair when the access token has expired.

        Raises:
            ExternalServiceError: If the refresh token expired too or the vendor refuses
        """
        now = self.clock()
        if now <= credential.access_token_expiration:
            return credential

        if now >= credential.refresh_token_expiration:
            raise ExternalServiceError(
                "POS credentials expired, the integration must be reconnected",
                details={"credentials_id": credential.credentials_id},
            )

        tokens = await self.adapter.refresh_tokens(self.decrypt(credential.refresh_token))
        if tokens is None:
            raise ExternalServiceError(
                "POS token refresh failed", details={"credentials_id": credential.credentials_id}
            )

        refreshed = credential.model_copy(
            update={
                "access_token": self.encrypt(tokens["access_token"]),
                "access_token_expiration": tokens["access_token_expiration"],
                "refresh_token": self.encrypt(tokens["refresh_token"]),
                "refresh_token_expiration": tokens["refresh_token_expiration"],
            }
        )
        if not self.repository.save_credential(refreshed):
            raise ExternalServiceError(
                "Failed to store refreshed POS credentials",
                details={"credentials_id": credential.credentials_id},
            )

        logger.info(f"Refreshed POS credentials {credential.credentials_id}")
        return refreshed

    async def refresh_all(self, credentials_id: str | None = None) -> int:
        """Refresh every expired credential (or one), logging failures only.

        Returns:
            int: Number of credentials refreshed or still valid
        """
        if credentials_id is not None:
            credential = self.repository.get_credential(credentials_id)
            credentials = [credential] if credential is not None else []
        else:
            credentials = self.repository.list_credentials()

        healthy = 0
        for credential in credentials:
            try:
                await self.refresh_if_expired(credential)
                healthy += 1
            except ExternalServiceError as e:
                logger.warning(f"Token refresh skipped for {credential.credentials_id}: {e.message}")
        return healthy
