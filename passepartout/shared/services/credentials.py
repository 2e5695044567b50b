"""Provider API keys stored in the OS keyring.

One keyring entry per provider under a single service name. Secrets are
read only when the agent process is spawned; everything else asks for
presence flags.
"""

from __future__ import annotations

import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from passepartout.engine.errors import CredentialError, UnknownProviderError
from passepartout.engine.models import CredentialStatus

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "passepartout"

# provider id -> environment variable the agent reads the key from
PROVIDER_ENV_VARS: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
}


class CredentialStore:
    """Save, delete and check provider API keys."""

    def __init__(self, service: str = DEFAULT_SERVICE) -> None:
        self._service = service

    @property
    def providers(self) -> list[str]:
        return list(PROVIDER_ENV_VARS)

    def normalize(self, provider_id: str) -> str:
        """Lower-case *provider_id*; raise for providers we do not know."""
        normalized = provider_id.strip().lower()
        if normalized not in PROVIDER_ENV_VARS:
            raise UnknownProviderError(provider_id, self.providers)
        return normalized

    def save(self, provider_id: str, secret: str) -> None:
        """Store *secret* and confirm it reads back unchanged."""
        provider = self.normalize(provider_id)
        if not secret:
            raise CredentialError(provider, "API key is empty")
        try:
            keyring.set_password(self._service, provider, secret)
            stored = keyring.get_password(self._service, provider)
        except KeyringError as exc:
            raise CredentialError(provider, f"keyring error: {exc}") from exc
        if stored != secret:
            raise CredentialError(
                provider, "verification failed: stored value does not match",
            )
        logger.info("Saved API key for %s (%d chars)", provider, len(secret))

    def get(self, provider_id: str) -> str | None:
        provider = self.normalize(provider_id)
        try:
            return keyring.get_password(self._service, provider)
        except KeyringError as exc:
            raise CredentialError(provider, f"keyring error: {exc}") from exc

    def delete(self, provider_id: str) -> None:
        """Remove the key for *provider_id*. Missing keys are not an error."""
        provider = self.normalize(provider_id)
        try:
            keyring.delete_password(self._service, provider)
        except PasswordDeleteError:
            logger.debug("No API key stored for %s", provider)
            return
        except KeyringError as exc:
            raise CredentialError(provider, f"keyring error: {exc}") from exc
        logger.info("Deleted API key for %s", provider)

    def has_key(self, provider_id: str) -> bool:
        return self.get(provider_id) is not None

    def list_status(self) -> list[CredentialStatus]:
        return [
            CredentialStatus(provider_id=provider, has_key=self.has_key(provider))
            for provider in PROVIDER_ENV_VARS
        ]

    def get_env_vars(self) -> dict[str, str]:
        """Stored keys as ``{ENV_VAR: key}`` for the agent's environment."""
        env: dict[str, str] = {}
        for provider, var in PROVIDER_ENV_VARS.items():
            secret = self.get(provider)
            if secret:
                env[var] = secret
        return env
