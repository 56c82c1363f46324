import os
from typing import Mapping, Protocol

import structlog

from opencredits.config import API_KEY_ENV_VARS

logger = structlog.get_logger()


class SecretStore(Protocol):
    """
    SecretStore is the key-value storage for provider API keys,
    scoped by provider id.
    """

    async def get(self, provider_id: "str") -> "str | None": ...

    async def set(self, provider_id: "str", secret: "str") -> "None": ...

    async def delete(self, provider_id: "str") -> "None": ...

    async def has(self, provider_id: "str") -> "bool": ...


class EnvCredentialStore:
    """
    EnvCredentialStore seeds API keys from the environment once
    and keeps later changes in memory only. Empty keys are treated
    as missing.
    """

    def __init__(self, environ: "Mapping[str, str] | None" = None) -> "None":
        env = os.environ if environ is None else environ
        self._secrets: "dict[str, str]" = {}
        for provider_id, var in API_KEY_ENV_VARS.items():
            value = env.get(var, "").strip()
            if value:
                self._secrets[provider_id] = value

    async def get(self, provider_id: "str") -> "str | None":
        return self._secrets.get(provider_id) or None

    async def set(self, provider_id: "str", secret: "str") -> "None":
        secret = secret.strip()
        if not secret:
            raise ValueError("API key cannot be empty")
        self._secrets[provider_id] = secret
        logger.info("credential_stored", provider=provider_id)

    async def delete(self, provider_id: "str") -> "None":
        if self._secrets.pop(provider_id, None) is not None:
            logger.info("credential_deleted", provider=provider_id)

    async def has(self, provider_id: "str") -> "bool":
        return bool(await self.get(provider_id))
