from datetime import datetime
from typing import Callable, ClassVar

import structlog

from opencredits.config import Config
from opencredits.credentials import SecretStore
from opencredits.models import CreditInfo, ProviderRegistration
from opencredits.provider.common import (
    describe_error,
    error_credits,
    missing_key_credits,
    utcnow,
)

logger = structlog.get_logger()

PLACEHOLDER_BALANCE = "Coming Soon"
NOT_IMPLEMENTED_ERROR = "Provider not implemented"


class PlaceholderProvider:
    """
    PlaceholderProvider is the shared shape of providers that have no
    balance API integration yet. They satisfy the CreditProvider
    protocol, report a fixed "Coming Soon" result and only check the
    stored key's format.

    Subclasses set `registration` and implement key_looks_valid().
    """

    registration: "ClassVar[ProviderRegistration]"

    def __init__(
        self,
        credentials: "SecretStore",
        config: "Config",
        clock: "Callable[[], datetime]" = utcnow,
    ) -> "None":
        self._credentials = credentials
        self._config = config
        self._clock = clock

    @property
    def provider_id(self) -> "str":
        return self.registration.provider_id

    @property
    def name(self) -> "str":
        return self.registration.name

    @property
    def short_name(self) -> "str":
        return self.registration.short_name

    @property
    def icon(self) -> "str":
        return self.registration.icon

    def is_enabled(self) -> "bool":
        return self._config.is_provider_enabled(self.provider_id)

    def key_looks_valid(self, api_key: "str") -> "bool":
        raise NotImplementedError

    async def close(self) -> "None":
        pass

    async def validate_api_key(self) -> "bool":
        """
        local format check only, no request is made. A True result
        says the key has the expected shape, not that it works.
        """
        try:
            api_key = await self._credentials.get(self.provider_id)
        except Exception as exc:
            logger.warning(
                "credential_read_failed",
                provider=self.provider_id,
                error=describe_error(exc),
            )
            return False

        if not api_key:
            logger.warning("api_key_missing", provider=self.provider_id)
            return False

        if not self.key_looks_valid(api_key):
            logger.warning("api_key_format_invalid", provider=self.provider_id)
            return False

        logger.info("api_key_format_valid", provider=self.provider_id)
        return True

    async def get_credits(self) -> "CreditInfo":
        try:
            api_key = await self._credentials.get(self.provider_id)
        except Exception as exc:
            return error_credits(describe_error(exc), self._clock())

        if not api_key:
            return missing_key_credits(self._clock())

        logger.debug("provider_not_implemented", provider=self.provider_id)
        return CreditInfo(
            balance=PLACEHOLDER_BALANCE,
            currency="$",
            last_updated=self._clock(),
            error=NOT_IMPLEMENTED_ERROR,
        )
