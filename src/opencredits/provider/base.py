from typing import Protocol

from opencredits.models import CreditInfo, ProviderRegistration


class CreditProvider(Protocol):
    """
    CreditProvider stands as a common protocol that all
    credit providers must satisfy.

    get_credits() never raises for upstream or credential
    failures: every fault is folded into CreditInfo.error.
    """

    @property
    def registration(self) -> "ProviderRegistration": ...

    @property
    def provider_id(self) -> "str": ...

    @property
    def name(self) -> "str": ...

    @property
    def short_name(self) -> "str": ...

    @property
    def icon(self) -> "str": ...

    def is_enabled(self) -> "bool": ...

    async def validate_api_key(self) -> "bool": ...

    async def get_credits(self) -> "CreditInfo": ...

    async def close(self) -> "None": ...
