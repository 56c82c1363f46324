from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class HistorySample:
    """
    HistorySample is a single balance observation kept
    for consumption rate estimation.
    """

    timestamp: "datetime"
    balance: "float"


@dataclass(frozen=True, slots=True)
class ProviderRegistration:
    """
    ProviderRegistration holds the identity and display
    metadata of a credit provider. Whether the provider is
    enabled is not stored here, it is read from the config
    every time it's needed.
    """

    # stable lowercase id, also the credential store key
    provider_id: "str"
    name: "str"
    short_name: "str"
    icon: "str"


@dataclass(frozen=True, slots=True)
class CreditInfo:
    """
    CreditInfo is the normalized snapshot of one provider's
    balance for a single refresh cycle.
    """

    # already formatted, e.g. "$5.20", "PAYG", "Coming Soon", "Error"
    balance: "str"
    currency: "str"
    last_updated: "datetime"
    balance_numeric: "float | None" = None
    # set iff the fetch failed or no credential was configured
    error: "str | None" = None
    # credits consumed per hour, positive means spending
    consumption_rate: "float | None" = None
    historical_data: "tuple[HistorySample, ...] | None" = None

    @property
    def is_valid(self) -> "bool":
        return not self.error
