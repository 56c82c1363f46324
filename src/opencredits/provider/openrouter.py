from datetime import datetime
from typing import Callable, Mapping

import httpx
import structlog

from opencredits.config import Config
from opencredits.credentials import SecretStore
from opencredits.history import HistoryStore, estimate_rate
from opencredits.models import CreditInfo, ProviderRegistration
from opencredits.provider.common import (
    DEFAULT_TIMEOUT,
    as_number,
    describe_error,
    error_credits,
    format_currency,
    missing_key_credits,
    utcnow,
)

logger = structlog.get_logger()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
CREDITS_URL = f"{OPENROUTER_BASE_URL}/credits"
KEY_INFO_URL = f"{OPENROUTER_BASE_URL}/auth/key"

# OpenRouter uses these to attribute traffic to an app
ATTRIBUTION_HEADERS: "dict[str, str]" = {
    "HTTP-Referer": "https://github.com/opencredits/opencredits",
    "X-Title": "OpenCredits",
}

CURRENCY = "$"
PAYG_BALANCE = "PAYG"


class InvalidResponseError(Exception):
    pass


def _unwrap(body: "object") -> "Mapping[str, object]":
    """
    returns the payload of an OpenRouter response, which is either
    wrapped in a "data" object or sent as is.
    """
    if not isinstance(body, dict):
        raise InvalidResponseError("Malformed response body")

    data = body.get("data")
    return data if isinstance(data, dict) else body


def resolve_key_balance(data: "Mapping[str, object]") -> "float | None":
    """
    resolves the remaining balance from an /auth/key payload. The
    first rule that matches wins:
     - credit_left, when numeric
     - balance, when numeric
     - limit - usage (floored at 0), when both are numeric
    Returns None for pay-as-you-go keys with none of the above.
    """
    credit_left = as_number(data.get("credit_left"))
    if credit_left is not None:
        return credit_left

    balance = as_number(data.get("balance"))
    if balance is not None:
        return balance

    limit = as_number(data.get("limit"))
    usage = as_number(data.get("usage"))
    if limit is not None and usage is not None:
        return max(0.0, limit - usage)

    return None


class OpenRouterProvider:
    """
    OpenRouterProvider reads the remaining credits of an OpenRouter
    account. It prefers the account-wide /credits totals and falls
    back to the per-key /auth/key info. Every numeric balance is kept
    in a 24 hour history used to estimate the consumption rate.
    """

    registration = ProviderRegistration(
        provider_id="openrouter",
        name="OpenRouter",
        short_name="OR",
        icon="🌐",
    )

    def __init__(
        self,
        credentials: "SecretStore",
        config: "Config",
        client: "httpx.AsyncClient | None" = None,
        timeout: "float" = DEFAULT_TIMEOUT,
        clock: "Callable[[], datetime]" = utcnow,
    ) -> "None":
        self._credentials = credentials
        self._config = config
        self._client: "httpx.AsyncClient" = client or httpx.AsyncClient(
            timeout=timeout,
            headers=ATTRIBUTION_HEADERS,
        )
        self._clock = clock
        self._history: "HistoryStore" = HistoryStore()

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

    @property
    def history(self) -> "HistoryStore":
        return self._history

    def is_enabled(self) -> "bool":
        return self._config.is_provider_enabled(self.provider_id)

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def validate_api_key(self) -> "bool":
        """
        probes /auth/key with the stored key. Valid only on a 200
        with a non-empty body.
        """
        try:
            api_key = await self._credentials.get(self.provider_id)
            if not api_key:
                logger.warning("openrouter_key_missing")
                return False

            resp = await self._client.get(KEY_INFO_URL, headers=_auth(api_key))
            if resp.status_code == 200 and resp.content and resp.json() is not None:
                logger.info("openrouter_key_valid")
                return True

            logger.warning("openrouter_key_invalid", status=resp.status_code)
            return False

        except Exception as exc:
            logger.warning("openrouter_key_validation_error", error=describe_error(exc))
            return False

    async def get_credits(self) -> "CreditInfo":
        try:
            api_key = await self._credentials.get(self.provider_id)
            if not api_key:
                return missing_key_credits(self._clock())

            logger.info("openrouter_fetch_credits")
            headers = _auth(api_key)

            balance = await self._fetch_total_credits(headers)
            if balance is None:
                balance = await self._fetch_key_balance(headers)

            return self._record(balance)

        except Exception as exc:
            message = describe_error(exc)
            logger.warning("openrouter_fetch_failed", error=message)
            return error_credits(message, self._clock())

    async def _fetch_total_credits(self, headers: "dict[str, str]") -> "float | None":
        """
        remaining = total_credits - total_usage from /credits. Returns
        None on any failure so the caller can fall back to /auth/key.
        """
        try:
            resp = await self._client.get(CREDITS_URL, headers=headers)
            if resp.status_code != 200:
                logger.info(
                    "openrouter_credits_unavailable",
                    status=resp.status_code,
                    fallback="auth_key",
                )
                return None

            data = _unwrap(resp.json())

        except (httpx.HTTPError, ValueError, InvalidResponseError) as exc:
            logger.info(
                "openrouter_credits_unavailable",
                error=describe_error(exc),
                fallback="auth_key",
            )
            return None

        total_credits = as_number(data.get("total_credits"))
        total_usage = as_number(data.get("total_usage"))
        if total_credits is None or total_usage is None:
            logger.info("openrouter_credits_incomplete", fallback="auth_key")
            return None

        return max(0.0, total_credits - total_usage)

    async def _fetch_key_balance(self, headers: "dict[str, str]") -> "float | None":
        resp = await self._client.get(KEY_INFO_URL, headers=headers)
        resp.raise_for_status()
        if resp.status_code != 200:
            raise InvalidResponseError("Invalid API response")

        return resolve_key_balance(_unwrap(resp.json()))

    def _record(self, balance: "float | None") -> "CreditInfo":
        now = self._clock()

        if balance is not None:
            self._history.append(balance, now)
        else:
            self._history.prune(now)

        history = self._history.snapshot()
        # no current balance, so no rate
        rate = (
            None
            if balance is None
            else estimate_rate(history, self._config.consumption_rate_period, now)
        )

        display = PAYG_BALANCE if balance is None else format_currency(balance, CURRENCY)
        logger.info(
            "openrouter_credits_fetched",
            balance=display,
            samples=len(history),
            consumption_rate=rate,
        )

        return CreditInfo(
            balance=display,
            currency=CURRENCY,
            last_updated=now,
            balance_numeric=balance,
            consumption_rate=rate,
            historical_data=history,
        )


def _auth(api_key: "str") -> "dict[str, str]":
    return {"Authorization": f"Bearer {api_key}"}
