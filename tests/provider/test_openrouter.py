import httpx
import pytest
import respx

from opencredits.config import Config
from opencredits.credentials import EnvCredentialStore
from opencredits.provider.openrouter import (
    CREDITS_URL,
    KEY_INFO_URL,
    OpenRouterProvider,
    resolve_key_balance,
)


def _provider(
    credentials: "EnvCredentialStore", config: "Config", clock: "object"
) -> "OpenRouterProvider":
    return OpenRouterProvider(credentials, config, clock=clock)


class TestResolveKeyBalance:
    def test_credit_left_wins_over_balance(self) -> "None":
        assert resolve_key_balance({"credit_left": 5, "balance": 3}) == 5.0

    def test_balance_when_no_credit_left(self) -> "None":
        assert resolve_key_balance({"balance": 3, "limit": 10, "usage": 1}) == 3.0

    def test_limit_minus_usage(self) -> "None":
        assert resolve_key_balance({"limit": 10, "usage": 4}) == 6.0

    def test_limit_minus_usage_floored_at_zero(self) -> "None":
        assert resolve_key_balance({"limit": 10, "usage": 14.5}) == 0.0

    def test_payg_when_nothing_numeric(self) -> "None":
        assert resolve_key_balance({}) is None
        assert resolve_key_balance({"limit": None, "usage": 2.5}) is None

    def test_numeric_strings_are_accepted(self) -> "None":
        assert resolve_key_balance({"credit_left": "7.25"}) == 7.25

    def test_non_numeric_credit_left_falls_through(self) -> "None":
        assert resolve_key_balance({"credit_left": "n/a", "balance": 3}) == 3.0

    def test_oversized_credit_left_falls_through(self) -> "None":
        assert resolve_key_balance({"credit_left": 10**400, "balance": 3}) == 3.0


class TestOpenRouterProviderGetCredits:
    @pytest.mark.asyncio
    @respx.mock
    async def test_reads_totals_from_credits_endpoint(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        route = respx.get(CREDITS_URL).mock(
            return_value=httpx.Response(
                200,
                json={"data": {"total_credits": 20, "total_usage": 14.8}},
            )
        )

        provider = _provider(credentials, config, clock)
        credits = await provider.get_credits()

        assert credits.error is None
        assert credits.balance == "$5.20"
        assert credits.balance_numeric == pytest.approx(5.2)
        assert credits.currency == "$"
        assert credits.last_updated == clock()
        assert credits.consumption_rate is None
        assert credits.historical_data is not None
        assert len(credits.historical_data) == 1
        assert respx.calls.call_count == 1

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-or-test"
        assert request.headers["X-Title"] == "OpenCredits"

    @pytest.mark.asyncio
    @respx.mock
    async def test_used_up_credits_are_floored_at_zero(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            return_value=httpx.Response(
                200, json={"total_credits": 10, "total_usage": 12}
            )
        )

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.balance == "$0.00"
        assert credits.balance_numeric == 0.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_key_info_on_non_200(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(403))
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(
                200, json={"data": {"credit_left": 5, "balance": 3}}
            )
        )

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error is None
        assert credits.balance == "$5.00"
        assert credits.balance_numeric == 5.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_when_totals_are_missing(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            return_value=httpx.Response(200, json={"data": {"total_credits": 10}})
        )
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"limit": 10, "usage": 4}})
        )

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.balance == "$6.00"
        assert credits.balance_numeric == 6.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_when_credits_request_fails(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(side_effect=httpx.ConnectError("refused"))
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"balance": 3}})
        )

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.balance == "$3.00"

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_when_totals_overflow(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            return_value=httpx.Response(
                200, json={"total_credits": 10**400, "total_usage": 1}
            )
        )
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"credit_left": 5}})
        )

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error is None
        assert credits.balance == "$5.00"

    @pytest.mark.asyncio
    @respx.mock
    async def test_payg_key_has_no_numeric_balance(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(404))
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"label": "sk-or-..."}})
        )

        provider = _provider(credentials, config, clock)
        credits = await provider.get_credits()

        assert credits.error is None
        assert credits.balance == "PAYG"
        assert credits.balance_numeric is None
        assert len(provider.history) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_payg_after_history_reports_no_rate(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            side_effect=[
                httpx.Response(200, json={"total_credits": 10, "total_usage": 0}),
                httpx.Response(200, json={"total_credits": 10, "total_usage": 2}),
                httpx.Response(404),
            ]
        )
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"label": "sk-or-..."}})
        )

        provider = _provider(credentials, config, clock)
        await provider.get_credits()
        clock.advance(hours=1)
        await provider.get_credits()
        clock.advance(minutes=5)
        credits = await provider.get_credits()

        assert credits.balance == "PAYG"
        assert credits.consumption_rate is None
        assert credits.historical_data is not None
        assert [s.balance for s in credits.historical_data] == [10.0, 8.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_consumption_rate_from_history(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            side_effect=[
                httpx.Response(200, json={"total_credits": 10, "total_usage": 0}),
                httpx.Response(200, json={"total_credits": 10, "total_usage": 2}),
            ]
        )

        provider = _provider(credentials, config, clock)
        first = await provider.get_credits()
        clock.advance(hours=1)
        second = await provider.get_credits()

        assert first.consumption_rate is None
        assert second.consumption_rate == pytest.approx(2.0)
        assert second.historical_data is not None
        assert [s.balance for s in second.historical_data] == [10.0, 8.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_window_comes_from_config(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(
            side_effect=[
                httpx.Response(200, json={"total_credits": 10, "total_usage": 0}),
                httpx.Response(200, json={"total_credits": 10, "total_usage": 1}),
                httpx.Response(200, json={"total_credits": 10, "total_usage": 4}),
            ]
        )
        config.consumption_rate_period = 30

        provider = _provider(credentials, config, clock)
        await provider.get_credits()
        clock.advance(minutes=30)
        await provider.get_credits()
        clock.advance(minutes=30)
        credits = await provider.get_credits()

        # baseline is the sample 30 minutes back: 9 -> 6 in half an hour
        assert credits.consumption_rate == pytest.approx(6.0)

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_makes_no_request(
        self, config: "Config", clock: "object"
    ) -> "None":
        provider = _provider(EnvCredentialStore(environ={}), config, clock)

        credits = await provider.get_credits()

        assert credits.balance == "No API Key"
        assert credits.currency == ""
        assert credits.error == "API key not configured"
        assert respx.calls.call_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_key(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(401))
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(401, json={"error": "No auth credentials"})
        )

        provider = _provider(credentials, config, clock)
        credits = await provider.get_credits()

        assert credits.balance == "Error"
        assert credits.error == "Invalid API key"
        assert len(provider.history) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limited(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(429))
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(429))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error == "Rate limit exceeded"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
        respx.get(KEY_INFO_URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error == "Request timeout"

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(500))
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(503))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error == "Request failed with status code 503"

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_body(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(200, text="<html>"))
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(200, text="<html>"))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.balance == "Error"
        assert credits.error

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_body(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(500))
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(200, json=[1, 2]))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error == "Malformed response body"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_success_status(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(CREDITS_URL).mock(return_value=httpx.Response(500))
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(204))

        credits = await _provider(credentials, config, clock).get_credits()

        assert credits.error == "Invalid API response"


class TestOpenRouterProviderValidateApiKey:
    @pytest.mark.asyncio
    @respx.mock
    async def test_valid_key(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(KEY_INFO_URL).mock(
            return_value=httpx.Response(200, json={"data": {"label": "sk-or-..."}})
        )

        assert await _provider(credentials, config, clock).validate_api_key() is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_key(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(401))

        assert await _provider(credentials, config, clock).validate_api_key() is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(200))

        assert await _provider(credentials, config, clock).validate_api_key() is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_object_is_accepted(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(KEY_INFO_URL).mock(return_value=httpx.Response(200, json={}))

        assert await _provider(credentials, config, clock).validate_api_key() is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_failure(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        respx.get(KEY_INFO_URL).mock(side_effect=httpx.ConnectError("refused"))

        assert await _provider(credentials, config, clock).validate_api_key() is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key(self, config: "Config", clock: "object") -> "None":
        provider = _provider(EnvCredentialStore(environ={}), config, clock)

        assert await provider.validate_api_key() is False
        assert respx.calls.call_count == 0


class TestOpenRouterProviderMetadata:
    def test_identity(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        provider = _provider(credentials, config, clock)
        assert provider.provider_id == "openrouter"
        assert provider.name == "OpenRouter"
        assert provider.short_name == "OR"

    def test_enabled_flag_is_read_live(
        self, credentials: "EnvCredentialStore", config: "Config", clock: "object"
    ) -> "None":
        provider = _provider(credentials, config, clock)
        assert provider.is_enabled() is True

        config.enabled_providers = set()
        assert provider.is_enabled() is False
