import asyncio
import signal

import structlog
from prometheus_client import start_http_server

from opencredits.cli import parse_args
from opencredits.config import Config
from opencredits.credentials import EnvCredentialStore, SecretStore
from opencredits.logging import setup_logging
from opencredits.metrics import MetricsUpdater
from opencredits.provider.anthropic import AnthropicProvider
from opencredits.provider.base import CreditProvider
from opencredits.provider.gemini import GeminiProvider
from opencredits.provider.openai import OpenAIProvider
from opencredits.provider.openrouter import OpenRouterProvider
from opencredits.scheduler import ConfigureHandler, RefreshScheduler
from opencredits.sink import ConsoleDisplaySink

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def build_providers(
    credentials: "SecretStore", config: "Config"
) -> "list[CreditProvider]":
    """
    creates every known provider, in display order. Whether each
    one takes part in a refresh is decided by the config.
    """
    return [
        OpenRouterProvider(credentials, config, timeout=config.request_timeout),
        OpenAIProvider(credentials, config),
        AnthropicProvider(credentials, config),
        GeminiProvider(credentials, config),
    ]


def configuration_reporter(
    providers: "list[CreditProvider]", credentials: "SecretStore"
) -> "ConfigureHandler":
    """
    returns a handler that logs, per provider, whether a key is
    stored, whether the provider is enabled and whether the key
    passes its provider's validation.
    """

    async def _report() -> "None":
        for provider in providers:
            has_key = await credentials.has(provider.provider_id)
            valid = await provider.validate_api_key() if has_key else False
            logger.info(
                "provider_configuration",
                provider=provider.provider_id,
                configured=has_key,
                enabled=provider.is_enabled(),
                key_valid=valid,
            )

    return _report


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    credentials = EnvCredentialStore()
    providers = build_providers(credentials, config)

    enabled = [p.provider_id for p in providers if p.is_enabled()]
    if not enabled:
        raise SystemExit(
            "No providers enabled. Set OPENROUTER_API_KEY or OPENCREDITS_PROVIDERS."
        )
    logger.info("providers_enabled", providers=enabled)

    metrics = MetricsUpdater()
    if config.listen_address:
        host, port = _parse_listen_address(config.listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    sink = ConsoleDisplaySink(verbose=config.verbose)

    async def _run() -> "None":
        scheduler = RefreshScheduler(
            providers,
            config,
            sink,
            metrics,
            configure=configuration_reporter(providers, credentials),
        )

        if config.once:
            try:
                await scheduler.refresh()
            finally:
                await scheduler.dispose()
            return

        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, stop the timer and
        # let in-flight work finish
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.stop)
        loop.add_signal_handler(signal.SIGUSR1, scheduler.trigger_refresh)
        loop.add_signal_handler(signal.SIGHUP, scheduler.trigger_configuration)

        try:
            await scheduler.run()
        finally:
            logger.info("shutting_down")
            await scheduler.dispose()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
