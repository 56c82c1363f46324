import asyncio
import time
from typing import Awaitable, Callable, Coroutine, Sequence

import structlog

from opencredits.config import (
    PROVIDERS_KEY_PREFIX,
    SHOW_IN_STATUS_BAR_KEY,
    UPDATE_INTERVAL_KEY,
    Config,
)
from opencredits.display import reduce_display
from opencredits.metrics import MetricsUpdater
from opencredits.models import CreditInfo
from opencredits.provider.base import CreditProvider
from opencredits.provider.common import error_credits, utcnow
from opencredits.sink import DisplaySink

logger = structlog.get_logger()

REFRESH_FAILED_MESSAGE = "Failed to refresh credits"

ConfigureHandler = Callable[[], Awaitable[None]]


class RefreshScheduler:
    """
    RefreshScheduler drives the periodic refresh of all enabled
    providers and pushes the reduced result to a display sink.

    At most one refresh cycle runs at a time: a trigger that arrives
    while a cycle is in flight is dropped, not queued. Within a cycle
    every enabled provider is fetched concurrently and the display is
    only updated once all of them have settled. The timer period comes
    from the config and the timer is recreated whenever it changes.
    """

    def __init__(
        self,
        providers: "Sequence[CreditProvider]",
        config: "Config",
        sink: "DisplaySink",
        metrics: "MetricsUpdater",
        configure: "ConfigureHandler | None" = None,
    ) -> "None":
        self._providers = list(providers)
        self._config = config
        self._sink = sink
        self._metrics = metrics
        self._configure = configure
        self._refreshing = False
        self._period: "float | None" = None
        self._timer: "asyncio.Task[None] | None" = None
        self._tasks: "set[asyncio.Task[object]]" = set()
        self._unsubscribe: "Callable[[], None] | None" = None
        self._stop_event: "asyncio.Event" = asyncio.Event()

    @property
    def is_refreshing(self) -> "bool":
        return self._refreshing

    @property
    def period(self) -> "float | None":
        """
        the current timer period in seconds, None while stopped.
        """
        return self._period

    def start(self) -> "None":
        """
        subscribes to config changes and starts the periodic timer,
        which also runs a first refresh right away. Must be called
        from a running event loop.
        """
        self._stop_event.clear()
        if self._unsubscribe is None:
            self._unsubscribe = self._config.subscribe(self._on_config_changed)
        self.restart()

    def restart(self, period_seconds: "float | None" = None) -> "None":
        """
        recreates the timer with the given period, or the configured
        update interval, and refreshes immediately.
        """
        self._cancel_timer()

        interval = self._config.update_interval
        period = float(interval.seconds if period_seconds is None else period_seconds)
        logger.info("periodic_refresh_started", interval=interval.label, period=period)

        self._period = period
        self.trigger_refresh()
        self._timer = asyncio.get_running_loop().create_task(self._tick(period))

    def stop(self) -> "None":
        """
        stops the periodic timer and releases run(). Safe to call
        any number of times. An in-flight cycle is not cancelled.
        """
        if self._timer is not None:
            logger.info("periodic_refresh_stopped")
        self._cancel_timer()
        self._stop_event.set()

    async def run(self) -> "None":
        """
        starts the scheduler and waits until stop() is called.
        """
        self.start()
        await self._stop_event.wait()

    async def dispose(self) -> "None":
        """
        stops the timer, drops the config subscription, waits for
        in-flight work and closes all providers.
        """
        self.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for provider in self._providers:
            await provider.close()

    def trigger_refresh(self) -> "None":
        """
        requests a refresh without waiting for it ("refresh now").
        """
        self._spawn(self.refresh())

    def trigger_configuration(self) -> "None":
        self._spawn(self.open_configuration())

    async def open_configuration(self) -> "None":
        if self._configure is None:
            logger.warning("configuration_handler_missing")
            return

        try:
            await self._configure()
        except Exception as exc:
            logger.exception("configuration_failed")
            self._show_error(f"Configuration failed: {exc}")

    async def refresh(self) -> "dict[str, CreditInfo] | None":
        """
        runs one refresh cycle and returns its results keyed by
        provider id. Returns None if the trigger was dropped because
        a cycle was already running, or if the cycle itself failed.
        """
        if self._refreshing:
            logger.info("refresh_skipped", reason="in_progress")
            self._metrics.inc_refresh_skipped()
            return None

        # set before the first await, so no second cycle can sneak in
        self._refreshing = True
        try:
            self._show_loading()
            logger.info("refresh_start")

            enabled = [p for p in self._providers if p.is_enabled()]
            if not enabled:
                logger.info("no_providers_enabled")
                self._sink.hide()
                return {}

            settled = await asyncio.gather(
                *(self._fetch_provider(provider) for provider in enabled)
            )
            results = dict(settled)

            text, tooltip = reduce_display([p.registration for p in enabled], results)
            self._update_display(text, tooltip)
            logger.info("refresh_end", text=text)
            return results

        except Exception:
            logger.exception("refresh_failed")
            self._show_error(REFRESH_FAILED_MESSAGE)
            return None

        finally:
            self._refreshing = False

    async def _fetch_provider(
        self, provider: "CreditProvider"
    ) -> "tuple[str, CreditInfo]":
        provider_id = provider.provider_id
        started = time.monotonic()

        # providers are not supposed to raise, this keeps one that
        # does from failing the whole cycle
        try:
            logger.debug("provider_fetch_start", provider=provider_id)
            credits = await provider.get_credits()
        except Exception as exc:
            logger.exception("provider_fetch_error", provider=provider_id)
            credits = error_credits(str(exc), utcnow())

        self._metrics.observe_refresh_duration(provider_id, time.monotonic() - started)
        self._metrics.record_credits(provider_id, credits)

        if credits.error:
            logger.info("provider_fetch_done", provider=provider_id, error=credits.error)
        else:
            logger.info("provider_fetch_done", provider=provider_id, balance=credits.balance)

        return provider_id, credits

    async def _tick(self, period: "float") -> "None":
        while True:
            await asyncio.sleep(period)
            self.trigger_refresh()

    def _cancel_timer(self) -> "None":
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._period = None

    def _spawn(self, coro: "Coroutine[object, object, object]") -> "None":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_config_changed(self, keys: "frozenset[str]") -> "None":
        logger.info("configuration_changed", keys=sorted(keys))

        if UPDATE_INTERVAL_KEY in keys and self._timer is not None:
            # restart() refreshes as well
            self.restart()

        if SHOW_IN_STATUS_BAR_KEY in keys:
            if self._config.show_in_status_bar:
                self.trigger_refresh()
            else:
                self._sink.hide()

        if any(key.startswith(PROVIDERS_KEY_PREFIX) for key in keys):
            self.trigger_refresh()

    def _show_loading(self) -> "None":
        if self._config.show_in_status_bar:
            self._sink.show_loading()

    def _show_error(self, message: "str") -> "None":
        if self._config.show_in_status_bar:
            self._sink.show_error(message)

    def _update_display(self, text: "str", tooltip: "str") -> "None":
        if self._config.show_in_status_bar:
            self._sink.update_display(text, tooltip)
        else:
            self._sink.hide()
