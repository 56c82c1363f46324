from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from opencredits.models import CreditInfo


class MetricsUpdater:
    """
    mirrors refresh cycle results into Prometheus metrics:
     - balance and consumption rate gauges per provider, only
     set from valid numeric results.
     - refresh duration, errors and last success per provider.
     - a counter of refresh triggers dropped because a cycle
     was already running.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._balance: "Gauge" = Gauge(
            "opencredits_balance",
            "Remaining credit balance per provider",
            ["provider", "currency"],
            registry=registry,
        )
        self._consumption_rate: "Gauge" = Gauge(
            "opencredits_consumption_rate_per_hour",
            "Estimated credits consumed per hour",
            ["provider"],
            registry=registry,
        )
        self._refresh_duration: "Histogram" = Histogram(
            "opencredits_refresh_duration_seconds",
            "Duration of provider credit fetches",
            ["provider"],
            registry=registry,
        )
        self._refresh_errors: "Counter" = Counter(
            "opencredits_refresh_errors_total",
            "Total number of failed credit fetches by provider",
            ["provider"],
            registry=registry,
        )
        self._last_refresh_success: "Gauge" = Gauge(
            "opencredits_last_refresh_success_timestamp_seconds",
            "Unix timestamp of last successful credit fetch per provider",
            ["provider"],
            registry=registry,
        )
        self._refresh_skipped: "Counter" = Counter(
            "opencredits_refresh_skipped_total",
            "Refresh triggers dropped while a cycle was running",
            registry=registry,
        )

    def record_credits(self, provider: "str", credits: "CreditInfo") -> "None":
        """
        updates per-provider metrics from a fetch result.
        """
        if not credits.is_valid:
            self._refresh_errors.labels(provider=provider).inc()
            return

        self._last_refresh_success.labels(provider=provider).set(
            credits.last_updated.timestamp()
        )
        if credits.balance_numeric is not None:
            self._balance.labels(provider=provider, currency=credits.currency).set(
                credits.balance_numeric
            )
        if credits.consumption_rate is not None:
            self._consumption_rate.labels(provider=provider).set(
                credits.consumption_rate
            )

    def observe_refresh_duration(
        self, provider: "str", duration_seconds: "float"
    ) -> "None":
        self._refresh_duration.labels(provider=provider).observe(duration_seconds)

    def inc_refresh_skipped(self) -> "None":
        self._refresh_skipped.inc()
