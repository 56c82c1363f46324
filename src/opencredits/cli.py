import argparse

from opencredits.config import API_KEY_ENV_VARS, UPDATE_INTERVALS, Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    """
    builds the config from the environment and applies command
    line overrides on top of it.
    """
    parser = argparse.ArgumentParser(
        prog="opencredits",
        description="Multi-provider API credit balance monitor",
    )
    parser.add_argument(
        "--update-interval",
        dest="update_interval",
        choices=list(UPDATE_INTERVALS),
        help="How often credits are refreshed (default: 5 minutes)",
    )
    parser.add_argument(
        "--provider",
        dest="providers",
        action="append",
        choices=list(API_KEY_ENV_VARS),
        help="Enable a provider, may be repeated (default: every provider with an API key)",
    )
    parser.add_argument(
        "--rate-window",
        dest="rate_window",
        type=int,
        help="Consumption rate lookback window in minutes (default: 60)",
    )
    parser.add_argument(
        "--timeout",
        dest="timeout",
        type=float,
        help="Per-request network timeout in seconds (default: 10)",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default="",
        help="Address to expose Prometheus metrics on, e.g. :9186 (default: disabled)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=["console", "json"],
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Refresh a single time and exit",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print per-provider details along with the summary",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    if args.update_interval is not None:
        config.update_interval_label = args.update_interval
    if args.providers:
        config.enabled_providers = set(args.providers)
    if args.rate_window is not None:
        if args.rate_window <= 0:
            parser.error("--rate-window must be positive")
        config.consumption_rate_period = args.rate_window
    if args.timeout is not None:
        config.request_timeout = args.timeout
    config.listen_address = args.listen_address
    config.log_level = args.log_level
    config.log_format = args.log_format
    config.once = args.once
    config.verbose = args.verbose
    return config
