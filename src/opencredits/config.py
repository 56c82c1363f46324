import os
from dataclasses import dataclass, field, fields
from typing import Callable, Mapping


# label -> minutes
UPDATE_INTERVALS: "dict[str, int]" = {
    "1 minute": 1,
    "5 minutes": 5,
    "15 minutes": 15,
    "30 minutes": 30,
    "1 hour": 60,
    "6 hours": 360,
    "24 hours": 1440,
}
DEFAULT_UPDATE_INTERVAL = "5 minutes"
DEFAULT_CONSUMPTION_RATE_PERIOD = 60

# provider id -> environment variable holding its API key
API_KEY_ENV_VARS: "dict[str, str]" = {
    "openrouter": "OPENROUTER_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

# keys reported to change listeners
UPDATE_INTERVAL_KEY = "update_interval"
SHOW_IN_STATUS_BAR_KEY = "show_in_status_bar"
CONSUMPTION_RATE_PERIOD_KEY = "consumption_rate_period"
PROVIDERS_KEY_PREFIX = "providers."

_FALSE_VALUES = {"0", "false", "no", "off"}

ChangeListener = Callable[["frozenset[str]"], None]


def provider_enabled_key(provider_id: "str") -> "str":
    return f"{PROVIDERS_KEY_PREFIX}{provider_id}.enabled"


def _parse_bool(value: "str | None", default: "bool") -> "bool":
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _parse_number(
    env: "Mapping[str, str]", var: "str", cast: "Callable[[str], float]", default: "float"
) -> "float":
    raw = env.get(var, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise SystemExit(f"{var} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class UpdateInterval:
    label: "str"
    minutes: "int"

    @property
    def seconds(self) -> "int":
        return self.minutes * 60


@dataclass
class Config:
    # one of the UPDATE_INTERVALS labels
    update_interval_label: "str" = DEFAULT_UPDATE_INTERVAL
    show_in_status_bar: "bool" = True
    # lookback window for the consumption rate, in minutes
    consumption_rate_period: "int" = DEFAULT_CONSUMPTION_RATE_PERIOD
    enabled_providers: "set[str]" = field(default_factory=set)
    # per-request network timeout in seconds
    request_timeout: "float" = 10.0

    # process-level options, not watched by listeners
    # listen_address: format ":9186" or "0.0.0.0:9186",
    # empty disables the metrics server
    listen_address: "str" = ""
    log_level: "str" = "info"
    log_format: "str" = "console"
    once: "bool" = False
    verbose: "bool" = False

    _listeners: "list[ChangeListener]" = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    @classmethod
    def from_env(cls, environ: "Mapping[str, str] | None" = None) -> "Config":
        env = os.environ if environ is None else environ

        providers_raw = env.get("OPENCREDITS_PROVIDERS")
        if providers_raw is not None:
            enabled = {p.strip().lower() for p in providers_raw.split(",") if p.strip()}
        else:
            # nothing explicit, enable every provider that has a key
            enabled = {pid for pid, var in API_KEY_ENV_VARS.items() if env.get(var)}

        return cls(
            update_interval_label=env.get(
                "OPENCREDITS_UPDATE_INTERVAL", DEFAULT_UPDATE_INTERVAL
            ),
            show_in_status_bar=_parse_bool(
                env.get("OPENCREDITS_SHOW_IN_STATUS_BAR"), True
            ),
            consumption_rate_period=_parse_number(
                env,
                "OPENCREDITS_CONSUMPTION_RATE_PERIOD",
                int,
                DEFAULT_CONSUMPTION_RATE_PERIOD,
            ),
            enabled_providers=enabled,
            request_timeout=_parse_number(
                env, "OPENCREDITS_REQUEST_TIMEOUT", float, 10.0
            ),
        )

    @property
    def update_interval(self) -> "UpdateInterval":
        """
        resolves the configured label. Unknown labels keep their
        text but fall back to the default 5 minute period.
        """
        minutes = UPDATE_INTERVALS.get(
            self.update_interval_label, UPDATE_INTERVALS[DEFAULT_UPDATE_INTERVAL]
        )
        return UpdateInterval(label=self.update_interval_label, minutes=minutes)

    def is_provider_enabled(self, provider_id: "str") -> "bool":
        return provider_id in self.enabled_providers

    def subscribe(self, listener: "ChangeListener") -> "Callable[[], None]":
        """
        registers a listener called with the set of changed keys
        after every effective update(). Returns an unsubscribe
        callable, safe to call more than once.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> "None":
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(self, **changes: "object") -> "frozenset[str]":
        """
        applies the given field changes and notifies listeners with
        the keys that actually changed. Returns those keys.
        """
        known = {f.name for f in fields(self) if f.init}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"unknown config fields: {sorted(unknown)}")

        changed: "set[str]" = set()
        for name, value in changes.items():
            current = getattr(self, name)
            if current == value:
                continue

            if name == "enabled_providers":
                value = set(value)
                for pid in current.symmetric_difference(value):
                    changed.add(provider_enabled_key(pid))
            elif name == "update_interval_label":
                changed.add(UPDATE_INTERVAL_KEY)
            elif name in (SHOW_IN_STATUS_BAR_KEY, CONSUMPTION_RATE_PERIOD_KEY):
                changed.add(name)

            setattr(self, name, value)

        keys = frozenset(changed)
        if keys:
            for listener in list(self._listeners):
                listener(keys)

        return keys
