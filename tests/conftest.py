from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import CollectorRegistry

from opencredits.config import Config
from opencredits.credentials import EnvCredentialStore


class FakeClock:
    """
    callable clock that only moves when told to.
    """

    def __init__(self, start: "datetime") -> "None":
        self.now = start

    def __call__(self) -> "datetime":
        return self.now

    def advance(self, **kwargs: "float") -> "None":
        self.now += timedelta(**kwargs)


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def config() -> "Config":
    return Config(enabled_providers={"openrouter"})


@pytest.fixture()
def credentials() -> "EnvCredentialStore":
    """
    credential store with only an OpenRouter key.
    """
    return EnvCredentialStore(environ={"OPENROUTER_API_KEY": "sk-or-test"})


@pytest.fixture()
def clock() -> "FakeClock":
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
