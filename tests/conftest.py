"""Pytest configuration and fixtures."""

import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from azure_mock import MockAzureContext  # noqa: E402

from rollout.clients import ClientFactory  # noqa: E402
from rollout.config import Config  # noqa: E402
from rollout.credentials import DefaultCredentialProvider  # noqa: E402
from rollout.service import ContainerAppService  # noqa: E402

SUBSCRIPTION_ID = "12345678-1234-1234-1234-123456789012"
RESOURCE_GROUP = "rg-apps"
FIXED_NOW = 1700000000.0


class RecordingSleep:
    """Async sleeper that records requested durations and returns at once."""

    def __init__(self) -> None:
        self.durations: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def azure() -> Generator[MockAzureContext, None, None]:
    with MockAzureContext() as ctx:
        yield ctx


@pytest.fixture
def factory(azure: MockAzureContext, config: Config) -> Generator[ClientFactory, None, None]:
    factory = ClientFactory(DefaultCredentialProvider(), config)
    yield factory
    factory.close()


@pytest.fixture
def service(
    factory: ClientFactory, config: Config, sleeper: RecordingSleep
) -> ContainerAppService:
    return ContainerAppService(factory, config, clock=lambda: FIXED_NOW, sleep=sleeper)
