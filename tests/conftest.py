"""
Shared fixtures: an in-memory chain (signer + provider) and a fake CoW
order book served through httpx.MockTransport.
"""

import httpx
import pytest

from swap_engine.core.strategies import BatchAuctionStrategy, DirectSwapStrategy, StrategyRegistry
from swap_engine.providers.cow import CowApiClient

from fakes import POOL, TOKEN_A, TOKEN_B, FakeChain, FakeCowApi, FakeProvider, FakeSigner


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def signer(chain):
    return FakeSigner(chain)


@pytest.fixture
def provider(chain):
    return FakeProvider(chain)


@pytest.fixture
def cow_api():
    return FakeCowApi()


@pytest.fixture
def cow_transport(cow_api):
    return httpx.MockTransport(cow_api.handler)


@pytest.fixture
def batch_strategy_cls(cow_transport):
    """BatchAuctionStrategy whose order book client talks to the fake venue."""

    class MockedBatchAuctionStrategy(BatchAuctionStrategy):
        def create_api_client(self, network: str) -> CowApiClient:
            return CowApiClient(network, base_url=self.config.api_base_url, transport=cow_transport)

    return MockedBatchAuctionStrategy


@pytest.fixture
def registry(batch_strategy_cls):
    registry = StrategyRegistry()
    registry.register(DirectSwapStrategy)
    registry.register(batch_strategy_cls)
    return registry


@pytest.fixture
def fast_config():
    """Strategy config with polling delays removed."""
    return {
        "confirmation_poll_interval_seconds": 0,
        "poll_interval_seconds": 0,
        "pools": {f"{TOKEN_A}:{TOKEN_B}": POOL},
    }
