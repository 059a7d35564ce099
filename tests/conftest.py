import sys
from pathlib import Path

import pytest


# Ensure local src/ package imports work without editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from mnemograph.core.config import KnowledgeConfig, MemoryConfig, MnemoGraphConfig, reset_config  # noqa: E402
from mnemograph.core.embeddings import EmbeddingProvider  # noqa: E402
from mnemograph.core.knowledge_graph import KnowledgeGraphStore  # noqa: E402
from mnemograph.core.predictors import PredictorRegistry  # noqa: E402
from mnemograph.core.working_memory import MemorySessionManager  # noqa: E402

from mocks import FakeClock  # noqa: E402
from mocks.predictors import TEST_DIM  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests marked slow unless --run-slow is passed."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_config():
    """Reset config state between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> MnemoGraphConfig:
    """Small-dimension config so vector math stays cheap."""
    return MnemoGraphConfig(dimensionality=TEST_DIM)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> PredictorRegistry:
    return PredictorRegistry(timeout_seconds=0.5)


@pytest.fixture
def embeddings(registry) -> EmbeddingProvider:
    return EmbeddingProvider(TEST_DIM, registry)


@pytest.fixture
def graph(embeddings, registry) -> KnowledgeGraphStore:
    return KnowledgeGraphStore(embeddings, registry=registry, config=KnowledgeConfig())


@pytest.fixture
def memory_config() -> MemoryConfig:
    return MemoryConfig(capacity=3)


@pytest.fixture
def sessions(embeddings, graph, memory_config, clock) -> MemorySessionManager:
    return MemorySessionManager(embeddings, graph, config=memory_config, clock=clock)
