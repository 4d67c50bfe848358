# tests/conftest.py
import pytest

from evenement.core import log
from evenement.core import metrics
from evenement.core.manager import EvenementManager


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging():
    # reads LOG_LEVEL / LOG_JSON / .env if available
    log.setup()
    yield


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield


@pytest.fixture
def manager():
    """Isolated manager so tests never leak handlers into the global one."""
    return EvenementManager(name="test")
