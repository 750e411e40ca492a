import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_logging():
    # main() reconfigures structlog globally
    yield
    structlog.reset_defaults()
