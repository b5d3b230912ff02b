import os

# Settings are read at import time, so these have to be in place first
os.environ.setdefault("SECRET_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REPORT_TIMEZONE", "UTC")

import pytest  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"
