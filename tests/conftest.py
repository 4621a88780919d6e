from datetime import datetime, timedelta

import pytest

from finfeed.config import Settings

from .helpers import NOW


@pytest.fixture
def settings():
    """Settings with timing knobs zeroed so tests never sleep."""
    return Settings(
        fetch_timeout_secs=1.0,
        fetch_attempts=2,
        retry_delay_secs=0.0,
        batch_size=3,
        batch_delay_secs=0.0,
        breaker_threshold=3,
        breaker_cooldown_secs=300.0,
        disabled_feeds=[],
        feed_url_overrides={},
        log_dir=None,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def hours_ago(now):
    def _ago(h: float) -> datetime:
        return now - timedelta(hours=h)

    return _ago
