import pathlib
import sys
from typing import Iterator

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from mathsolver.config import Settings, get_settings  # noqa: E402


def make_settings(**overrides) -> Settings:
    values = {
        "gemini_api_key": "test-key",
        "gemini_base_url": "https://gemini.test",
        "heartbeat_interval_seconds": 1.0,
        "stream_padding_bytes": 2048,
        "retry_backoff_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # pyright: ignore[reportCallIssue]


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_sse_exit_event() -> Iterator[None]:
    """sse-starlette keeps a module-level exit event bound to the first loop."""

    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
