from __future__ import annotations

import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from config import Settings  # noqa: E402


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        lastfm_api_key="test-api-key",
        lastfm_api_secret="test-secret",
        lastfm_session_key="test-sk",
        webhook_api_key="hook-secret",
    )
