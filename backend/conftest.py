import pytest

from common.config import get_settings

# Read by Settings on construction, so unset for every test
SETTINGS_ENV_VARS = [
    "POLL_INTERVAL_SECONDS",
    "FALLBACK_SPEED_MPS",
    "DEFAULT_DESTINATION_LAT",
    "DEFAULT_DESTINATION_LON",
    "NOTIFICATIONS_ENABLED",
    "AUTO_MESSAGE_ENABLED",
    "DELAY_MESSAGE_TEMPLATE",
    "MAPBOX_ACCESS_TOKEN",
    "EXPO_PUSH_TOKEN",
    "EXPO_ACCESS_TOKEN",
    "MESSAGING_WEBHOOK_URL",
]


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch):
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
