import os

from infrastructure import constants
from infrastructure.settings import load_settings


def test_load_settings_defaults():
    settings = load_settings({})

    assert settings.production_mode is False
    assert settings.base_url == constants.DEFAULT_BASE_URL
    assert settings.timezone == 'Europe/Paris'
    assert settings.booking_max_retry_attempts == 3
    assert settings.retry_base_delay_seconds == 1.0
    assert settings.retry_backoff_factor == 2.0
    assert settings.waitlist_poll_interval_seconds > settings.cycle_interval_seconds
    assert settings.ledger_file == os.path.join('data', 'booked_slots.json')


def test_load_settings_reads_overrides_and_ignores_garbage():
    settings = load_settings(
        {
            'PRODUCTION_MODE': 'yes',
            'BOOKING_BASE_URL': 'https://example.test/',
            'CYCLE_INTERVAL_SECONDS': '15',
            'MAX_CONCURRENT_REQUESTS': '0',
            'BOOKING_RETRY_MAX_DELAY': 'soon',
            'DATA_DIRECTORY': '/tmp/wod',
        }
    )

    assert settings.production_mode is True
    assert settings.base_url == 'https://example.test'
    assert settings.cycle_interval_seconds == 15
    assert settings.max_concurrent_requests == 1
    assert settings.retry_max_delay_seconds == constants.RETRY_MAX_DELAY_SECONDS
    assert settings.status_file == os.path.join('/tmp/wod', 'status.json')
