import logging

import pytest

from infrastructure.logging_config import BOOKING_LOGGERS, mask_secret, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    components = {name: list(logging.getLogger(name).handlers) for name in BOOKING_LOGGERS}
    yield
    for handler in root.handlers:
        handler.close()
    root.setLevel(saved[0])
    root.handlers = saved[1]
    for name, handlers in components.items():
        for handler in logging.getLogger(name).handlers:
            handler.close()
        logging.getLogger(name).handlers = handlers


def test_mask_secret():
    assert mask_secret("alice@example.com", visible=3) == "ali" + "*" * 14
    assert mask_secret("ab") == "**"
    assert mask_secret(None) == ""


def test_setup_logging_creates_rotating_files(tmp_path, restore_logging):
    log_dir = setup_logging(str(tmp_path / 'logs'), production_mode=False)

    logging.getLogger('BookingExecutor').info("booking line")

    names = {path.name for path in (tmp_path / 'logs').iterdir()}
    assert log_dir == str(tmp_path / 'logs')
    assert {'bot.log', 'bot_debug.log', 'bot_errors.log', 'booking.log'} <= names
    assert "booking line" in (tmp_path / 'logs' / 'booking.log').read_text(encoding='utf-8')


def test_setup_logging_production_skips_debug_file(tmp_path, restore_logging):
    setup_logging(str(tmp_path), production_mode=True)

    assert not (tmp_path / 'bot_debug.log').exists()
    assert logging.getLogger().level == logging.INFO
