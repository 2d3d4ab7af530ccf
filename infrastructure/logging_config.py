"""
Logging configuration for the booking orchestrator.

Console output stays short; the rotating files carry file/line detail. Booking
components also write to a dedicated ``booking.log`` so a single user's history
can be followed without the HTTP noise.
"""

import logging
import logging.handlers
import os
from datetime import datetime
from typing import Optional

BOOKING_LOGGERS = (
    'BookingOrchestrator',
    'BookingExecutor',
    'WaitingListMonitor',
    'SessionClient',
    'SessionPool',
    'BookingLedger',
)


def mask_secret(value: Optional[str], visible: int = 2) -> str:
    """Return ``value`` with everything but the first characters hidden."""

    if not value:
        return ''
    if len(value) <= visible:
        return '*' * len(value)
    return value[:visible] + '*' * (len(value) - visible)


def setup_logging(
    log_dir: Optional[str] = None,
    *,
    production_mode: Optional[bool] = None,
    verbose: bool = False,
) -> str:
    """
    Set up console and rotating file handlers on the root logger.

    Args:
        log_dir: Directory for log files. Defaults to ``LOG_DIRECTORY`` or
            ``logs/latest_log``.
        production_mode: Only warnings on the console and no debug file when
            true. Defaults to the ``PRODUCTION_MODE`` environment variable.
        verbose: Show debug messages on the console as well.

    Returns:
        The directory the log files are written to.
    """
    if production_mode is None:
        production_mode = os.getenv('PRODUCTION_MODE', 'false').lower() == 'true'
    log_dir = log_dir or os.getenv('LOG_DIRECTORY', os.path.join('logs', 'latest_log'))
    os.makedirs(log_dir, exist_ok=True)

    main_log_file = os.path.join(log_dir, 'bot.log')
    debug_log_file = os.path.join(log_dir, 'bot_debug.log')
    error_log_file = os.path.join(log_dir, 'bot_errors.log')
    booking_log_file = os.path.join(log_dir, 'booking.log')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose or not production_mode else logging.INFO)
    root_logger.handlers = []

    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d in %(funcName)s()] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    if verbose:
        console_handler.setLevel(logging.DEBUG)
    else:
        console_handler.setLevel(logging.WARNING if production_mode else logging.INFO)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    main_file_handler = logging.handlers.RotatingFileHandler(
        main_log_file,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    main_file_handler.setLevel(logging.INFO)
    main_file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(main_file_handler)

    if not production_mode:
        debug_file_handler = logging.handlers.RotatingFileHandler(
            debug_log_file,
            maxBytes=50*1024*1024,  # 50MB
            backupCount=3,
            encoding='utf-8'
        )
        debug_file_handler.setLevel(logging.DEBUG)
        debug_file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(debug_file_handler)

    error_file_handler = logging.handlers.RotatingFileHandler(
        error_log_file,
        maxBytes=5*1024*1024,  # 5MB
        backupCount=5,
        encoding='utf-8'
    )
    error_file_handler.setLevel(logging.ERROR)
    error_file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_file_handler)

    booking_handler = logging.handlers.RotatingFileHandler(
        booking_log_file,
        maxBytes=20*1024*1024,  # 20MB
        backupCount=5,
        encoding='utf-8'
    )
    booking_handler.setLevel(logging.INFO if production_mode else logging.DEBUG)
    booking_handler.setFormatter(detailed_formatter)

    for name in BOOKING_LOGGERS:
        component_logger = logging.getLogger(name)
        component_logger.handlers = [booking_handler]
        component_logger.setLevel(logging.INFO if production_mode else logging.DEBUG)

    # Reduce noise from external libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    root_logger.info("=" * 80)
    root_logger.info("Booking orchestrator logging initialized - %s", datetime.now())
    root_logger.info("Production Mode: %s", 'ON' if production_mode else 'OFF')
    root_logger.info("Main log: %s", main_log_file)
    if not production_mode:
        root_logger.info("Debug log: %s", debug_log_file)
    root_logger.info("Error log: %s", error_log_file)
    root_logger.info("Booking log: %s", booking_log_file)
    root_logger.info("=" * 80)
    return log_dir
