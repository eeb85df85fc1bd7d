# tradewatch/logger.py
import logging
import sys

from tradewatch.config import config

# Third-party loggers that drown out agent events at INFO
NOISY_LOGGERS = ('aiohttp.access', 'werkzeug', 'asyncio')

def setup_logging(level: str = None):
    """Configures the root logger for the agents, the CLI and the control app."""
    resolved = getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s.%(msecs)03dZ [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout
    )
    if resolved > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
