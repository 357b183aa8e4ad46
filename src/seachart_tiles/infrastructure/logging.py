"""Logging setup for the command line tool"""
import logging
import sys
from typing import Any, Dict, List

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
NOISY_LOGGERS = ['urllib3', 'requests']


class LoggingManager:
    """Configures the root logger from the 'logging' config section.

    Recognised keys: ``level`` (name, default INFO), ``format`` and an
    optional ``file`` that receives a copy of every record.
    """

    @staticmethod
    def setup_logging(logging_config: Dict[str, Any]) -> None:
        level_name = str(logging_config.get('level', 'INFO')).upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO

        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if logging_config.get('file'):
            handlers.append(logging.FileHandler(logging_config['file'], encoding='utf-8'))

        logging.basicConfig(
            level=level,
            format=logging_config.get('format', DEFAULT_FORMAT),
            handlers=handlers,
        )

        # HTTP client chatter only at WARNING and above
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
