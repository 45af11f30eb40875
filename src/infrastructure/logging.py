"""Logging configuration for the tile viewer server"""
import logging
import sys
from typing import Dict, Any, List

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
NOISY_LOGGERS = ['urllib3', 'requests']


class LoggingManager:
    """Configures root logging from the ``logging`` section of config.json"""

    @staticmethod
    def setup_logging(config: Dict[str, Any]) -> None:
        """Setup logging based on configuration.

        Recognised keys: ``level``, ``format``, ``file`` (optional log file
        written in addition to stdout) and ``quiet`` (extra logger names
        lowered to WARNING).
        """
        logging_config = config.get('logging', {})

        level_name = str(logging_config.get('level', 'INFO')).upper()
        level = getattr(logging, level_name, logging.INFO)
        format_str = logging_config.get('format', DEFAULT_FORMAT)

        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        log_file = logging_config.get('file')
        if log_file:
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

        logging.basicConfig(
            level=level,
            format=format_str,
            handlers=handlers,
            force=True
        )

        # HTTP client libraries log every connection at DEBUG/INFO
        for name in NOISY_LOGGERS + list(logging_config.get('quiet', [])):
            logging.getLogger(name).setLevel(logging.WARNING)
