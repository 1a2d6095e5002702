# packages/platform_lib/logging.py

import sys
from pathlib import Path
from loguru import logger as _logger  # Aliased to avoid conflict

DEFAULT_SERVICE = "horizon-scoring"


class LogManager:
    # Pass 'debug' flag directly to decouple from settings
    def __init__(self, service_name: str, debug: bool = False, log_dir: str = ""):
        self.service_name = service_name
        self.debug = debug
        self.log_dir = (
            Path(log_dir) if log_dir else Path(__file__).resolve().parents[2] / "logs"
        )
        self._configure()

    def _configure(self):
        _logger.remove()

        self.log_dir.mkdir(exist_ok=True, parents=True)
        log_file = self.log_dir / f"{self.service_name}.json.log"

        # Console Handler
        _logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[context]}</cyan> | <level>{message}</level>",
            level="DEBUG" if self.debug else "INFO",
            colorize=True,
        )

        # File Handler (uses the passed-in debug flag)
        _logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            level="DEBUG" if self.debug else "INFO",
            serialize=True,
            enqueue=True,
        )

    def get_logger(self, context_name: str):
        return _logger.bind(app=self.service_name, context=context_name)


def get_logger(context_name: str):
    """
    Logger for library components that were not handed one.
    Binds the same extras as LogManager but leaves the sinks alone.
    """
    return _logger.bind(app=DEFAULT_SERVICE, context=context_name)
