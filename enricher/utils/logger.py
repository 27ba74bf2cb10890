"""
Narrative Refresher - Logging Utility
=====================================

Loguru sinks for the jobs, the API and the scheduler, configured from the
``logging`` section of settings.yaml:
- console (stderr)
- rotating run log
- separate error log
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from enricher.core.config import Config

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# per-sink fallbacks when settings.yaml leaves a key out
FILE_SINKS = {
    "file": {"path": "./logs/narrative-refresher.log", "rotation": "100 MB", "retention": "30 days"},
    "error_file": {"path": "./logs/errors.log", "rotation": "50 MB", "retention": "90 days", "level": "ERROR"},
}


class LoggerSetup:
    """Install loguru sinks from a logging config section"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        if config is None:
            try:
                config = Config.get("logging", default=None)
            except FileNotFoundError:
                config = None
        # without settings.yaml only the console sink is installed
        self.config = config or {"level": "INFO", "console": {"enabled": True}}
        self.level = self.config.get("level", "INFO")
        self.format = self.config.get("format") or DEFAULT_FORMAT
        self._install()

    def _install(self) -> None:
        logger.remove()

        console = self.config.get("console", {})
        if console.get("enabled", True):
            logger.add(
                sys.stderr,
                format=self.format,
                level=self.level,
                colorize=console.get("colorize", True),
                backtrace=True,
                diagnose=False,
            )

        for section, fallback in FILE_SINKS.items():
            sink_config = self.config.get(section, {})
            if sink_config.get("enabled", False):
                self._add_file_sink({**fallback, **sink_config})

    def _add_file_sink(self, sink_config: Dict[str, Any]) -> None:
        path = Path(sink_config["path"])
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            format=self.format,
            level=sink_config.get("level", self.level),
            rotation=sink_config["rotation"],
            retention=sink_config["retention"],
            compression=sink_config.get("compression"),
            backtrace=True,
            diagnose=False,
        )


_logger_setup: Optional[LoggerSetup] = None


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Initialize logging system

    Args:
        config: Explicit logging section; defaults to settings.yaml
    """
    global _logger_setup
    _logger_setup = LoggerSetup(config)
    logger.info("Logging system initialized")


def get_logger(name: Optional[str] = None):
    """
    Get a logger instance

    Loguru's default stderr sink stays in place until an entry point calls
    setup_logging(), so library modules can log at import time.

    Example:
        >>> from enricher.utils.logger import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("Sweep started")
    """
    return logger.bind(name=name) if name else logger


def bind_run(log, run_id: str):
    """Tag every line logged through ``log`` with the trigger run id"""
    return log.bind(run_id=run_id)
