"""
Centralized logging infrastructure for the 2048 learning agent.

Usage:
    from tilebot.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Training started")
    logger.debug("Epsilon: 0.95")
    logger.warning("Model not found, starting fresh")
    logger.error("Failed to save model")

Configuration:
    Call setup_logging() once from the entry point to choose the level and
    enable file output. Modules that log before that get a console-only
    logger at INFO level.
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class LogLevel(Enum):
    """Log levels for configuration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


ROOT_LOGGER_NAME = 'tilebot'

# Module-level state
_initialized = False
_log_dir: Optional[Path] = None
_file_handler: Optional[logging.FileHandler] = None


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors:
            # Work on a copy so file handlers never see escape codes
            record = logging.makeLogRecord(record.__dict__)
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def setup_logging(
    log_dir: str = 'logs',
    level: LogLevel = LogLevel.INFO,
    console_output: bool = True,
    file_output: bool = True,
    log_filename: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Initialize the logging system.

    Args:
        log_dir: Directory for log files
        level: Minimum log level to capture
        console_output: Whether to output to console
        file_output: Whether to output to file
        log_filename: Custom log filename (default: training_YYYYMMDD_HHMMSS.log)
        force: Re-initialize even if logging was already set up
    """
    global _initialized, _log_dir, _file_handler

    if _initialized and not force:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level.value)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    _file_handler = None

    # Console handler with colors
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level.value)
        console_fmt = ColoredFormatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            use_colors=True
        )
        console_handler.setFormatter(console_fmt)
        root_logger.addHandler(console_handler)

    # File handler without colors
    if file_output:
        _log_dir = Path(log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            log_filename = f'training_{timestamp}.log'

        log_path = _log_dir / log_filename
        _file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        _file_handler.setLevel(logging.DEBUG)  # Capture everything in file
        file_fmt = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
        )
        _file_handler.setFormatter(file_fmt)
        root_logger.addHandler(_file_handler)

    _initialized = True
    root_logger.debug(f"Logging initialized (level={level.name}, file={file_output})")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance configured with project settings

    Example:
        logger = get_logger(__name__)
        logger.info("Message")
    """
    if not _initialized:
        setup_logging(file_output=False)

    # Strip the package prefix for cleaner names
    prefix = f'{ROOT_LOGGER_NAME}.'
    if name.startswith(prefix):
        name = name[len(prefix):]

    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def get_log_path() -> Optional[Path]:
    """Get the current log file path."""
    if _file_handler is not None:
        return Path(_file_handler.baseFilename)
    return None


def log_training_metrics(
    episode: int,
    score: float,
    epsilon: float,
    loss: Optional[float] = None,
    max_tile: Optional[int] = None,
    steps: Optional[int] = None,
    game_id: Optional[int] = None,
) -> None:
    """
    Log per-episode training metrics in a consistent format.

    Args:
        episode: Episode number
        score: Final game score
        epsilon: Current exploration rate
        loss: Average training loss (if available)
        max_tile: Highest tile reached (if available)
        steps: Moves played in the episode (if available)
        game_id: Index of the parallel game instance (if available)
    """
    logger = get_logger('training')

    metrics = []
    if game_id is not None:
        metrics.append(f"game={game_id}")
    metrics.extend([
        f"ep={episode}",
        f"score={score:.0f}",
        f"eps={epsilon:.4f}",
    ])

    if loss is not None:
        metrics.append(f"loss={loss:.6f}")
    if max_tile is not None:
        metrics.append(f"max_tile={max_tile}")
    if steps is not None:
        metrics.append(f"steps={steps}")

    logger.info(" | ".join(metrics))


def log_model_event(event: str, key: str, **kwargs) -> None:
    """
    Log model-related events (save/load).

    Args:
        event: Event type ('save', 'load', 'autosave')
        key: Model store key
        **kwargs: Additional context (e.g., steps, epsilon)
    """
    logger = get_logger('model')

    extra = " | ".join(f"{k}={v}" for k, v in kwargs.items())
    if extra:
        logger.info(f"{event.upper()} | {key} | {extra}")
    else:
        logger.info(f"{event.upper()} | {key}")
