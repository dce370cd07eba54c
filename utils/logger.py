"""
Structured logging for the pose fusion filter.

structlog builds the event dictionaries and hands them to the standard
library ``logging`` module, where one ``ProcessorFormatter`` per handler
renders them. Console output is colored on a terminal and JSON otherwise;
the optional log file always gets plain key/value lines.

Usage:
    from utils.logger import setup_logger, get_logger

    setup_logger()
    logger = get_logger(__name__)
    logger.info("Observation applied", scale=1.02)
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from config.settings import get_settings

# Handler names owned by setup_logger, replaced on every call
CONSOLE_HANDLER = "pose_fusion_console"
FILE_HANDLER = "pose_fusion_file"


def _pre_chain(debug: bool) -> List[Processor]:
    """Processors applied to every event before rendering."""
    processors: List[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if debug:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
    return processors


def _make_handler(
    handler: logging.Handler,
    name: str,
    level: int,
    renderer: Processor,
    pre_chain: List[Processor],
) -> logging.Handler:
    handler.set_name(name)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def _remove_own_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if handler.get_name() in (CONSOLE_HANDLER, FILE_HANDLER):
            root.removeHandler(handler)
            handler.close()


def setup_logger(
    log_level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_directory: Optional[str] = None,
) -> Optional[Path]:
    """
    Configure structlog and the root logger.

    Call once at startup; calling again replaces the handlers installed by
    the previous call. Arguments default to the logging settings.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Also write a timestamped log file
        log_directory: Directory for the log file

    Returns:
        Path of the log file, or None when logging to the console only
    """
    settings = get_settings()

    level_name = (log_level or settings.logging.log_level).upper()
    to_file = log_to_file if log_to_file is not None else settings.logging.log_to_file
    log_dir = log_directory or settings.logging.log_directory

    level = getattr(logging, level_name, logging.INFO)
    pre_chain = _pre_chain(debug=level == logging.DEBUG)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    _remove_own_handlers(root)
    root.setLevel(level)

    if sys.stdout.isatty():
        console_renderer: Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        console_renderer = structlog.processors.JSONRenderer()
    root.addHandler(
        _make_handler(
            logging.StreamHandler(sys.stdout),
            CONSOLE_HANDLER,
            level,
            console_renderer,
            pre_chain,
        )
    )

    if not to_file:
        return None

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / f"pose_fusion_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    root.addHandler(
        _make_handler(
            logging.FileHandler(log_file),
            FILE_HANDLER,
            level,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event"]
            ),
            pre_chain,
        )
    )
    return log_file


def reset_logger() -> None:
    """Remove the handlers installed by setup_logger and restore structlog defaults."""
    root = logging.getLogger()
    _remove_own_handlers(root)
    root.setLevel(logging.WARNING)
    structlog.reset_defaults()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger for the given module name.

    Example:
        logger = get_logger(__name__)
        logger.warning("Skipping observation", reason="singular innovation")
    """
    return structlog.get_logger(name)
