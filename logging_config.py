"""
Logging Configuration
Routes every module logger through rich so log lines share the console with
the renderer's panels and progress display.
"""
import logging
from typing import Optional

from rich.logging import RichHandler

from schwarzschild_renderer import console


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the root logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate lines when the viewer is restarted in the same process
    if logger.hasHandlers():
        logger.handlers.clear()

    rich_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True, log_time_format='%H:%M:%S')
    rich_handler.setLevel(level)
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        ))
        logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging initialized.")
