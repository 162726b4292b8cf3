"""
Utility functions and helpers.

Components:
    - setup_logging: Route stdlib logging through a Rich console handler
    - measure_time: Context manager timing a block in milliseconds

Example:
    ```python
    from textgen_guard.utils import setup_logging, measure_time

    setup_logging(level="INFO")

    with measure_time() as timer:
        # ... do work ...
        pass
    print(f"Took {timer.elapsed_ms}ms")
    ```
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Union

from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def setup_logging(level: Union[str, int] = "INFO") -> None:
    """
    Configure the root logger with a RichHandler.

    Args:
        level: Log level name ("DEBUG", "INFO", ...) or numeric level
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


class Timer:
    """Elapsed wall-clock time of a `measure_time` block."""

    def __init__(self):
        self.start = time.perf_counter()
        self.end = None

    @property
    def elapsed_ms(self) -> float:
        end = self.end if self.end is not None else time.perf_counter()
        return (end - self.start) * 1000


@contextmanager
def measure_time() -> Iterator[Timer]:
    timer = Timer()
    try:
        yield timer
    finally:
        timer.end = time.perf_counter()


__all__ = ["setup_logging", "measure_time", "Timer"]
