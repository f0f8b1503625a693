"""
Centralized Logging Utilities and Decorators

Provides the logging setup shared by every bookshelf pipeline module, plus a
decorator that records entry, exit, duration and exceptions of stage
functions.

Usage:
    from src.logger import setup_logging, log_function

    # Setup logging for a module
    logger = setup_logging(
        logger_name="pipeline",
        log_file="logs/pipeline.log",
        verbose=True
    )

    # Decorate stage functions for automatic logging
    @log_function(logger_name="pipeline", log_execution_time=True)
    def run_feed_stage(feed_url):
        ...
"""

import functools
import logging
import time
from pathlib import Path
from typing import Optional, Callable, Any


DEFAULT_LOG_FILE = "logs/bookshelf.log"


def setup_logging(
    logger_name: str,
    log_file: str = DEFAULT_LOG_FILE,
    verbose: bool = False,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Set up logging with file and optional console handlers.

    Args:
        logger_name: Name for the logger (e.g., "pipeline", "url_guard")
        log_file: Path to log file (default: "logs/bookshelf.log")
        verbose: If True, add console handler with DEBUG level (default: False)
        level: Base logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Avoid adding multiple handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else level)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(file_handler)

    # Scheduled runs keep a console trail of INFO lines; verbose adds DEBUG
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(name)s: %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(console_handler)

    return logger


def log_function(
    logger_name: Optional[str] = None,
    level: int = logging.DEBUG,
    log_args: bool = False,
    log_result: bool = False,
    log_execution_time: bool = True,
) -> Callable:
    """
    Decorator to log function entry, exit, execution time, and exceptions.

    The decorator never configures handlers itself; loggers are configured once
    by the CLI through setup_logging and propagate from there.

    Args:
        logger_name: Logger name (if None, uses the decorated function's module name)
        level: Log level for entry/exit messages (default: logging.DEBUG)
        log_args: If True, log function arguments (default: False)
        log_result: If True, log return value (default: False)
        log_execution_time: If True, log execution duration (default: True)

    Returns:
        Decorated function with logging

    Example:
        @log_function(logger_name="metadata", log_args=True)
        def resolve(candidate_url):
            ...
    """

    def decorator(func: Callable) -> Callable:
        name = logger_name or func.__module__

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = logging.getLogger(name)
            func_name = func.__name__

            log_msg = f"Calling {func_name}"
            if log_args and (args or kwargs):
                args_repr = [repr(a) for a in args]
                kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
                log_msg += f" with args: {', '.join(args_repr + kwargs_repr)}"
            logger.log(level, log_msg)

            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                execution_time = time.perf_counter() - start_time
                logger.error(
                    f"Exception in {func_name} after {execution_time:.2f}s: {type(e).__name__}: {e}"
                )
                raise

            completion_msg = f"Completed {func_name}"
            if log_execution_time:
                completion_msg += f" in {time.perf_counter() - start_time:.2f}s"
            if log_result:
                completion_msg += f" with result: {result!r}"
            logger.log(level, completion_msg)

            return result

        return wrapper

    return decorator


def log_with_timer(logger_name: Optional[str] = None) -> Callable:
    """
    Log entry/exit with execution time at INFO level.

    Example:
        @log_with_timer("pipeline")
        def run_pipeline(config):
            ...
    """
    return log_function(
        logger_name=logger_name,
        level=logging.INFO,
        log_args=False,
        log_result=False,
        log_execution_time=True,
    )
