"""Decorator utilities for cross-cutting concerns."""
import functools
import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """Log how long each call to ``func`` took, including failed calls."""
    name = getattr(func, "__name__", repr(func))

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration = time.monotonic() - start_time
            logger.error(f"{name} failed after {duration:.2f}s: {str(e)}")
            raise
        duration = time.monotonic() - start_time
        logger.info(f"{name} completed in {duration:.2f}s")
        return result
    return cast(F, wrapper)


def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: Tuple[Type[BaseException], ...] = (Exception,),
          before_attempt: Optional[Callable[[int], None]] = None,
          sleep: Callable[[float], None] = time.sleep,
          logger_name: Optional[str] = None):
    """Decorator for retrying a function with exponential backoff.

    Args:
        max_attempts: Total attempts, 1 means no retry
        delay: Initial delay between attempts in seconds
        backoff: Multiplier applied to the delay after each failed attempt
        exceptions: Exceptions that trigger another attempt; anything else propagates
        before_attempt: Called with the attempt number before every attempt
        sleep: Sleep function, replaceable in tests
        logger_name: Optional logger name (defaults to module logger)
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        # Partials and callable instances have no __name__
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            for attempt in range(1, max_attempts + 1):
                if before_attempt is not None:
                    before_attempt(attempt)
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        if max_attempts > 1:
                            retry_logger.error(f"All {max_attempts} attempts failed for {name}: {str(e)}")
                        raise
                    retry_logger.warning(
                        f"Attempt {attempt}/{max_attempts} for {name} failed: {str(e)}. "
                        f"Retrying in {current_delay:.2f}s"
                    )
                    sleep(current_delay)
                    current_delay *= backoff
        return cast(F, wrapper)

    return decorator
