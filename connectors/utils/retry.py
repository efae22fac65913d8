"""
Retry helpers for connector calls.
"""

import functools
import logging
import time
from typing import Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Retry the decorated callable with exponential backoff.

    :param max_retries: Retries after the first attempt.
    :param initial_delay: Delay before the first retry, in seconds.
    :param max_delay: Upper bound for any single delay.
    :param backoff_factor: Multiplier applied to the delay after each retry.
    :param exceptions: Exception types that trigger a retry.
    :param sleep: Sleep function, `time.sleep` when None.
    :return: Decorator.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = initial_delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise
                    logger.warning(
                        "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                        func.__name__,
                        attempt + 1,
                        max_retries + 1,
                        e,
                        delay,
                    )
                    (sleep or time.sleep)(delay)
                    delay = min(delay * backoff_factor, max_delay)

        return wrapper

    return decorator
