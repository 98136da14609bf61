"""
Retry with exponential backoff.

Delays are 1s, 2s, 4s, 8s, ... capped at 30s. The wait between attempts is
interruptible through a CancellationToken.
"""

import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..cancellation import CancellationToken
from ..exceptions import CancellationError


DEFAULT_RETRY_INITIAL_DELAY = 1.0
MAX_RETRY_DELAY = 30.0

T = TypeVar('T')

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int,
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
    max_delay: float = MAX_RETRY_DELAY
) -> float:
    """
    Delay to wait before the given attempt.

    Args:
        attempt: Zero-based attempt number (attempt 0 never waits)

    Returns:
        Seconds to wait
    """
    if attempt <= 0:
        return 0.0
    return min(initial_delay * 2 ** (attempt - 1), max_delay)


def retry_with_backoff(
    operation: Callable[[], T],
    max_retries: int,
    cancellation: Optional[CancellationToken] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    log: Optional[logging.Logger] = None
) -> T:
    """
    Run an operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument callable to attempt
        max_retries: Retries after the first attempt (max_retries + 1 attempts total)
        cancellation: Token whose cancellation interrupts the backoff wait
        retry_on: Exception types eligible for retry; anything else is raised at once
        log: Logger for attempt reporting (default: module logger)

    Returns:
        The operation's return value from the first successful attempt

    Raises:
        CancellationError: If cancelled while waiting, or raised by the operation
        Exception: The last error once all attempts have failed
    """
    log = log or logger
    token = cancellation or CancellationToken()
    max_attempts = max(max_retries, 0) + 1
    last_error = None

    for attempt in range(max_attempts):
        if attempt > 0:
            delay = backoff_delay(attempt)
            log.info(f"Retrying operation (attempt={attempt + 1}, max_attempts={max_attempts}, delay={delay:g}s)")
            token.sleep(delay)

        try:
            result = operation()
        except CancellationError:
            raise
        except retry_on as e:
            last_error = e
            log.warning(f"Operation failed (attempt={attempt + 1}, error={e})")
            continue

        if attempt > 0:
            log.info(f"Operation succeeded after retry (attempts={attempt + 1})")
        return result

    raise last_error
