"""
Thread-safe rate-limited logging utilities.

A proposal view refreshed repeatedly while the node lags behind would log the
same correlation warning on every refresh; this keeps one line per interval.
"""
import logging
import threading
import time
from typing import Optional

from cachetools import TTLCache

# Configure logger
logger = logging.getLogger(__name__)

# Keys expire after an hour regardless of the per-call interval
_log_cache: TTLCache = TTLCache(maxsize=100, ttl=3600)
_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = 60,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message with rate limiting, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        interval: Minimum interval between identical messages in seconds
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was logged, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)

    key = f"{level}:{message}"
    now = time.monotonic()

    with _log_cache_lock:
        last_time = _log_cache.get(key)
        if last_time is not None and now - last_time < interval:
            return False
        log_method(message)
        _log_cache[key] = now
        return True


def reset_rate_limits() -> None:
    """Forget all suppressed messages"""
    with _log_cache_lock:
        _log_cache.clear()
