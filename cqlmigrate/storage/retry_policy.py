# ==============================================
# WriteRetryPolicy
# ==============================================
#
# PURPOSE:
#   Decide what happens when an asynchronous write fails.
#
# RULES:
#   - write timeout      → retry at the SAME consistency level after
#                          base_delay * multiplier**n (capped), up to
#                          max_retries times; then WriteTimeoutError
#   - read timeout,
#     unavailable,
#     client timeout     → retried only if unavailable_max_retries > 0;
#                          otherwise (and once exhausted) an
#                          UnhandledTimeoutError, fatal to the phase
#   - anything else      → surfaced unchanged, no retry
#
#   retry_num counts earlier retries of the SAME category for the
#   write (category_of), so a write that timed out twice is not
#   charged those retries when it later finds replicas unavailable.
#
#   The driver is configured with FallthroughRetryPolicy on the target
#   so these errors reach this policy instead of being retried (or
#   slept on) inside the driver's event loop.
#
# ==============================================

import logging
from dataclasses import dataclass
from typing import Any, Optional

from cassandra import OperationTimedOut, ReadTimeout, Unavailable, WriteTimeout

from cqlmigrate.config import RetryConfig
from cqlmigrate.errors import UnhandledTimeoutError, WriteTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0
    consistency: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def rethrow(cls, error: BaseException) -> "RetryDecision":
        return cls(retry=False, error=error)


class WriteRetryPolicy:
    def __init__(
        self,
        max_retries: int = 10,
        base_delay: float = 0.05,
        multiplier: float = 2.0,
        max_delay: float = 2.0,
        unavailable_max_retries: int = 0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.unavailable_max_retries = unavailable_max_retries

    @classmethod
    def from_config(cls, config: RetryConfig) -> "WriteRetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay_seconds,
            multiplier=config.backoff_multiplier,
            max_delay=config.max_delay_seconds,
            unavailable_max_retries=config.unavailable_max_retries,
        )

    def delay_for(self, retry_num: int) -> float:
        return max(0.0, min(self.base_delay * (self.multiplier ** retry_num), self.max_delay))

    def on_write_timeout(self, error: BaseException, consistency: Any, retry_num: int) -> RetryDecision:
        if retry_num < self.max_retries:
            delay = self.delay_for(retry_num)
            logger.warning("Write timed out, retrying in %.3fs (retry %d/%d)",
                           delay, retry_num + 1, self.max_retries)
            return RetryDecision(retry=True, delay=delay, consistency=consistency)
        logger.error("Write timed out after %d retries", retry_num)
        return RetryDecision.rethrow(
            WriteTimeoutError(f"Write timed out after {retry_num} retries: {error}",
                              attempts=retry_num + 1, cause=error)
        )

    def on_unavailable(self, error: BaseException, consistency: Any, retry_num: int) -> RetryDecision:
        if retry_num < self.unavailable_max_retries:
            delay = self.delay_for(retry_num)
            logger.warning("%s, retrying in %.3fs (retry %d/%d)", type(error).__name__,
                           delay, retry_num + 1, self.unavailable_max_retries)
            return RetryDecision(retry=True, delay=delay, consistency=consistency)
        return RetryDecision.rethrow(
            UnhandledTimeoutError(f"{type(error).__name__} is out of retry policy: {error}", cause=error)
        )

    @staticmethod
    def category_of(error: BaseException) -> Optional[str]:
        """Retry budget an error draws on: "write_timeout", "unavailable" or None."""
        if isinstance(error, WriteTimeout):
            return "write_timeout"
        if isinstance(error, (ReadTimeout, Unavailable, OperationTimedOut)):
            return "unavailable"
        return None

    def decide(self, error: BaseException, consistency: Any, retry_num: int) -> RetryDecision:
        category = self.category_of(error)
        if category == "write_timeout":
            return self.on_write_timeout(error, consistency, retry_num)
        if category == "unavailable":
            return self.on_unavailable(error, consistency, retry_num)
        return RetryDecision.rethrow(error)
