"""Bounded exponential backoff for outbound calls."""

import logging
import random
from typing import Callable


logger = logging.getLogger(__name__)


class RetryPolicy:
    """Calculates exponential backoff delays with jitter.

    Attempts are numbered from 1. The delay that follows a failed
    attempt ``n`` is ``base_delay * multiplier ** (n - 1)`` capped at
    ``max_delay``, plus uniform jitter of up to ``jitter_factor`` of that
    value.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 60.0,
        jitter_factor: float = 0.1,
        random_source: Callable[[], float] = random.random,
    ):
        """Initialize backoff calculator.

        Args:
            max_attempts: Total attempts including the first one.
            base_delay: Delay in seconds after the first failed attempt.
            multiplier: Growth factor between consecutive delays.
            max_delay: Cap on the un-jittered delay in seconds.
            jitter_factor: Random jitter fraction (0.0 to 1.0).
            random_source: Returns a float in [0, 1).
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0.0 <= jitter_factor <= 1.0:
            raise ValueError("jitter_factor must be between 0.0 and 1.0")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter_factor = jitter_factor
        self._random = random_source

    def get_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")

        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

        if self.jitter_factor > 0:
            delay += delay * self.jitter_factor * self._random()

        return delay

    def max_delay_for(self, attempt: int) -> float:
        """Upper bound of :meth:`get_delay` for ``attempt``."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        return delay * (1 + self.jitter_factor)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts
