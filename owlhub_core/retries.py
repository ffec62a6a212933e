#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .exceptions import RetryError
from .interfaces import retries as retries_interface


class ExponentialBackoffJitterType(Enum):
    """Jitter mode for exponential backoff.

    For use with :py:class:`ExponentialRetryBackoffStrategy`.
    """

    DEFAULT = 1
    """Truncated binary exponential backoff delay with equal jitter."""

    NONE = 2
    """Truncated binary exponential backoff delay without jitter."""

    FULL = 3
    """Truncated binary exponential backoff delay with full jitter."""


class ExponentialRetryBackoffStrategy(retries_interface.RetryBackoffStrategy):
    def __init__(
        self,
        *,
        backoff_scale_value: float = 0.1,
        max_backoff: float = 20,
        jitter_type: ExponentialBackoffJitterType = (
            ExponentialBackoffJitterType.DEFAULT
        ),
        random: Callable[[], float] = random.random,
    ):
        """Exponential backoff with optional jitter.

        :param backoff_scale_value: Delay in seconds before the first retry, doubled on
        every following retry before jitter is applied.

        :param max_backoff: Upper limit for backoff delay values returned, in seconds.

        :param jitter_type: Determines the formula used to apply jitter to the backoff
        delay.

        :param random: A callable that returns random numbers between ``0`` and ``1``.
        """
        self._backoff_scale_value = backoff_scale_value
        self._max_backoff = max_backoff
        self._jitter_type = jitter_type
        self._random = random

    def compute_next_backoff_delay(self, retry_attempt: int) -> float:
        if retry_attempt == 0:
            return 0

        capped = min(
            self._backoff_scale_value * (2.0 ** (retry_attempt - 1)), self._max_backoff
        )
        match self._jitter_type:
            case ExponentialBackoffJitterType.NONE:
                return capped
            case ExponentialBackoffJitterType.DEFAULT:
                return (self._random() * 0.5 + 0.5) * capped
            case ExponentialBackoffJitterType.FULL:
                return self._random() * capped


@dataclass(kw_only=True)
class SimpleRetryToken:
    """Basic retry token that stores only the attempt count and delay."""

    retry_count: int
    """Retry count is the total number of attempts minus the initial attempt."""

    retry_delay: float
    """Delay in seconds to wait before the retry attempt."""

    @property
    def attempt_count(self) -> int:
        """The total number of attempts including the initial attempt and retries."""
        return self.retry_count + 1


class SimpleRetryStrategy(retries_interface.RetryStrategy):
    def __init__(
        self,
        *,
        backoff_strategy: retries_interface.RetryBackoffStrategy | None = None,
        max_attempts: int = 4,
    ):
        """Retry strategy that retries errors marked safe to retry.

        :param backoff_strategy: The backoff strategy used by returned tokens to compute
        the retry delay. Defaults to :py:class:`ExponentialRetryBackoffStrategy`.

        :param max_attempts: Upper limit on total number of attempts made, including
        initial attempt and retries.
        """
        self.backoff_strategy = backoff_strategy or ExponentialRetryBackoffStrategy()
        self.max_attempts = max_attempts

    def acquire_initial_retry_token(
        self, *, token_scope: str | None = None
    ) -> SimpleRetryToken:
        """Called before the first attempt at the operation.

        :param token_scope: This argument is ignored by this retry strategy.
        """
        retry_delay = self.backoff_strategy.compute_next_backoff_delay(0)
        return SimpleRetryToken(retry_count=0, retry_delay=retry_delay)

    def refresh_retry_token_for_retry(
        self,
        *,
        token_to_renew: retries_interface.RetryToken,
        error: Exception,
    ) -> SimpleRetryToken:
        """Replace an existing retry token from a failed attempt with a new token.

        A token is returned while the error is marked safe to retry and the attempt
        count stays below ``max_attempts``. An error's ``retry_after`` raises the
        computed delay to at least that value.

        :raises RetryError: If no further retry attempts are allowed.
        """
        if not (
            isinstance(error, retries_interface.ErrorRetryInfo) and error.is_retry_safe
        ):
            raise RetryError(f"Error is not retryable: {error}")

        retry_count = token_to_renew.retry_count + 1
        if retry_count >= self.max_attempts:
            raise RetryError(
                f"Reached maximum number of allowed attempts: {self.max_attempts}"
            )
        retry_delay = self.backoff_strategy.compute_next_backoff_delay(retry_count)
        if error.retry_after is not None:
            retry_delay = max(retry_delay, error.retry_after)
        return SimpleRetryToken(retry_count=retry_count, retry_delay=retry_delay)

    def record_success(self, *, token: retries_interface.RetryToken) -> None:
        """Not used by this retry strategy."""
        pass
