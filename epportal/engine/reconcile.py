"""
Write-Link Reconciliation
Confirms a write against the store's read-after-write lag.

After a submission is created and linked to its event, an immediate read of
the event may not show the new link yet. reconcile_write() polls a confirming
read with exponential backoff until it succeeds or the attempt budget is
spent, then reloads. It never re-issues the write itself.

Attempts are strictly sequential and the wait between them can be cut short
by a CancelToken (the caller's view went away).
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ReconciliationCancelled(Exception):
    """Raised when the owner cancelled reconciliation before it finished."""


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for the confirming read."""
    max_attempts: int = 10
    base_delay: float = 0.3
    multiplier: float = 1.5

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before attempt n (0-based). The first attempt runs immediately."""
        if attempt <= 0:
            return 0.0
        return self.base_delay * self.multiplier ** (attempt - 1)

    @classmethod
    def from_config(cls, config) -> 'RetryPolicy':
        return cls(
            max_attempts=config.LINK_RETRY_MAX_ATTEMPTS,
            base_delay=config.LINK_RETRY_BASE_DELAY_SECONDS,
            multiplier=config.LINK_RETRY_MULTIPLIER,
        )


class CancelToken:
    """Cooperative cancellation shared between a caller and a running loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds; returns True as soon as the token is cancelled."""
        if seconds <= 0:
            return self.cancelled
        return self._event.wait(seconds)

    def raise_if_cancelled(self):
        if self.cancelled:
            raise ReconciliationCancelled()


@dataclass
class ReconcileOutcome(Generic[T]):
    """
    confirmed: the confirming read saw the write
    attempts:  confirming reads issued
    result:    what the reload returned (None if the final reload failed)
    """
    confirmed: bool
    attempts: int
    result: Optional[T] = None


def reconcile_write(
    confirm: Callable[[], bool],
    reload: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    cancel: Optional[CancelToken] = None,
) -> ReconcileOutcome[T]:
    """
    Poll confirm() until it returns True, then reload() once.

    A confirm() that raises counts as a miss. When every attempt misses,
    reload() runs once more unconditionally and its result is returned as
    unconfirmed: the write most likely landed, it just was not seen yet.
    A reload that fails after confirmation gets that same single retry.

    Raises:
        ReconciliationCancelled: cancel was triggered before completion
    """
    policy = policy or RetryPolicy()
    cancel = cancel or CancelToken()
    attempts = 0
    confirmed = False

    for attempt in range(policy.max_attempts):
        delay = policy.delay_before(attempt)
        if cancel.wait(delay):
            logger.info(f"reconcile_write: cancelled before attempt {attempt + 1}")
            raise ReconciliationCancelled()

        attempts += 1
        try:
            seen = confirm()
        except Exception as e:
            logger.warning(f"reconcile_write: confirming read {attempts} failed: {type(e).__name__}: {e}")
            seen = False

        if not seen:
            logger.debug(f"reconcile_write: attempt {attempts}/{policy.max_attempts} not visible yet")
            continue

        cancel.raise_if_cancelled()
        try:
            result = reload()
        except ReconciliationCancelled:
            raise
        except Exception as e:
            # confirmed; only the single final reload below is left
            logger.warning(f"reconcile_write: reload after confirmation failed: {type(e).__name__}: {e}")
            confirmed = True
            break
        logger.info(f"reconcile_write: confirmed after {attempts} attempt(s)")
        return ReconcileOutcome(confirmed=True, attempts=attempts, result=result)

    cancel.raise_if_cancelled()
    if not confirmed:
        logger.warning(f"reconcile_write: not confirmed after {attempts} attempts, reloading anyway")
    result = None
    try:
        result = reload()
    except ReconciliationCancelled:
        raise
    except Exception as e:
        logger.error(f"reconcile_write: final reload failed: {type(e).__name__}: {e}")
    return ReconcileOutcome(confirmed=confirmed, attempts=attempts, result=result)
