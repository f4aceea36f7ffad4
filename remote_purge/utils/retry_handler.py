# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""In-run retry for transient destination errors, using tenacity.

This is the short, synchronous retry applied to a single destination call
inside one worker run.  The long-horizon retry (minutes between attempts,
attempt cap, permanent failure) lives in ``remote_purge.engine.backoff``.

Adapters signal a possibly-transient problem by raising ``RetryableError``
carrying either an HTTP-style status code (object stores) or an OS errno
(mounted shares).  ``with_retry`` then decides per destination:

1. Status code in ``retry_on_status_codes`` (5xx, 429) or errno in
   ``retry_on_errnos`` (EAGAIN, EBUSY, ESTALE, ...): retried with
   exponential backoff and optional jitter, re-raised once exhausted.

2. Auth failures (401, 403): never retried, since repeating bad credentials
   can lock the storage account.  Returned as a failed ``DeleteResult`` whose
   message names the status, so the failure shows up in the entry's errors.

3. Anything else propagates on the first occurrence.
"""

import errno
import functools
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from remote_purge.destinations.base import DeleteResult
from remote_purge.utils.logger import get_logger

logger = get_logger()

DEFAULT_STATUS_CODES = (429, 500, 502, 503, 504)
DEFAULT_ERRNO_NAMES = ("EAGAIN", "EBUSY", "ESTALE", "EIO", "ETIMEDOUT", "ENOTCONN")


class RetryableError(Exception):
    """A destination error that may clear up on its own.

    Carries an HTTP-style ``status_code`` for remote APIs or an ``os_errno``
    for filesystem-backed destinations.
    """

    def __init__(self, message: str, status_code: int = 0, os_errno: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.os_errno = os_errno

    @property
    def is_auth_failure(self) -> bool:
        return self.os_errno is None and self.status_code in (401, 403)


def resolve_errnos(names: Iterable[Any]) -> Set[int]:
    """Map errno names (``"ESTALE"``) or numbers to a set of ints.

    Names unknown on this platform are skipped.
    """
    codes: Set[int] = set()
    for name in names or []:
        if isinstance(name, int) and not isinstance(name, bool):
            codes.add(name)
            continue
        code = getattr(errno, str(name).strip().upper(), None)
        if isinstance(code, int):
            codes.add(code)
        else:
            logger.debug(f"Ignoring unknown errno name in retry config: {name!r}")
    return codes


@dataclass(frozen=True)
class RetryPolicy:
    """In-run retry settings for one destination (``retry.<id>`` in retry_policy.yaml)."""

    max_attempts: int = 2
    initial_wait_seconds: float = 1.0
    max_wait_seconds: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = True
    status_codes: FrozenSet[int] = frozenset(DEFAULT_STATUS_CODES)
    errnos: FrozenSet[int] = frozenset(resolve_errnos(DEFAULT_ERRNO_NAMES))

    @classmethod
    def for_destination(cls, destination_id: str, config: Optional[Dict[str, Any]]) -> "RetryPolicy":
        """Settings for *destination_id*, else ``retry.default``, else built-ins."""
        section = (config or {}).get("retry") or {}
        raw = section.get(destination_id) or section.get("default") or {}
        base = cls()
        return cls(
            max_attempts=int(raw.get("max_attempts", base.max_attempts)),
            initial_wait_seconds=float(raw.get("initial_wait_seconds", base.initial_wait_seconds)),
            max_wait_seconds=float(raw.get("max_wait_seconds", base.max_wait_seconds)),
            exponential_base=float(raw.get("exponential_base", base.exponential_base)),
            jitter=bool(raw.get("jitter", base.jitter)),
            status_codes=frozenset(raw.get("retry_on_status_codes", base.status_codes)),
            errnos=(
                frozenset(resolve_errnos(raw["retry_on_errnos"]))
                if "retry_on_errnos" in raw else base.errnos
            ),
        )

    def is_transient(self, exception: BaseException) -> bool:
        """Whether tenacity should try *exception*'s call again.

        4xx other than 429 is never transient, whatever the config lists.
        """
        if not isinstance(exception, RetryableError):
            return False
        if exception.os_errno is not None:
            return exception.os_errno in self.errnos
        code = exception.status_code
        if 400 <= code < 500 and code != 429:
            return False
        return code in self.status_codes

    def wait_strategy(self):
        """initial * base^(n-1) capped at max_wait, plus up to 1s of jitter."""
        strategy = wait_exponential(
            multiplier=self.initial_wait_seconds,
            exp_base=self.exponential_base,
            max=self.max_wait_seconds,
        )
        if self.jitter:
            strategy = strategy + wait_random(0, 1)
        return strategy


def _log_retry(destination_id: str, max_attempts: int):
    def before_sleep(retry_state):
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        pause = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Retry attempt {retry_state.attempt_number}/{max_attempts} on {destination_id} "
            f"in {pause:.1f}s: {error if error is not None else 'unknown'}"
        )

    return before_sleep


def with_retry(source: str = "default", config: Optional[Dict[str, Any]] = None):
    """
    Decorator factory that wraps a destination call with its in-run retry policy.

    Args:
        source: Destination id (e.g. "nas", "offsite") or "default".
        config: Full merged config dict containing a "retry" key.

    Example:
        call = with_retry(source="offsite", config=app_config)(adapter.delete_by_name)
        result = call("backup-A.zip")
    """
    policy = RetryPolicy.for_destination(source, config)
    retrying = retry(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(policy.is_transient),
        before_sleep=_log_retry(source, policy.max_attempts),
        reraise=True,
    )

    def decorator(fn):
        attempt = retrying(fn)

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return attempt(*args, **kwargs)
            except RetryableError as e:
                if not e.is_auth_failure:
                    raise
                logger.warning(
                    f"Auth failure (HTTP {e.status_code}) on {source}, not retrying "
                    f"so the account is not locked out: {e}"
                )
                return DeleteResult(
                    success=False,
                    message=f"Auth failure (HTTP {e.status_code}): {e}",
                )

        return wrapper

    return decorator
