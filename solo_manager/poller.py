# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Bounded readiness polling with explicit outcome classification."""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from solo_manager import logger
from solo_manager.errors import PollTimeoutError, TerminalStatusError


class PollOutcome(Enum):
    SUCCESS = "success"
    TERMINAL = "terminal"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class PollResult:
    """Classified result of one poll attempt.

    Attributes:
        outcome: How the poller should proceed.
        value: Payload returned to the caller on success.
        detail: Human readable reason, used in logs and errors.
    """

    outcome: PollOutcome
    value: Any = None
    detail: str = ""

    @classmethod
    def success(cls, value: Any = None) -> PollResult:
        return cls(PollOutcome.SUCCESS, value=value)

    @classmethod
    def terminal(cls, detail: str) -> PollResult:
        return cls(PollOutcome.TERMINAL, detail=detail)

    @classmethod
    def transient(cls, detail: str = "") -> PollResult:
        return cls(PollOutcome.TRANSIENT, detail=detail)


def _is_transient(result: PollResult) -> bool:
    return result.outcome is PollOutcome.TRANSIENT


def _evaluate(check: Callable[[], PollResult], timeout: float | None) -> PollResult:
    """Run one attempt, turning errors and timeouts into transient results."""
    try:
        if timeout is None:
            result = check()
        else:
            pool = ThreadPoolExecutor(max_workers=1)
            try:
                result = pool.submit(check).result(timeout=timeout)
            finally:
                pool.shutdown(wait=False)
    except FutureTimeoutError:
        return PollResult.transient(f"attempt timed out after {timeout}s")
    except Exception as exc:
        logger.debug("Poll attempt failed: %s", exc)
        return PollResult.transient(str(exc))
    if not isinstance(result, PollResult):
        raise TypeError(f"poll check returned {type(result).__name__}, expected PollResult")
    return result


def wait_until(
    check: Callable[[], PollResult],
    *,
    max_attempts: int,
    delay: float,
    entity: str,
    target: str,
    timeout_per_attempt: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Poll ``check`` until it succeeds, fails terminally, or the budget runs out.

    The check is evaluated at most ``max_attempts`` times. ``delay`` seconds
    pass between attempts, never after the last one or after success.

    Args:
        check: Returns a :class:`PollResult` classifying the current state.
        max_attempts: Maximum number of evaluations.
        delay: Seconds slept between attempts.
        entity: Name of the polled thing, used in errors.
        target: Name of the awaited state, used in errors.
        timeout_per_attempt: Seconds one evaluation may take, or None.
        sleep: Sleep function, injectable for tests.

    Returns:
        The ``value`` of the successful result.

    Raises:
        TerminalStatusError: If an attempt reports a terminal state.
        PollTimeoutError: If every attempt was transient.
    """
    attempts = 0

    def _attempt() -> PollResult:
        nonlocal attempts
        attempts += 1
        result = _evaluate(check, timeout_per_attempt)
        if result.outcome is PollOutcome.TERMINAL:
            raise TerminalStatusError(
                f"{entity} reached terminal state {result.detail} while waiting for {target} "
                f"[ attempt = {attempts}/{max_attempts} ]"
            )
        if result.outcome is PollOutcome.TRANSIENT:
            logger.debug("%s is not %s [ attempt = %d/%d ] %s",
                         entity, target, attempts, max_attempts, result.detail)
        return result

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(_is_transient),
        sleep=sleep,
    )
    try:
        result = retrying(_attempt)
    except RetryError as err:
        last = err.last_attempt.result() if not err.last_attempt.failed else None
        detail = f": {last.detail}" if last is not None and last.detail else ""
        raise PollTimeoutError(
            f"{entity} is not {target} [ attempt = {attempts}/{max_attempts} ]{detail}"
        ) from err
    return result.value
