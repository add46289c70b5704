# product_composite/domain/services/resilience.py
"""
Retry, time limiter and circuit breaker for async downstream calls.

`resilient(...)` composes them, outer to inner:

    Retry -> TimeLimiter -> CircuitBreaker -> Fallback -> call

- Retry re-runs the whole attempt on UpstreamError (timeouts included).
- TimeLimiter bounds one attempt; expiry cancels the attempt, is recorded as a
  breaker failure, and surfaces as UpstreamTimeoutError. Any other
  cancellation (the caller went away) records nothing.
- CircuitBreaker keeps a count-based sliding window of outcomes and rejects
  calls with CallNotPermittedError while OPEN.
- Fallback only handles CallNotPermittedError; anything else passes through.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from product_composite.core.errors import (
    CallNotPermittedError,
    InvalidInputError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)


class State(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    wait_duration: float = 0.5  # seconds
    retry_exceptions: tuple = (UpstreamError,)


@dataclass(frozen=True)
class TimeLimiterConfig:
    timeout_duration: float = 2.0  # seconds


@dataclass(frozen=True)
class CircuitBreakerConfig:
    sliding_window_size: int = 20
    minimum_number_of_calls: int = 10
    failure_rate_threshold: float = 50.0  # percent
    wait_duration_in_open_state: float = 10.0  # seconds
    permitted_number_of_calls_in_half_open_state: int = 3
    # business outcomes, recorded as successes
    ignore_exceptions: tuple = (NotFoundError, InvalidInputError)


class CircuitBreaker:
    """
    Count-based circuit breaker shared by all requests of the process.
    State lives behind a short critical section; the awaited call itself runs
    outside the lock.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = State.CLOSED
        self._window: deque[bool] = deque(maxlen=self.config.sliding_window_size)  # True = failed
        self._opened_at = 0.0
        self._trials_admitted = 0
        self._trials_succeeded = 0
        self._generation = 0

    # ----- state --------------------------------------------------------------

    @property
    def state(self) -> State:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def failure_rate(self) -> float:
        with self._lock:
            return self._failure_rate()

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return 100.0 * sum(self._window) / len(self._window)

    def _maybe_half_open(self) -> None:
        if self._state is State.OPEN and self._clock() - self._opened_at >= self.config.wait_duration_in_open_state:
            self._transition(State.HALF_OPEN)

    def _transition(self, new_state: State) -> None:
        old_state = self._state
        self._state = new_state
        self._window.clear()
        self._trials_admitted = 0
        self._trials_succeeded = 0
        self._generation += 1
        if new_state is State.OPEN:
            self._opened_at = self._clock()
        logger.warning("CircuitBreaker '%s' changed state from %s to %s", self.name, old_state.value, new_state.value)

    # ----- permission & outcomes ---------------------------------------------

    def acquire_permission(self) -> int:
        """Admit one call or raise CallNotPermittedError; returns the state generation it was admitted in."""
        with self._lock:
            self._maybe_half_open()
            if self._state is State.OPEN:
                raise CallNotPermittedError(self.name)
            if self._state is State.HALF_OPEN:
                if self._trials_admitted >= self.config.permitted_number_of_calls_in_half_open_state:
                    raise CallNotPermittedError(self.name)
                self._trials_admitted += 1
            return self._generation

    def release_permission(self, generation: int) -> None:
        """Give back a HALF_OPEN trial slot for a call that ended without an outcome."""
        with self._lock:
            if self._state is State.HALF_OPEN and generation == self._generation and self._trials_admitted > 0:
                self._trials_admitted -= 1

    def on_success(self) -> None:
        with self._lock:
            self._record(failed=False)

    def on_failure(self) -> None:
        with self._lock:
            self._record(failed=True)

    def _record(self, failed: bool) -> None:
        if self._state is State.HALF_OPEN:
            if failed:
                self._transition(State.OPEN)
                return
            self._trials_succeeded += 1
            if self._trials_succeeded >= self.config.permitted_number_of_calls_in_half_open_state:
                self._transition(State.CLOSED)
            return

        if self._state is State.OPEN:
            # late outcome of a call admitted before the breaker opened
            return

        self._window.append(failed)
        min_calls = min(self.config.minimum_number_of_calls, self.config.sliding_window_size)
        if len(self._window) >= min_calls and self._failure_rate() >= self.config.failure_rate_threshold:
            self._transition(State.OPEN)

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        generation = self.acquire_permission()
        try:
            result = await fn(*args, **kwargs)
        except self.config.ignore_exceptions:
            self.on_success()
            raise
        except asyncio.CancelledError:
            # no outcome; a time limiter expiry is recorded by the limiter itself
            self.release_permission(generation)
            raise
        except Exception:
            self.on_failure()
            raise
        self.on_success()
        return result


# ----- composition ----------------------------------------------------------


async def _call_with_fallback(call, fallback, args, kwargs):
    try:
        return await call()
    except CallNotPermittedError as exc:
        result = fallback(*args, exc=exc, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


async def _call_with_time_limit(call, config: TimeLimiterConfig, name: str, on_timeout=None):
    try:
        return await asyncio.wait_for(call(), timeout=config.timeout_duration)
    except asyncio.TimeoutError as exc:
        if on_timeout is not None:
            on_timeout()
        raise UpstreamTimeoutError(
            f"TimeLimiter '{name}' recorded a timeout after {config.timeout_duration}s"
        ) from exc


async def _call_with_retry(call, config: RetryConfig, name: str):
    attempt = 1
    while True:
        try:
            return await call()
        except config.retry_exceptions as exc:
            if attempt >= config.max_attempts:
                logger.warning("Retry '%s' gave up after %d attempts: %s", name, attempt, exc)
                raise
            logger.debug("Retry '%s' attempt %d/%d failed: %s", name, attempt, config.max_attempts, exc)
            attempt += 1
            await asyncio.sleep(config.wait_duration)


def resilient(
    *,
    circuit_breaker: CircuitBreaker,
    retry: Optional[RetryConfig] = None,
    time_limiter: Optional[TimeLimiterConfig] = None,
    fallback: Optional[Callable[..., Any]] = None,
):
    """
    Decorator for an async callable. `fallback` receives the call's arguments
    plus `exc=` (the CallNotPermittedError) and may be sync or async.
    """
    retry = retry or RetryConfig()
    time_limiter = time_limiter or TimeLimiterConfig()
    name = circuit_breaker.name

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            async def limited():
                admitted = []

                async def call():
                    admitted.append(True)
                    return await fn(*args, **kwargs)

                async def protected():
                    return await circuit_breaker.call(call)

                async def guarded():
                    if fallback is None:
                        return await protected()
                    return await _call_with_fallback(protected, fallback, args, kwargs)

                def on_timeout():
                    # only attempts the breaker let through have an outcome to record
                    if admitted:
                        circuit_breaker.on_failure()

                return await _call_with_time_limit(guarded, time_limiter, name, on_timeout)

            return await _call_with_retry(limited, retry, name)

        return wrapper

    return decorator
