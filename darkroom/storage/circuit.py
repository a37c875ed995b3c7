"""Named circuit breakers guarding calls to remote backends."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, TypeVar

from darkroom.storage.types import CommandConfig

T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 1000
DEFAULT_MAX_CONCURRENT_REQUESTS = 10
DEFAULT_REQUEST_VOLUME_THRESHOLD = 20
DEFAULT_SLEEP_WINDOW_MS = 5000
DEFAULT_ERROR_PERCENT_THRESHOLD = 50
ROLLING_WINDOW_SECONDS = 10.0


class CircuitOpenError(Exception):
    """Raised when a breaker rejects a call without running it."""


@dataclass(frozen=True)
class _Settings:
    timeout: float
    max_concurrent: int
    volume: int
    sleep_window: float
    error_percent: int

    @classmethod
    def from_config(cls, config: CommandConfig) -> _Settings:
        return cls(
            timeout=(config.timeout or DEFAULT_TIMEOUT_MS) / 1000,
            max_concurrent=config.max_concurrent_requests or DEFAULT_MAX_CONCURRENT_REQUESTS,
            volume=config.request_volume_threshold or DEFAULT_REQUEST_VOLUME_THRESHOLD,
            sleep_window=(config.sleep_window or DEFAULT_SLEEP_WINDOW_MS) / 1000,
            error_percent=config.error_percent_threshold or DEFAULT_ERROR_PERCENT_THRESHOLD,
        )


class CircuitBreaker:
    """Runs calls with a timeout, a concurrency limit and failure tracking.

    When enough calls in the rolling window fail, the circuit opens and calls
    are rejected until the sleep window has passed; then a single trial call
    is let through, and its success closes the circuit again.
    """

    def __init__(
        self,
        name: str,
        config: CommandConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._events: deque[tuple[float, bool]] = deque()
        self._open = False
        self._opened_at = 0.0
        self.config: CommandConfig | None = None
        self.configure(config or CommandConfig())

    def configure(self, config: CommandConfig) -> None:
        """Replace the breaker's settings."""
        with self._lock:
            if config == self.config:
                return
            self.config = config
            self._settings = _Settings.from_config(config)
            self._tickets = threading.BoundedSemaphore(self._settings.max_concurrent)

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._check_open()

    def call(
        self,
        run: Callable[[], T],
        fallback: Callable[[Exception], T] | None = None,
    ) -> T:
        """Run ``run`` through the breaker.

        On failure, timeout or rejection the error is handed to ``fallback``
        and its result returned; without a fallback the error is raised.
        """
        try:
            return self._execute(run)
        except Exception as error:
            if fallback is None:
                raise
            return fallback(error)

    def _execute(self, run: Callable[[], T]) -> T:
        if not self._allow():
            raise CircuitOpenError(f"{self.name}: circuit open")
        with self._lock:
            tickets = self._tickets
            timeout = self._settings.timeout
        if not tickets.acquire(blocking=False):
            raise CircuitOpenError(f"{self.name}: max concurrency")
        try:
            return self._run_with_timeout(run, timeout)
        finally:
            tickets.release()

    def _run_with_timeout(self, run: Callable[[], T], timeout: float) -> T:
        done = threading.Event()
        outcome: dict[str, object] = {}

        def target() -> None:
            try:
                outcome["result"] = run()
            except Exception as error:
                outcome["error"] = error
            finally:
                done.set()

        threading.Thread(target=target, name=f"circuit-{self.name}", daemon=True).start()
        if not done.wait(timeout):
            self._record(False)
            raise TimeoutError(f"{self.name}: timeout")
        if "error" in outcome:
            self._record(False)
            raise outcome["error"]  # type: ignore[misc]
        self._record(True)
        return outcome["result"]  # type: ignore[return-value]

    def _prune(self, now: float) -> None:
        horizon = now - ROLLING_WINDOW_SECONDS
        while self._events and self._events[0][0] <= horizon:
            self._events.popleft()

    def _check_open(self) -> bool:
        if self._open:
            return True
        now = self._clock()
        self._prune(now)
        total = len(self._events)
        if total < self._settings.volume:
            return False
        errors = sum(1 for _, ok in self._events if not ok)
        if int(errors * 100 / total + 0.5) >= self._settings.error_percent:
            self._open = True
            self._opened_at = now
            return True
        return False

    def _allow(self) -> bool:
        with self._lock:
            if not self._check_open():
                return True
            now = self._clock()
            if now >= self._opened_at + self._settings.sleep_window:
                self._opened_at = now
                return True
            return False

    def _record(self, ok: bool) -> None:
        with self._lock:
            if ok and self._open:
                self._open = False
                self._events.clear()
                return
            self._events.append((self._clock(), ok))


_registry: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def breaker_for(name: str, config: CommandConfig | None = None) -> CircuitBreaker:
    """Return the breaker registered under ``name``, creating or reconfiguring it."""
    with _registry_lock:
        breaker = _registry.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, config)
            _registry[name] = breaker
        elif config is not None:
            breaker.configure(config)
        return breaker


def make_network_call(
    name: str,
    config: CommandConfig | None,
    run: Callable[[], T],
    fallback: Callable[[Exception], T] | None,
) -> T:
    """Run ``run`` through the named breaker configured with ``config``."""
    return breaker_for(name, config).call(run, fallback)