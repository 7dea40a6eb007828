"""
Per-service circuit breakers for the Monday.com and Xero clients.

Syncs and scorecard reconciles call these services from worker threads
(``asyncio.to_thread`` in the API, the week pool in the reconciler), so
breaker state is guarded by a lock.

    breaker = CircuitBreaker.get("xero", failure_threshold=3, reset_timeout=120)
    data = breaker.call(session_get, url, params)

After ``failure_threshold`` consecutive failures the breaker opens and calls
fail fast with CircuitOpenError. Once ``reset_timeout`` seconds pass, a single
trial call is let through: success closes the breaker, failure re-opens it.
"""
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict

from scripts.lib.errors import CircuitOpenError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    _registry: Dict[str, "CircuitBreaker"] = {}
    _registry_lock = threading.Lock()

    def __init__(self, service: str, failure_threshold: int = 5, reset_timeout: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.service = service
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self.state = BreakerState.CLOSED
        self.failure_count = 0
        self.opened_at = 0.0
        self._trial_in_flight = False

    @classmethod
    def get(cls, service: str, **kwargs) -> "CircuitBreaker":
        """Shared breaker for ``service``; settings apply on first creation only."""
        with cls._registry_lock:
            breaker = cls._registry.get(service)
            if breaker is None:
                breaker = cls._registry[service] = cls(service, **kwargs)
            return breaker

    @classmethod
    def reset_all(cls):
        with cls._registry_lock:
            cls._registry.clear()

    @property
    def time_until_reset(self) -> float:
        if self.state != BreakerState.OPEN:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self.opened_at))

    def _admit(self) -> bool:
        with self._lock:
            if self.state == BreakerState.CLOSED:
                return True
            if self.state == BreakerState.OPEN and self.time_until_reset == 0.0:
                self.state = BreakerState.HALF_OPEN
                logger.info("Circuit half-open for '%s', allowing a trial call", self.service)
            if self.state == BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def _succeeded(self):
        with self._lock:
            if self.state != BreakerState.CLOSED:
                logger.info("Circuit closed for '%s', service recovered", self.service)
            self.state = BreakerState.CLOSED
            self.failure_count = 0
            self._trial_in_flight = False

    def _failed(self):
        with self._lock:
            self.failure_count += 1
            trial = self._trial_in_flight
            self._trial_in_flight = False
            if trial or self.failure_count >= self.failure_threshold:
                if self.state != BreakerState.OPEN:
                    logger.warning(
                        "Circuit opened for '%s' after %d failures (retry in %ds)",
                        self.service, self.failure_count, self.reset_timeout,
                    )
                self.state = BreakerState.OPEN
                self.opened_at = self._clock()

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run ``func`` under the breaker.

        Raises:
            CircuitOpenError: The service is failing and the reset window has not passed.
        """
        if not self._admit():
            raise CircuitOpenError(self.service, self.failure_count, self.time_until_reset)
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._failed()
            raise
        self._succeeded()
        return result

    def status(self) -> dict:
        return {
            "service": self.service,
            "state": self.state.value,
            "failures": self.failure_count,
            "threshold": self.failure_threshold,
            "time_until_reset": round(self.time_until_reset, 1),
        }
