"""
Circuit breaker for upstream API calls.
Stops hammering the GS Engage API once it keeps failing; the sync
cycle then fails fast and the dashboard keeps serving persisted data.

Usage:
    breaker = CircuitBreaker.get("growthstation", failure_threshold=5, reset_timeout=60)
    breaker.check()          # raises CircuitOpenError while open
    try:
        result = make_api_call()
        breaker.record_success()
    except APIError:
        breaker.record_failure()
        raise
"""
import time
from typing import Dict

from scripts.lib.errors import CircuitOpenError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


class CircuitBreaker:
    """
    Circuit breaker with three states: CLOSED, OPEN, HALF_OPEN.

    CLOSED: Requests pass through normally. Failures are counted.
    OPEN: Requests are blocked. After reset_timeout, moves to HALF_OPEN.
    HALF_OPEN: One test request allowed. Success closes, failure re-opens.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    _instances: Dict[str, "CircuitBreaker"] = {}

    def __init__(self, service: str, failure_threshold: int = 5,
                 reset_timeout: int = 60):
        self.service = service
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.state = self.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0

    @classmethod
    def get(cls, service: str, **kwargs) -> "CircuitBreaker":
        """Get or create the breaker for a service."""
        if service not in cls._instances:
            cls._instances[service] = cls(service, **kwargs)
        return cls._instances[service]

    @classmethod
    def reset_all(cls):
        cls._instances.clear()

    def can_execute(self) -> bool:
        if self.state == self.OPEN:
            if time.time() - self.last_failure_time >= self.reset_timeout:
                self.state = self.HALF_OPEN
                logger.info("Circuit half-open for '%s' — allowing test request", self.service)
                return True
            return False
        return True

    def check(self) -> None:
        """Raise CircuitOpenError if requests are currently blocked."""
        if not self.can_execute():
            raise CircuitOpenError(self.service, self.failure_count, self.time_until_reset)

    def record_success(self):
        if self.state == self.HALF_OPEN:
            logger.info("Circuit closed for '%s' — service recovered", self.service)
        self.state = self.CLOSED
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            self.state = self.OPEN
            logger.warning("Circuit re-opened for '%s' — test request failed", self.service)
        elif self.failure_count >= self.failure_threshold:
            self.state = self.OPEN
            logger.warning(
                "Circuit opened for '%s' — %d consecutive failures "
                "(threshold: %d, reset in %ds)",
                self.service, self.failure_count,
                self.failure_threshold, self.reset_timeout,
            )

    @property
    def time_until_reset(self) -> float:
        """Seconds until the breaker resets (0 if not open)."""
        if self.state != self.OPEN:
            return 0.0
        elapsed = time.time() - self.last_failure_time
        return max(0.0, self.reset_timeout - elapsed)

    def status(self) -> dict:
        return {
            "service": self.service,
            "state": self.state,
            "failures": self.failure_count,
            "threshold": self.failure_threshold,
            "time_until_reset": round(self.time_until_reset, 1),
        }
