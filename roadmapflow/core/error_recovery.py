"""Retry policy for rate-limited calls and component health checks."""

import asyncio
import random
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from .cancellation import CancellationToken
from .exceptions import GenerationCancelledError, RateLimitError, WorkflowEngineError
from .logging import get_logger, RetryLogger


logger = get_logger(__name__)


class RetryConfig:
    """Exponential backoff settings.

    ``max_retries`` counts retries, not attempts: a call is made at most
    ``1 + max_retries`` times. Retry ``n`` waits
    ``base_delay * exponential_base ** (n - 1)`` seconds, capped at
    ``max_delay``.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retryable_exceptions: Optional[List[Type[Exception]]] = None
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or [RateLimitError]

    def should_retry(self, exception: Exception, retry: int) -> bool:
        """Whether retry number ``retry`` (1-based) may follow ``exception``."""
        if retry > self.max_retries:
            return False
        return any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions)

    def get_delay(self, retry: int) -> float:
        delay = self.base_delay * (self.exponential_base ** (retry - 1))
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


async def execute_async_with_retry(
    func: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    operation: str,
    token: Optional[CancellationToken] = None,
    retry_logger: Optional[RetryLogger] = None
) -> Tuple[Any, int]:
    """
    Await ``func`` until it succeeds or a non-retryable error occurs.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        config: Retry policy
        operation: Name used in retry logs
        token: Optional cancellation token; aborts backoff sleeps
        retry_logger: Logger for attempts and outcomes

    Returns:
        Tuple of (result, attempts made)

    Raises:
        The last exception raised by ``func``, with ``attempts`` added to
        its details when it is a WorkflowEngineError, or
        GenerationCancelledError if the token fires during backoff.
    """
    retry_logger = retry_logger or RetryLogger(operation)
    attempts = 0

    while True:
        if token is not None and token.cancelled:
            raise GenerationCancelledError(token.reason or "Execution cancelled").add_details(attempts=attempts)

        attempts += 1
        try:
            result = await func()
        except Exception as e:
            if isinstance(e, WorkflowEngineError):
                e.add_details(attempts=attempts)
            if not config.should_retry(e, attempts):
                if attempts > 1 or config.should_retry(e, 1):
                    retry_logger.log_retry_failure(operation, e, attempts)
                raise

            delay = config.get_delay(attempts)
            retry_logger.log_retry_attempt(operation, e, attempts, config.max_retries, delay)
            if token is not None:
                if await token.sleep(delay):
                    raise GenerationCancelledError(token.reason or "Execution cancelled").add_details(attempts=attempts)
            else:
                await asyncio.sleep(delay)
            continue

        if attempts > 1:
            retry_logger.log_retry_success(operation, attempts)
        return result, attempts


class HealthChecker:
    """Named health checks reported by the /health endpoint."""

    def __init__(self):
        self.checks: Dict[str, Dict[str, Any]] = {}

    def register_check(self, name: str, check_func: Callable, timeout: float = 5.0):
        self.checks[name] = {"func": check_func, "timeout": timeout}
        logger.debug(f"Registered health check: {name}")

    async def run_check(self, name: str) -> Dict[str, Any]:
        if name not in self.checks:
            return {"status": "error", "message": f"Health check '{name}' not found"}

        check_info = self.checks[name]
        start_time = time.time()
        try:
            if asyncio.iscoroutinefunction(check_info["func"]):
                result = await asyncio.wait_for(check_info["func"](), timeout=check_info["timeout"])
            else:
                result = check_info["func"]()
            status = {"status": "healthy", "message": result if isinstance(result, str) else "Check passed"}
        except asyncio.TimeoutError:
            status = {"status": "timeout", "message": f"Health check timed out after {check_info['timeout']}s"}
        except Exception as e:
            logger.warning(f"Health check '{name}' failed: {e}")
            status = {"status": "unhealthy", "message": str(e), "error_type": type(e).__name__}

        status["duration_ms"] = round((time.time() - start_time) * 1000, 2)
        return status

    async def run_all_checks(self) -> Dict[str, Any]:
        results = {name: await self.run_check(name) for name in self.checks}
        healthy = all(result["status"] == "healthy" for result in results.values())
        return {
            "overall_status": "healthy" if healthy else "unhealthy",
            "checks": results,
            "timestamp": datetime.utcnow().isoformat()
        }
