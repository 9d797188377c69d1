"""
Retry, input validation, error formatting and rolling health metrics.

Each hosting context owns its own ReliabilityManager. Nothing here is global.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import deque
from dataclasses import asdict, fields
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.chainmcp.errors import FeatureUnavailableError, RetryExhaustedError, ValidationError
from src.chainmcp.models import (
    HealthReport,
    LastError,
    ReliabilityMetrics,
    RequestRecord,
    RetryPolicy,
)
from src.utils.logger import get_logger

logger = get_logger("Reliability")

T = TypeVar("T")

HISTORY_LIMIT = 1000
ROLLING_WINDOW = 100
RECENT_REQUESTS = 50

UNHEALTHY_ERROR_RATE = 0.5
DEGRADED_ERROR_RATE = 0.2
SLOW_RESPONSE_MS = 30000

# Raised by the operation itself. Retrying cannot help.
NON_RETRYABLE = (ValidationError, FeatureUnavailableError)

Sleep = Callable[[float], Awaitable[None]]


def format_uptime(milliseconds: float) -> str:
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def _error_suggestions(operation: str, message: str) -> list[str]:
    name = operation.lower()
    text = message.lower()
    suggestions = []

    if "search" in name and "not found" in text:
        suggestions += [
            "Try using broader search terms",
            "Check spelling and capitalization",
            "Use partial matches instead of exact terms",
        ]
    if "file" in name and "not found" in text:
        suggestions += [
            "Verify the file path exists",
            "Check file permissions",
            "Use relative paths from the project root",
        ]
    if "timeout" in text or "timed out" in text:
        suggestions += [
            "The operation may be taking longer than expected",
            "Try breaking the task into smaller steps",
            "Check network connectivity for external operations",
        ]
    if "validation" in text:
        suggestions += [
            "Check parameter types and formats",
            "Ensure required parameters are provided",
            "Review the tool documentation for correct usage",
        ]
    if not suggestions:
        suggestions = [
            "Verify all required parameters are provided",
            "Check parameter types and formats",
            "Ensure the tool is available and properly configured",
        ]
    return suggestions


class ReliabilityManager:
    """
    Wraps operations with bounded exponential-backoff retry and keeps
    rolling success/latency statistics for health reporting.

    Args:
        retry_policy: Initial retry policy (defaults: 3 retries, x2 backoff,
            1000ms initial delay, 30000ms cap).
        sleep: Awaitable sleep taking seconds. Injected by tests.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._started = time.monotonic()
        self._history: deque[RequestRecord] = deque(maxlen=HISTORY_LIMIT)
        self._metrics = ReliabilityMetrics()

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def execute_with_retry(
        self, operation: Callable[[], Awaitable[T]], name: str
    ) -> T:
        """
        Run ``operation`` up to ``max_retries + 1`` times.

        Raises:
            RetryExhaustedError: every attempt failed.
            ValidationError, FeatureUnavailableError: raised by the operation,
                passed through without retrying.
        """
        attempts = self.retry_policy.max_retries + 1
        last_error: Optional[BaseException] = None

        for attempt in range(attempts):
            if attempt > 0:
                delay = self.retry_policy.delay_before(attempt)
                logger.info(f"🔁 Retrying {name} in {delay:.0f}ms (attempt {attempt + 1}/{attempts})")
                await self._sleep(delay / 1000)

            started = time.perf_counter()
            try:
                result = await operation()
            except NON_RETRYABLE as e:
                self._record(name, started, success=False, error=str(e))
                self._remember_error(name, e)
                raise
            except Exception as e:
                last_error = e
                self._record(name, started, success=False, error=str(e))
                logger.warning(f"⚠️ Attempt {attempt + 1}/{attempts} failed for {name}: {e}")
                continue

            self._record(name, started, success=True)
            return result

        self._remember_error(name, last_error)
        logger.error(f"❌ {name} failed after {attempts} attempts")
        raise RetryExhaustedError(name, attempts, last_error) from last_error

    def _record(
        self, operation: str, started: float, success: bool, error: Optional[str] = None
    ) -> None:
        duration = (time.perf_counter() - started) * 1000
        self._history.append(
            RequestRecord(
                timestamp=datetime.now(timezone.utc),
                operation=operation,
                duration=duration,
                success=success,
                error=error,
            )
        )
        self._metrics.total_requests += 1
        if success:
            self._metrics.successful_requests += 1
        else:
            self._metrics.failed_requests += 1
        self._update_rolling_stats()

    def _remember_error(self, operation: str, error: Optional[BaseException]) -> None:
        self._metrics.last_error = LastError(
            timestamp=datetime.now(timezone.utc),
            operation=operation,
            error=str(error) if error is not None else "Unknown error",
        )

    def _update_rolling_stats(self) -> None:
        recent = list(self._history)[-ROLLING_WINDOW:]
        if not recent:
            self._metrics.average_response_time = 0.0
            self._metrics.error_rate = 0.0
            return
        self._metrics.average_response_time = sum(r.duration for r in recent) / len(recent)
        self._metrics.error_rate = sum(1 for r in recent if not r.success) / len(recent)

    def set_retry_policy(self, **partial: Any) -> RetryPolicy:
        """Override individual retry settings, e.g. ``set_retry_policy(max_retries=5)``."""
        known = {f.name for f in fields(RetryPolicy)}
        unknown = set(partial) - known
        if unknown:
            raise ValueError(f"Unknown retry settings: {', '.join(sorted(unknown))}")
        self.retry_policy = RetryPolicy(**{**asdict(self.retry_policy), **partial})
        return self.retry_policy

    # ------------------------------------------------------------------
    # Validation and error formatting
    # ------------------------------------------------------------------

    def validate_input(
        self,
        schema: Union[Type[BaseModel], dict[str, Any], None],
        input: Any,
        name: str,
    ) -> Any:
        """
        Check caller input before an operation runs. Never retried.

        ``schema`` may be a pydantic model class (the validated model is
        returned), a JSON-schema dict (its ``required`` keys are checked) or None.

        Raises:
            ValidationError: input is not an object, has an empty string
                field, or fails the schema.
        """
        if not isinstance(input, dict):
            raise ValidationError(name, "Input must be a valid object")

        for key, value in input.items():
            if isinstance(value, str) and not value.strip():
                raise ValidationError(name, f"Parameter '{key}' cannot be empty")

        if isinstance(schema, type) and issubclass(schema, BaseModel):
            try:
                return schema.model_validate(input)
            except PydanticValidationError as e:
                details = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                    for err in e.errors()
                )
                raise ValidationError(name, details) from e

        if isinstance(schema, dict):
            missing = [k for k in schema.get("required", []) if k not in input]
            if missing:
                raise ValidationError(name, f"Missing required parameters: {', '.join(missing)}")

        return input

    def format_enhanced_error(self, error: BaseException, name: str, args: Any = None) -> str:
        timestamp = datetime.now(timezone.utc).isoformat()
        message = str(error)
        lines = [
            f"[{timestamp}] Tool Error: {name}",
            f"Error Type: {type(error).__name__}",
            f"Message: {message}",
        ]
        if args:
            lines.append(f"Arguments: {json.dumps(args, indent=2, default=str)}")
        lines.append("Suggestions:")
        lines.extend(f"• {s}" for s in _error_suggestions(name, message))
        lines.append("")
        lines.append(
            "Please check the tool parameters and try again. "
            "If the issue persists, check the server logs for more details."
        )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Metrics and health
    # ------------------------------------------------------------------

    @property
    def uptime(self) -> float:
        return (time.monotonic() - self._started) * 1000

    @property
    def history(self) -> list[RequestRecord]:
        return list(self._history)

    @property
    def metrics(self) -> ReliabilityMetrics:
        self._metrics.uptime = self.uptime
        return self._metrics

    def health_check(self) -> HealthReport:
        metrics = self.metrics
        status = "healthy"
        message = "System is operating normally"

        if metrics.error_rate > UNHEALTHY_ERROR_RATE:
            status, message = "unhealthy", "High error rate detected"
        elif metrics.error_rate > DEGRADED_ERROR_RATE:
            status, message = "degraded", "Elevated error rate detected"

        if metrics.average_response_time > SLOW_RESPONSE_MS:
            if status == "healthy":
                status, message = "degraded", "Slow response times detected"
            else:
                message += " and slow response times detected"

        return HealthReport(
            status=status,
            message=message,
            metrics={
                "totalRequests": metrics.total_requests,
                "errorRate": metrics.error_rate,
                "averageResponseTime": metrics.average_response_time,
                "uptime": metrics.uptime,
            },
        )

    def get_metrics(self) -> dict[str, Any]:
        """Counters, rolling stats, the last 50 records and a formatted uptime."""
        metrics = self.metrics
        last_error = None
        if metrics.last_error is not None:
            last_error = {
                "timestamp": metrics.last_error.timestamp.isoformat(),
                "operation": metrics.last_error.operation,
                "error": metrics.last_error.error,
            }
        return {
            "totalRequests": metrics.total_requests,
            "successfulRequests": metrics.successful_requests,
            "failedRequests": metrics.failed_requests,
            "averageResponseTime": metrics.average_response_time,
            "errorRate": metrics.error_rate,
            "uptime": metrics.uptime,
            "uptimeFormatted": format_uptime(metrics.uptime),
            "lastError": last_error,
            "recentRequests": [
                {
                    "timestamp": r.timestamp.isoformat(),
                    "operation": r.operation,
                    "duration": r.duration,
                    "success": r.success,
                    "error": r.error,
                }
                for r in list(self._history)[-RECENT_REQUESTS:]
            ],
        }

    def reset_metrics(self) -> None:
        """Forget failures. Successful history and counters are kept."""
        self._metrics.failed_requests = 0
        self._metrics.last_error = None
        self._history = deque((r for r in self._history if r.success), maxlen=HISTORY_LIMIT)
        self._update_rolling_stats()
