"""
Retry controller around a single-attempt Transport.
Retry budget: max_retries extra attempts, linear backoff, only for transient network codes.
The decision table lives in decide() so it can be tested without a network.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from archrender.services.rendering.base import (
    TransportError,
    TransportErrorCode,
    TransportResult,
)
from archrender.services.rendering.transport import Transport
from archrender.utils.metrics import provider_attempts_total, provider_retries_total

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset({
    TransportErrorCode.CONNECTION_RESET,
    TransportErrorCode.CONNECTION_CLOSED,
    TransportErrorCode.TIMEOUT,
})

# Keys for structured logging
LOG_KEYS = (
    "attempt",
    "max_attempts",
    "error_code",
    "error",
    "delay_seconds",
    "latency_ms",
    "status_code",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_base_seconds: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class Action(str, Enum):
    RETRY = "retry"
    STOP = "stop"


@dataclass(frozen=True)
class RetryDecision:
    action: Action
    delay_seconds: float = 0.0
    reason: str = ""


@dataclass
class RetryState:
    """Attempt counter + last error for one call; thrown away when the call resolves."""
    policy: RetryPolicy
    attempt: int = 0
    last_error: TransportError | None = None
    delays: list[float] = field(default_factory=list)

    @property
    def attempt_number(self) -> int:
        """1-based number of the current attempt."""
        return self.attempt + 1

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_retries


def is_retryable(error: TransportError) -> bool:
    return error.code in RETRYABLE_CODES


def decide(state: RetryState, error: TransportError) -> RetryDecision:
    """What to do after attempt `state.attempt` failed with `error`."""
    if state.exhausted:
        return RetryDecision(Action.STOP, reason="retry_budget_exhausted")
    if not is_retryable(error):
        return RetryDecision(Action.STOP, reason="non_retryable")
    delay = state.policy.backoff_base_seconds * state.attempt_number
    return RetryDecision(Action.RETRY, delay_seconds=delay, reason="retryable")


def advance(state: RetryState, error: TransportError) -> RetryDecision:
    """Record a failed attempt and move the state to the next attempt when retrying."""
    state.last_error = error
    decision = decide(state, error)
    if decision.action is Action.RETRY:
        state.delays.append(decision.delay_seconds)
        state.attempt += 1
    return decision


async def send_with_retry(
    transport: Transport,
    url: str,
    headers: Mapping[str, str],
    body: bytes,
    *,
    timeout: float,
    policy: RetryPolicy | None = None,
    method: str = "POST",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> TransportResult:
    """
    Run attempts sequentially until one yields a TransportResult.
    Raises the last TransportError when the budget is spent or the error is terminal.
    """
    state = RetryState(policy=policy or RetryPolicy())
    max_attempts = state.policy.max_attempts

    while True:
        try:
            result = await transport.send(url, method, headers, body, timeout)
        except TransportError as e:
            provider_attempts_total.labels(result=e.code.value).inc()
            failed_attempt = state.attempt_number
            decision = advance(state, e)
            _log_structured(
                "render_attempt_failed",
                attempt=failed_attempt,
                max_attempts=max_attempts,
                error_code=e.code.value,
                error=str(e),
            )
            if decision.action is Action.STOP:
                raise
            provider_retries_total.labels(error_code=e.code.value).inc()
            _log_structured(
                "render_retry_scheduled",
                attempt=state.attempt_number,
                max_attempts=max_attempts,
                error_code=e.code.value,
                delay_seconds=decision.delay_seconds,
            )
            await sleep(decision.delay_seconds)
            continue

        provider_attempts_total.labels(result="ok").inc()
        if state.attempt > 0:
            _log_structured(
                "render_success_after_retry",
                attempt=state.attempt_number,
                max_attempts=max_attempts,
                status_code=result.status_code,
            )
        return result


def _log_structured(message: str, **kwargs: Any) -> None:
    """Emit one structured log line for observability."""
    extra = {k: v for k, v in kwargs.items() if k in LOG_KEYS and v is not None}
    logger.info(message, extra=extra)
