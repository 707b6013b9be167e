"""
Saga execution with automatic rollback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, assert_never

import combinators as C
from combinators import lift as L
from kungfu import Error, Ok, Result

from storefront.saga._types import Compensator, SagaError, SagaExpr, SagaResult, SagaStep, Then
from storefront.saga.policy import CancelPolicy, Policy, RetryPolicy, TimeoutPolicy

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Execution state
# ═══════════════════════════════════════════════════════════════════════════════

type RecordedCompensator = tuple[str, Any, Compensator[Any]]


@dataclass(slots=True)
class _Execution:
    timeout: TimeoutPolicy | None = None
    retry: RetryPolicy | None = None
    cancel: CancelPolicy[Any] | None = None
    compensators: list[RecordedCompensator] = field(default_factory=list)
    steps: int = 0
    current: str = ""

    @classmethod
    def from_policies(cls, policies: tuple[Policy, ...]) -> _Execution:
        execution = cls()
        for policy in policies:
            match policy:
                case TimeoutPolicy():
                    execution.timeout = policy
                case RetryPolicy():
                    execution.retry = policy
                case CancelPolicy():
                    execution.cancel = policy
                case _:
                    assert_never(policy)
        return execution


# ═══════════════════════════════════════════════════════════════════════════════
# run_step() — Execute single step
# ═══════════════════════════════════════════════════════════════════════════════


async def run_step[T, E](step: SagaStep[T, E], execution: _Execution) -> Result[T, Any]:
    """Execute single step, recording compensator on success."""
    execution.steps += 1
    execution.current = step.name or f"step {execution.steps}"

    if execution.cancel is not None and execution.cancel.token.cancelled:
        return Error(execution.cancel.on_cancel(execution.current))

    action = step.action
    if execution.timeout is not None:
        action = C.timeout(action, seconds=execution.timeout.duration.total_seconds())

    result = await action
    match result:
        case Ok(value):
            if step.compensate is not None:
                execution.compensators.append((execution.current, value, step.compensate))
            return Ok(value)
        case Error(e):
            return Error(e)


async def _execute(expr: SagaExpr[Any, Any], execution: _Execution) -> Result[Any, Any]:
    match expr:
        case SagaStep():
            return await run_step(expr, execution)
        case Then(inner=inner, f=f):
            match await _execute(inner, execution):
                case Ok(value):
                    return await _execute(f(value), execution)
                case Error(e):
                    return Error(e)
        case _:
            assert_never(expr)


# ═══════════════════════════════════════════════════════════════════════════════
# run_compensators() — Rollback
# ═══════════════════════════════════════════════════════════════════════════════


async def run_compensators(
    compensators: list[RecordedCompensator],
    retry: RetryPolicy | None = None,
) -> tuple[int, int]:
    """Run compensators in reverse. Returns (run, failed)."""
    comp_run = 0
    comp_failed = 0
    policy = C.RetryPolicy.fixed(
        1 if retry is None else retry.times,
        0.0 if retry is None else retry.delay.total_seconds(),
    )

    for name, value, comp in reversed(compensators):
        def attempt_failed(e: Exception, name: str = name) -> Exception:
            logger.warning("Compensation of %s failed: %s", name, e)
            return e

        attempt = L.catching_async(
            lambda comp=comp, value=value: comp(value),
            on_error=attempt_failed,
        )
        match await C.retry(attempt, policy=policy):
            case Ok(_):
                comp_run += 1
            case Error(e):
                logger.error(
                    "Compensation of %s gave up after %d attempt(s)", name, policy.times, exc_info=e
                )
                comp_failed += 1

    return comp_run, comp_failed


# ═══════════════════════════════════════════════════════════════════════════════
# run() — Execute Saga
# ═══════════════════════════════════════════════════════════════════════════════


async def run[T, E](
    saga: SagaExpr[T, E],
    *policies: Policy,
) -> Result[SagaResult[T], SagaError[Any]]:
    """
    Execute a step or a chain with automatic rollback on failure.

    On success: returns SagaResult with value and metadata.
    On failure: runs compensators in reverse, returns SagaError.

    Example:
        from storefront import saga as S

        checkout = (
            S.step(check_stock, name="stock pre-check")
            .then(lambda levels: S.step(persist(levels), mark_failed, name="persist order"))
            .then(lambda order: S.step(reconcile(order), restock, name="reconcile stock"))
        )

        match await S.run(checkout, S.policy.timeout(seconds=10)):
            case Ok(r):
                print(f"Success: {r.value}")
            case Error(e):
                print(f"Failed at {e.step_name}, rollback complete: {e.rollback_complete}")
    """
    execution = _Execution.from_policies(policies)

    match await _execute(saga, execution):
        case Ok(value):
            return Ok(SagaResult(
                value=value,
                steps_executed=execution.steps,
                compensators_recorded=len(execution.compensators),
            ))

        case Error(error):
            comp_run, comp_failed = await run_compensators(execution.compensators, execution.retry)

            return Error(SagaError(
                error=error,
                step_failed=execution.steps,
                step_name=execution.current,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
            ))


__all__ = ("run", "run_step", "run_compensators")
