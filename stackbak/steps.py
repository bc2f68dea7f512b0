# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
stackbak Steps - One place that decides what a failed external step means.

Each step declares its policy. A MANDATORY step that fails raises
CollaboratorError and halts the sequence; a BEST_EFFORT step that fails
is logged as a warning and the sequence continues.
"""

from enum import Enum
from typing import Awaitable, Callable, List

import structlog

from stackbak.exceptions import CollaboratorError
from stackbak.runtime import CommandResult

logger = structlog.get_logger()


class StepPolicy(str, Enum):
    """What a failed step means for the rest of the sequence."""

    MANDATORY = "mandatory"
    BEST_EFFORT = "best_effort"


async def run_step(
    name: str,
    action: Callable[[], Awaitable[CommandResult]],
    policy: StepPolicy = StepPolicy.MANDATORY,
    warnings: List[str] | None = None,
) -> CommandResult | None:
    """
    Run one external step under the given policy.

    Args:
        name: Short step name used in logs and messages
        action: Zero-argument coroutine factory producing a CommandResult
        policy: MANDATORY or BEST_EFFORT
        warnings: Optional list collecting best-effort failure messages

    Returns:
        The CommandResult, or None if a best-effort step could not even start

    Raises:
        CollaboratorError: If a mandatory step fails
    """
    logger.info("step_started", step=name, policy=policy.value)

    try:
        result = await action()
    except CollaboratorError as e:
        if policy == StepPolicy.MANDATORY:
            raise
        _warn(name, e.message, warnings)
        return None

    if result.ok:
        logger.info("step_completed", step=name)
        return result

    if policy == StepPolicy.MANDATORY:
        logger.error(
            "step_failed",
            step=name,
            returncode=result.returncode,
            error=result.diagnostic,
        )
        raise CollaboratorError(
            f"{name} failed: {result.diagnostic}",
            details={"argv": result.argv, "returncode": result.returncode},
        )

    _warn(name, result.diagnostic, warnings)
    return result


def _warn(name: str, message: str, warnings: List[str] | None) -> None:
    logger.warning("step_failed_ignored", step=name, error=message)
    if warnings is not None:
        warnings.append(f"{name}: {message}")
