"""
Best-effort side effects (admin pings, reporting).
A failure here is logged and reported as data, never raised to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BestEffortOutcome:
    """Result of a best-effort task. Carries a message, never an exception."""
    label: str
    ok: bool
    error_message: Optional[str] = None


async def run_best_effort(
    label: str,
    coro_factory: Callable[[], Awaitable[object]],
    timeout: float = 5.0,
) -> BestEffortOutcome:
    """
    Run a side effect with a bounded timeout and swallow its failure.

    Args:
        label: Name used in log lines
        coro_factory: Zero-argument callable returning the awaitable to run
        timeout: Seconds before the task is abandoned

    Returns:
        BestEffortOutcome describing what happened
    """
    try:
        await asyncio.wait_for(coro_factory(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Best-effort task '{label}' timed out after {timeout}s")
        return BestEffortOutcome(label=label, ok=False, error_message="timeout")
    except Exception as e:
        logger.error(f"Best-effort task '{label}' failed: {e}")
        return BestEffortOutcome(label=label, ok=False, error_message=str(e) or type(e).__name__)

    return BestEffortOutcome(label=label, ok=True)
