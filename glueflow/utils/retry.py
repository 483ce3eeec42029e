from __future__ import annotations

import asyncio


def compute_backoff(delay_ms: float, multiplier: float, attempt: int) -> float:
    """Delay in milliseconds to wait after ``attempt`` (1-based) fails."""
    return delay_ms * (multiplier ** (attempt - 1))


async def sleep_ms(delay_ms: float) -> None:
    """Suspend the current task only; other runs on the loop keep going."""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)
