"""After-commit side effects.

Once a booking transaction has committed, calendar sync and notifications
run as a list of independent effects. Each one is time-bounded and wrapped
so its failure is logged and reported but never reaches the caller or the
other effects.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from studiobook.config.settings import settings
from studiobook.core.observability import capture_exception

from .exceptions import SideEffectWarning

logger = structlog.get_logger(__name__)


@dataclass
class SideEffect:
    name: str
    run: Callable[[], Awaitable[Any]]
    context: dict[str, Any] | None = None


@dataclass
class SideEffectResult:
    name: str
    ok: bool
    value: Any = None
    error: str | None = None


async def run_side_effects(
    effects: list[SideEffect],
    timeout: float | None = None,
) -> list[SideEffectResult]:
    """Run effects one after another, isolating each failure.

    Effects run sequentially because some of them share the request's
    database session.
    """
    timeout = timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS
    results = []
    for effect in effects:
        context = effect.context or {}
        try:
            value = await asyncio.wait_for(effect.run(), timeout=timeout)
        except Exception as e:
            logger.warning(
                "side_effect_failed",
                effect=effect.name,
                error=str(e),
                type=type(e).__name__,
                category=SideEffectWarning.__name__,
                **context,
            )
            capture_exception(e, extra=context, tags={"side_effect": effect.name})
            results.append(SideEffectResult(effect.name, ok=False, error=str(e) or type(e).__name__))
            continue
        logger.debug("side_effect_completed", effect=effect.name, **context)
        results.append(SideEffectResult(effect.name, ok=True, value=value))
    return results
