"""Backend health checks: ping each configured backend in parallel."""

import asyncio
import logging

from chatlab.backends.base import Backend
from chatlab.models import InvokeOptions, Message, Role

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_PING_OPTIONS = InvokeOptions(max_output_tokens=5)
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, backend: Backend) -> tuple[str, bool, str]:
    """Ping a single backend. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(
            backend.invoke((Message(role=Role.USER, content=_PING_PROMPT),), _PING_OPTIONS),
            timeout=_TIMEOUT_SEC,
        )
        return name, True, ""
    except TimeoutError:
        return name, False, f"No reply within {_TIMEOUT_SEC:.0f}s"
    except Exception as exc:
        logger.debug("Health check for %s failed: %s", name, exc)
        return name, False, str(exc)


async def run_health_checks(
    backends: dict[str, Backend],
) -> dict[str, tuple[bool, str]]:
    """Ping all backends in parallel.

    Returns:
        Dict mapping backend name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, b) for n, b in backends.items()))
    return {name: (ok, err) for name, ok, err in results}
