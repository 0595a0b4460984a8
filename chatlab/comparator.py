"""Comparison runs: parallel fan-out to several backends, then one synthesis call."""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from chatlab.backends.base import Backend, BackendError
from chatlab.models import (
    BackendDescriptor,
    BackendResult,
    ComparisonRun,
    InvokeOptions,
    Message,
    Role,
    RunStatus,
)
from chatlab.store import KeyValueStore, MemoryStore, dump_json, load_json
from config.config_loader import PromptsConfig

logger = logging.getLogger(__name__)

NO_BACKENDS_SYNTHESIS = "No backends were configured, so there is nothing to compare."
SYNTHESIS_FAILED_PREFIX = "Synthesis unavailable:"


async def _query_backend(
    index: int,
    descriptor: BackendDescriptor,
    query: str,
    slots: list[BackendResult | None],
) -> None:
    """Query one backend and write its outcome into slots[index].

    Never raises except on cancellation; failures become error results.
    """
    history = (Message(role=Role.USER, content=query),)
    start = time.monotonic()
    try:
        reply = await descriptor.backend.invoke(history, InvokeOptions())
    except BackendError as exc:
        logger.warning("Backend %s failed: %s", descriptor.id, exc)
        error: str | None = exc.message
    except Exception as exc:
        logger.warning("Backend %s unexpected failure: %s", descriptor.id, exc)
        error = f"Unexpected error: {exc}"
    else:
        slots[index] = BackendResult(
            backend_id=descriptor.id,
            display_name=descriptor.display_name,
            response_text=reply.text,
            latency_sec=time.monotonic() - start,
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
        )
        return

    slots[index] = BackendResult(
        backend_id=descriptor.id,
        display_name=descriptor.display_name,
        response_text="",
        latency_sec=time.monotonic() - start,
        input_tokens=0,
        output_tokens=0,
        error=error,
    )


def _format_results(results: Sequence[BackendResult]) -> str:
    """Enumerate results in configuration order for the synthesis prompt."""
    parts: list[str] = []
    for i, result in enumerate(results, start=1):
        lines = [f"Model {i} ({result.display_name}):"]
        if result.error is not None:
            lines.append(f"Error: {result.error}")
        else:
            lines.append(f"Response: {result.response_text}")
            lines.append(f"Time: {int(result.latency_sec * 1000)}ms")
            lines.append(f"Tokens: {result.input_tokens} in / {result.output_tokens} out")
        parts.append("\n".join(lines))
    return "\n\n".join(parts)


class Comparator:
    """Runs one query against many backends and keeps the run history."""

    def __init__(
        self,
        synthesizer: Backend,
        *,
        prompts: PromptsConfig,
        store: KeyValueStore | None = None,
        key: str = "default",
        synthesis_options: InvokeOptions | None = None,
        on_results_ready: Callable[[ComparisonRun], None] | None = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._prompts = prompts
        self._store = store if store is not None else MemoryStore()
        self._key = key
        self._synthesis_options = synthesis_options or InvokeOptions()
        self._on_results_ready = on_results_ready
        self._runs: list[ComparisonRun] = []
        self._load()

    @property
    def _runs_key(self) -> str:
        return f"comparison:{self._key}:runs"

    def _load(self) -> None:
        runs_raw = load_json(self._store, self._runs_key, [])
        try:
            self._runs = [ComparisonRun.from_dict(r) for r in runs_raw]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable comparison history for %s: %s", self._key, exc)
            self._runs = []

    def _save(self) -> None:
        dump_json(self._store, self._runs_key, [r.to_dict() for r in self._runs])

    @property
    def runs(self) -> tuple[ComparisonRun, ...]:
        return tuple(self._runs)

    @property
    def run_count(self) -> int:
        return len(self._runs)

    @property
    def failed_result_count(self) -> int:
        return sum(1 for run in self._runs for r in run.results if not r.ok)

    async def compare(
        self,
        query: str,
        backends: Sequence[BackendDescriptor],
    ) -> ComparisonRun | None:
        """Query every backend concurrently, then synthesize a verdict.

        Args:
            query: The user query. Whitespace-only input is ignored.
            backends: Backends in display order; results keep this order.

        Returns:
            The completed ComparisonRun, or None for empty input. Backend
            and synthesis failures are recorded on the run, never raised.
        """
        query = query.strip()
        if not query:
            logger.debug("Ignoring empty comparison query")
            return None

        run = ComparisonRun(query=query)
        self._runs.append(run)

        logger.info("Comparing across %d backends", len(backends))

        slots: list[BackendResult | None] = [None] * len(backends)
        await asyncio.gather(
            *(_query_backend(i, d, query, slots) for i, d in enumerate(backends))
        )
        run.results = [r for r in slots if r is not None]
        run.status = RunStatus.RESULTS_READY

        failed = sum(1 for r in run.results if not r.ok)
        logger.info("Fan-in complete: %d/%d backends succeeded", len(run.results) - failed, len(run.results))

        if self._on_results_ready:
            self._on_results_ready(run)

        run.synthesis = await self._synthesize(query, run.results)
        run.status = RunStatus.COMPLETE
        self._save()
        return run

    async def _synthesize(self, query: str, results: Sequence[BackendResult]) -> str:
        if not results:
            return NO_BACKENDS_SYNTHESIS

        prompt = self._prompts.comparison.format(
            count=len(results),
            query=query,
            responses=_format_results(results),
        )

        logger.info("Running synthesis via %s", self._synthesizer.name())
        try:
            reply = await self._synthesizer.invoke(
                (Message(role=Role.USER, content=prompt),),
                self._synthesis_options,
            )
        except BackendError as exc:
            logger.warning("Synthesis failed: %s", exc)
            return f"{SYNTHESIS_FAILED_PREFIX} {exc.message}"
        except Exception as exc:
            logger.warning("Synthesis unexpected failure: %s", exc)
            return f"{SYNTHESIS_FAILED_PREFIX} {exc}"
        return reply.text

    def clear_results(self) -> None:
        """Discard all comparison history. Safe to call repeatedly."""
        self._runs = []
        self._store.delete(self._runs_key)
