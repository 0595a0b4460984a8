"""Unit tests for chatlab/healthcheck.py: no real API calls."""

from unittest.mock import AsyncMock

from chatlab.backends.base import Rejected, Unauthenticated
from chatlab.healthcheck import run_health_checks
from tests.conftest import MockBackend


async def test_all_backends_pass():
    """All backends succeed -> all marked ok, no errors."""
    backends = {
        "claude": MockBackend("claude", "OK"),
        "llama": MockBackend("llama", "OK"),
    }

    results = await run_health_checks(backends)

    assert results["claude"] == (True, "")
    assert results["llama"] == (True, "")


async def test_ping_is_single_short_turn():
    backend = MockBackend("claude", "OK")

    await run_health_checks({"claude": backend})

    history, options = backend.invoke.await_args.args
    assert len(history) == 1
    assert "OK" in history[0].content
    assert options.max_output_tokens == 5


async def test_one_backend_fails():
    """A backend that raises returns ok=False with the error message."""
    backends = {
        "claude": MockBackend("claude"),
        "gemma": MockBackend("gemma"),
    }
    backends["gemma"].invoke = AsyncMock(side_effect=Rejected("gemma", 403, "Forbidden"))

    results = await run_health_checks(backends)

    assert results["claude"] == (True, "")
    ok, err = results["gemma"]
    assert ok is False
    assert "403" in err


async def test_all_backends_fail():
    """All fail -> all marked False."""
    backends = {
        "qwen": MockBackend("qwen"),
        "gemini": MockBackend("gemini"),
    }
    backends["qwen"].invoke = AsyncMock(side_effect=Unauthenticated("qwen", "Missing API key: HF_TOKEN"))
    backends["gemini"].invoke = AsyncMock(side_effect=Exception("gemini down"))

    results = await run_health_checks(backends)

    for name in backends:
        ok, err = results[name]
        assert ok is False
        assert name in err


async def test_empty_backends():
    """Empty backend dict returns empty results."""
    results = await run_health_checks({})
    assert results == {}
