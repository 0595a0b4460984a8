"""Tests for chatlab/models.py dataclasses."""

import dataclasses
from datetime import datetime, timezone

import pytest

from chatlab.models import (
    BackendResult,
    ComparisonRun,
    InvokeOptions,
    Message,
    Role,
    RunStatus,
    TokenUsage,
)


def test_message_defaults():
    msg = Message(role=Role.USER, content="Hi")
    assert len(msg.id) == 32
    assert msg.created_at.tzinfo is not None
    assert msg.token_usage is None
    assert msg.is_summary is False


def test_message_ids_are_unique():
    assert Message(role=Role.USER, content="a").id != Message(role=Role.USER, content="a").id


def test_message_is_immutable():
    msg = Message(role=Role.USER, content="Hi")
    with pytest.raises(dataclasses.FrozenInstanceError):
        msg.content = "changed"  # type: ignore[misc]


def test_summary_must_be_assistant():
    with pytest.raises(ValueError, match="assistant"):
        Message(role=Role.USER, content="summary", is_summary=True)


def test_message_dict_form():
    created = datetime(2025, 12, 10, 9, 30, tzinfo=timezone.utc)
    msg = Message(
        role=Role.ASSISTANT,
        content="Hello!",
        created_at=created,
        token_usage=TokenUsage(input_tokens=5, output_tokens=8),
    )
    raw = msg.to_dict()
    assert raw["role"] == "assistant"
    assert raw["token_usage"] == {"input_tokens": 5, "output_tokens": 8}
    assert raw["created_at"] == "2025-12-10T09:30:00+00:00"
    assert Message.from_dict(raw) == msg


def test_message_from_dict_without_usage():
    raw = {"id": "abc", "role": "user", "content": "Hi", "created_at": "2025-12-10T09:30:00+00:00"}
    msg = Message.from_dict(raw)
    assert msg.token_usage is None
    assert msg.is_summary is False


@pytest.mark.parametrize("temperature", [-0.1, 1.01, 2.0])
def test_invoke_options_rejects_bad_temperature(temperature):
    with pytest.raises(ValueError):
        InvokeOptions(temperature=temperature)


def test_invoke_options_accepts_bounds():
    assert InvokeOptions(temperature=0.0).temperature == 0.0
    assert InvokeOptions(temperature=1.0).temperature == 1.0


def test_invoke_options_rejects_non_positive_max_tokens():
    with pytest.raises(ValueError):
        InvokeOptions(max_output_tokens=0)


def test_backend_result_ok():
    good = BackendResult("llama", "Llama 3.2 3B", "text", 0.5, 10, 20)
    bad = BackendResult("qwen", "Qwen 2.5 7B", "", 0.2, 0, 0, error="HTTP 503: loading")
    assert good.ok
    assert not bad.ok


def test_comparison_run_defaults():
    run = ComparisonRun(query="What is recursion?")
    assert run.status is RunStatus.PENDING
    assert run.results == []
    assert run.synthesis is None


def test_comparison_run_dict_form():
    run = ComparisonRun(
        query="q",
        results=[BackendResult("llama", "Llama", "", 0.1, 0, 0, error="down")],
        synthesis="Nothing worked.",
        status=RunStatus.COMPLETE,
    )
    restored = ComparisonRun.from_dict(run.to_dict())
    assert restored == run
