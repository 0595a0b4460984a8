"""Shared pytest fixtures."""

from collections.abc import Sequence
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from chatlab.backends.base import Backend
from chatlab.models import BackendReply, InvokeOptions, Message
from chatlab.store import MemoryStore
from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="anthropic",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        display_name="Test Model",
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        summary="Summarize in 2-3 sentences:\n\n{conversation}\n\nProvide only the summary.",
        comparison="Analyze these {count} responses to: \"{query}\"\n\n{responses}\n\nCompare briefly.",
        presets={"pirate": "You are a pirate.", "minimalist": "Answer in few words."},
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        assistant="claude",
        synthesizer="claude",
        store_dir=tmp_path / "store",
        output_dir=tmp_path / "output",
        comparison_panel=["llama", "qwen", "gemma"],
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    models = {
        "claude": ModelConfig(
            name="claude",
            sdk="anthropic",
            model="claude-sonnet-4-5-20250929",
            api_key_env="ANTHROPIC_API_KEY",
            timeout_sec=60,
            max_tokens=4096,
            display_name="Claude Sonnet 4.5",
        ),
        "llama": ModelConfig(
            name="llama",
            sdk="openai",
            model="meta-llama/Llama-3.2-3B-Instruct",
            api_key_env="HF_TOKEN",
            timeout_sec=60,
            max_tokens=200,
            display_name="Llama 3.2 3B",
            base_url="https://router.huggingface.co/v1",
        ),
        "qwen": ModelConfig(
            name="qwen",
            sdk="openai",
            model="Qwen/Qwen2.5-7B-Instruct",
            api_key_env="HF_TOKEN",
            timeout_sec=60,
            max_tokens=200,
            display_name="Qwen 2.5 7B",
            base_url="https://router.huggingface.co/v1",
        ),
        "gemini": ModelConfig(
            name="gemini",
            sdk="gemini",
            model="gemini-2.5-flash",
            api_key_env="GEMINI_API_KEY",
            timeout_sec=60,
            max_tokens=1024,
        ),
    }
    return AppConfig(
        defaults=sample_defaults_config,
        models=models,
        prompts=sample_prompts_config,
        available_backends={"claude"},
    )


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


def reply(text: str = "Mock response", input_tokens: int = 5, output_tokens: int = 8) -> BackendReply:
    return BackendReply(text=text, input_tokens=input_tokens, output_tokens=output_tokens)


class MockBackend(Backend):
    """Test double Backend."""

    def __init__(self, backend_name: str = "mock", response_text: str = "Mock response") -> None:
        self._name = backend_name
        self._response_text = response_text
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because invoke is defined in the class body below.
        self.invoke = AsyncMock(return_value=reply(response_text))  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def invoke(self, history: Sequence[Message], options: InvokeOptions) -> BackendReply:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return reply(self._response_text)


@pytest.fixture
def mock_backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def three_mock_backends() -> list[MockBackend]:
    return [
        MockBackend("llama", "Response from Llama"),
        MockBackend("qwen", "Response from Qwen"),
        MockBackend("gemma", "Response from Gemma"),
    ]
