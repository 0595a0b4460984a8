"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "assistant": "claude",
            "synthesizer": "claude",
            "comparison_panel": ["llama", "qwen"],
            "compaction_threshold": 10,
            "input_price_per_million": 3.0,
            "output_price_per_million": 15.0,
            "store_dir": "./.chatlab",
            "output_dir": "./output",
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-sonnet-4-5-20250929",
                "display_name": "Claude Sonnet 4.5",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 4096,
            },
            "llama": {
                "sdk": "openai",
                "model": "meta-llama/Llama-3.2-3B-Instruct",
                "api_key_env": "TEST_HF_KEY",
                "base_url": "https://router.huggingface.co/v1",
                "timeout_sec": 60,
                "max_tokens": 200,
                "temperature": 0.7,
            },
        },
        "prompts": {
            "summary": "Summarize:\n{conversation}",
            "comparison": "Compare {count} answers to {query}:\n{responses}",
        },
        "presets": {
            "pirate": "You are a pirate.",
            "poet": "You are a poet.",
        },
    }
    for section, values in overrides.items():
        if values is None:
            settings.pop(section)
        else:
            settings[section].update(values)
    return settings


def _write(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    return _write(tmp_path, _settings())


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.assistant == "claude"
    assert config.defaults.synthesizer == "claude"
    assert config.defaults.compaction_threshold == 10
    assert config.defaults.comparison_panel == ["llama", "qwen"]
    assert isinstance(config.defaults.store_dir, Path)
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].display_name == "Claude Sonnet 4.5"
    assert config.models["claude"].base_url is None
    assert config.models["claude"].temperature is None
    assert config.models["llama"].base_url == "https://router.huggingface.co/v1"
    assert config.models["llama"].temperature == 0.7


def test_display_name_falls_back_to_name(minimal_settings):
    config = load_config(minimal_settings)
    assert config.models["llama"].display_name == "llama"


def test_load_config_prompts_and_presets(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{conversation}" in config.prompts.summary
    assert "{responses}" in config.prompts.comparison
    assert config.prompts.presets["pirate"] == "You are a pirate."


def test_presets_empty_when_missing(tmp_path: Path):
    config = load_config(_write(tmp_path, _settings(presets=None)))
    assert config.prompts.presets == {}


def test_compaction_can_be_disabled(tmp_path: Path):
    config = load_config(_write(tmp_path, _settings(defaults={"compaction_threshold": None})))
    assert config.defaults.compaction_threshold is None


def test_compaction_threshold_must_be_positive(tmp_path: Path):
    with pytest.raises(ValueError, match="compaction_threshold"):
        load_config(_write(tmp_path, _settings(defaults={"compaction_threshold": 0})))


def test_load_config_available_backends_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    monkeypatch.delenv("TEST_HF_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_backends == {"claude"}


def test_load_config_blank_key_not_available(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "   ")
    config = load_config(minimal_settings)
    assert "claude" not in config.available_backends


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_bundled_settings_load():
    config = load_config()
    assert config.defaults.assistant in config.models
    assert config.defaults.synthesizer in config.models
    assert all(name in config.models for name in config.defaults.comparison_panel)
    assert "{conversation}" in config.prompts.summary
    assert "{query}" in config.prompts.comparison


def test_bundled_settings_ship_json_and_clarification_presets():
    presets = load_config().prompts.presets
    assert presets["json"].startswith("CRITICAL INSTRUCTION: You MUST respond with ONLY raw JSON.")
    assert "maximum 5" in presets["clarification"]
    assert presets["clarification"].startswith("<interactive_clarification_mode>")
