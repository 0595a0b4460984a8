"""Load settings.yaml into typed dataclasses. Reports which backends have API keys."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    display_name: str = ""
    base_url: str | None = None
    temperature: float | None = None

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.name


@dataclass
class PromptsConfig:
    summary: str
    comparison: str
    presets: dict[str, str] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    assistant: str
    synthesizer: str
    store_dir: Path
    output_dir: Path
    compaction_threshold: int | None = 10
    input_price_per_million: float = 3.0
    output_price_per_million: float = 15.0
    comparison_panel: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    available_backends: set[str] = field(default_factory=set)


def _parse_threshold(value: object) -> int | None:
    if value is None:
        return None
    threshold = int(value)
    if threshold < 1:
        raise ValueError(f"compaction_threshold must be >= 1 or null, got {threshold}")
    return threshold


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; callers check
    available_backends.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        assistant=str(defaults_raw["assistant"]),
        synthesizer=str(defaults_raw.get("synthesizer", defaults_raw["assistant"])),
        store_dir=Path(defaults_raw["store_dir"]),
        output_dir=Path(defaults_raw["output_dir"]),
        compaction_threshold=_parse_threshold(defaults_raw.get("compaction_threshold", 10)),
        input_price_per_million=float(defaults_raw.get("input_price_per_million", 3.0)),
        output_price_per_million=float(defaults_raw.get("output_price_per_million", 15.0)),
        comparison_panel=list(defaults_raw.get("comparison_panel", [])),
    )

    prompts_raw = raw["prompts"]
    presets_raw = raw.get("presets", {})
    prompts = PromptsConfig(
        summary=prompts_raw["summary"],
        comparison=prompts_raw["comparison"],
        presets={str(k): str(v) for k, v in presets_raw.items()},
    )

    models: dict[str, ModelConfig] = {}
    available_backends: set[str] = set()

    for backend_name, model_raw in raw["models"].items():
        temperature = model_raw.get("temperature")
        model_cfg = ModelConfig(
            name=backend_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            display_name=str(model_raw.get("display_name", "")),
            base_url=model_raw.get("base_url"),
            temperature=float(temperature) if temperature is not None else None,
        )
        models[backend_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_backends.add(backend_name)
            logger.info("Backend available: %s", backend_name)
        else:
            logger.info(
                "Backend without API key: %s (set %s in .env)",
                backend_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        available_backends=available_backends,
    )
