"""Gemini backend using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from chatlab.backends.base import (
    Backend,
    Malformed,
    Rejected,
    Unauthenticated,
    Unreachable,
    to_chat_messages,
)
from chatlab.models import BackendReply, InvokeOptions, Message
from config.config_loader import ModelConfig

logger = logging.getLogger(__name__)

_AUTH_STATUSES = {401, 403}


class GeminiBackend(Backend):
    """Google Gemini backend via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        self._client = genai.Client(api_key=api_key) if api_key else None

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _generation_config(self, options: InvokeOptions) -> genai_types.GenerateContentConfig:
        temperature = options.temperature if options.temperature is not None else self._config.temperature
        return genai_types.GenerateContentConfig(
            max_output_tokens=options.max_output_tokens or self._config.max_tokens,
            temperature=temperature,
            system_instruction=options.system_prompt or None,
        )

    async def invoke(self, history: Sequence[Message], options: InvokeOptions) -> BackendReply:
        if self._client is None:
            raise Unauthenticated(self._config.name, f"Missing API key: {self._config.api_key_env}")

        # Gemini names the assistant side "model"
        contents = [
            {"role": "model" if t["role"] == "assistant" else "user", "parts": [{"text": t["content"]}]}
            for t in to_chat_messages(history)
        ]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=self._generation_config(options),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise Unreachable(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except genai_errors.APIError as exc:
            if exc.code in _AUTH_STATUSES:
                raise Unauthenticated(self._config.name, str(exc.message)) from exc
            raise Rejected(self._config.name, exc.code, str(exc.message)) from exc
        except Exception as exc:
            raise Unreachable(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise Malformed(self._config.name, "Empty response text")

        usage = response.usage_metadata
        input_tokens = (usage.prompt_token_count or 0) if usage else 0
        output_tokens = (usage.candidates_token_count or 0) if usage else 0

        logger.info(
            "Gemini %s: %.2fs, %d in / %d out tokens",
            self._config.model,
            latency,
            input_tokens,
            output_tokens,
        )

        return BackendReply(text=response.text, input_tokens=input_tokens, output_tokens=output_tokens)
