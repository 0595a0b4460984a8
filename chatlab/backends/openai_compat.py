"""OpenAI-compatible backend using openai SDK (OpenAI, Hugging Face router, xAI)."""

import asyncio
import logging
import os
import time
from collections.abc import Sequence
from typing import Any

import openai
from openai import AsyncOpenAI

from chatlab.backends.base import (
    Backend,
    Malformed,
    Rejected,
    Unauthenticated,
    Unreachable,
    error_message_from_body,
    to_chat_messages,
)
from chatlab.models import BackendReply, InvokeOptions, Message
from config.config_loader import ModelConfig

logger = logging.getLogger(__name__)

# Rough chars-per-token ratio used when the endpoint omits usage
_CHARS_PER_TOKEN = 4


class OpenAICompatibleBackend(Backend):
    """Chat-completions backend for any OpenAI-compatible endpoint."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url) if api_key else None

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _wire_messages(self, history: Sequence[Message], options: InvokeOptions) -> list[dict[str, str]]:
        messages = to_chat_messages(history)
        if options.system_prompt:
            messages.insert(0, {"role": "system", "content": options.system_prompt})
        return messages

    async def invoke(self, history: Sequence[Message], options: InvokeOptions) -> BackendReply:
        if self._client is None:
            raise Unauthenticated(self._config.name, f"Missing API key: {self._config.api_key_env}")

        messages = self._wire_messages(history, options)
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "max_tokens": options.max_output_tokens or self._config.max_tokens,
        }
        temperature = options.temperature if options.temperature is not None else self._config.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise Unreachable(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise Unauthenticated(self._config.name, error_message_from_body(exc.body, exc.message)) from exc
        except openai.APIStatusError as exc:
            raise Rejected(
                self._config.name, exc.status_code, error_message_from_body(exc.body, exc.message)
            ) from exc
        except openai.APIConnectionError as exc:
            raise Unreachable(self._config.name, f"Connection failed: {exc}") from exc
        except openai.APIResponseValidationError as exc:
            raise Malformed(self._config.name, f"Undecodable response: {exc}") from exc
        except Exception as exc:
            raise Unreachable(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise Malformed(self._config.name, "No choices in response")

        text = choice.message.content
        if response.usage:
            input_tokens = response.usage.prompt_tokens
            output_tokens = response.usage.completion_tokens
        else:
            input_tokens = sum(len(m["content"]) for m in messages) // _CHARS_PER_TOKEN
            output_tokens = len(text) // _CHARS_PER_TOKEN

        logger.info(
            "OpenAI-compatible %s: %.2fs, %d in / %d out tokens",
            self._config.model,
            latency,
            input_tokens,
            output_tokens,
        )

        return BackendReply(text=text, input_tokens=input_tokens, output_tokens=output_tokens)
