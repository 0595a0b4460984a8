"""Anthropic Claude backend using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Sequence
from typing import Any

import anthropic as anthropic_sdk

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


class AnthropicBackend(Backend):
    """Anthropic Claude backend via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key) if api_key else None

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _request_kwargs(self, history: Sequence[Message], options: InvokeOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": options.max_output_tokens or self._config.max_tokens,
            "messages": to_chat_messages(history),
        }
        if options.system_prompt:
            kwargs["system"] = options.system_prompt
        temperature = options.temperature if options.temperature is not None else self._config.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs

    async def invoke(self, history: Sequence[Message], options: InvokeOptions) -> BackendReply:
        if self._client is None:
            raise Unauthenticated(self._config.name, f"Missing API key: {self._config.api_key_env}")

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**self._request_kwargs(history, options)),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise Unreachable(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except (anthropic_sdk.AuthenticationError, anthropic_sdk.PermissionDeniedError) as exc:
            raise Unauthenticated(self._config.name, error_message_from_body(exc.body, exc.message)) from exc
        except anthropic_sdk.APIStatusError as exc:
            raise Rejected(
                self._config.name, exc.status_code, error_message_from_body(exc.body, exc.message)
            ) from exc
        except anthropic_sdk.APIConnectionError as exc:
            raise Unreachable(self._config.name, f"Connection failed: {exc}") from exc
        except anthropic_sdk.APIResponseValidationError as exc:
            raise Malformed(self._config.name, f"Undecodable response: {exc}") from exc
        except Exception as exc:
            raise Unreachable(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        if not text_blocks:
            raise Malformed(self._config.name, "No text blocks in response")
        if response.usage is None:
            raise Malformed(self._config.name, "Response carries no usage")

        reply = BackendReply(
            text="\n".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        logger.info(
            "Anthropic %s: %.2fs, %d in / %d out tokens",
            self._config.model,
            latency,
            reply.input_tokens,
            reply.output_tokens,
        )
        return reply
