"""Conversation context: ordered message log, token ledger, threshold compaction.

One ConversationContext owns one conversation. Calls are serialized per
instance: a submit and the compaction it triggers never overlap with another
submit on the same conversation. Separate conversations share nothing and can
run concurrently.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from chatlab.backends.base import Backend
from chatlab.models import ConversationStats, InvokeOptions, Message, Role, TokenUsage
from chatlab.store import KeyValueStore, MemoryStore, dump_json, load_json
from config.config_loader import PromptsConfig

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Summary of previous conversation:"
DEFAULT_COMPACTION_THRESHOLD = 10


class ContextState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    COMPACTING = "compacting"


@dataclass
class ContextSettings:
    compaction_threshold: int | None = DEFAULT_COMPACTION_THRESHOLD
    system_prompt: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    input_price_per_million: float = 3.0
    output_price_per_million: float = 15.0


def estimated_cost(
    total_input: int,
    total_output: int,
    input_rate: float,
    output_rate: float,
) -> float:
    """Dollar cost for token totals at per-million-token rates."""
    return total_input / 1_000_000 * input_rate + total_output / 1_000_000 * output_rate


def render_transcript(messages: Sequence[Message]) -> str:
    """Render messages as 'User: ...' / 'Assistant: ...' lines, oldest first."""
    return "\n".join(f"{msg.role.value.capitalize()}: {msg.content}" for msg in messages)


def _validate_temperature(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"temperature must be within [0.0, 1.0], got {value}")
    return value


class ConversationContext:
    """Message log for one conversation with rollback and compaction."""

    def __init__(
        self,
        backend: Backend,
        *,
        key: str,
        prompts: PromptsConfig,
        store: KeyValueStore | None = None,
        settings: ContextSettings | None = None,
        on_change: Callable[[tuple[Message, ...]], None] | None = None,
    ) -> None:
        self._backend = backend
        self._key = key
        self._prompts = prompts
        self._store = store if store is not None else MemoryStore()
        self._settings = replace(settings) if settings is not None else ContextSettings()
        self._on_change = on_change
        self._lock = asyncio.Lock()
        self._state = ContextState.IDLE
        self._messages: list[Message] = []
        self._stats = ConversationStats()
        self._load()

    # --- persistence -------------------------------------------------------

    @property
    def _history_key(self) -> str:
        return f"conversation:{self._key}:history"

    @property
    def _stats_key(self) -> str:
        return f"conversation:{self._key}:stats"

    @property
    def _settings_key(self) -> str:
        return f"conversation:{self._key}:settings"

    def _load(self) -> None:
        history_raw = load_json(self._store, self._history_key, [])
        try:
            self._messages = [Message.from_dict(m) for m in history_raw]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable history for %s: %s", self._key, exc)
            self._messages = []

        stats_raw = load_json(self._store, self._stats_key, {})
        try:
            self._stats = ConversationStats(
                summary_count=int(stats_raw.get("summary_count", 0)),
                compressed_message_count=int(stats_raw.get("compressed_message_count", 0)),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable stats for %s: %s", self._key, exc)
            self._stats = ConversationStats()

        settings_raw = load_json(self._store, self._settings_key, {})
        if isinstance(settings_raw.get("system_prompt"), str):
            self._settings.system_prompt = settings_raw["system_prompt"]
        temperature = settings_raw.get("temperature")
        if temperature is not None:
            try:
                self._settings.temperature = _validate_temperature(float(temperature))
            except (TypeError, ValueError) as exc:
                logger.warning("Ignoring stored temperature for %s: %s", self._key, exc)

        logger.debug("Loaded conversation %s with %d messages", self._key, len(self._messages))

    def _save(self) -> None:
        dump_json(self._store, self._history_key, [m.to_dict() for m in self._messages])
        dump_json(
            self._store,
            self._stats_key,
            {
                "summary_count": self._stats.summary_count,
                "compressed_message_count": self._stats.compressed_message_count,
            },
        )

    def _save_settings(self) -> None:
        dump_json(
            self._store,
            self._settings_key,
            {"system_prompt": self._settings.system_prompt, "temperature": self._settings.temperature},
        )

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.messages)

    # --- read accessors ----------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def settings(self) -> ContextSettings:
        return self._settings

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def total_message_count(self) -> int:
        return len(self._messages)

    @property
    def non_summary_count(self) -> int:
        return sum(1 for m in self._messages if not m.is_summary)

    @property
    def summary_count(self) -> int:
        return self._stats.summary_count

    @property
    def compressed_message_count(self) -> int:
        return self._stats.compressed_message_count

    @property
    def total_input_tokens(self) -> int:
        return sum(m.token_usage.input_tokens for m in self._messages if m.token_usage)

    @property
    def total_output_tokens(self) -> int:
        return sum(m.token_usage.output_tokens for m in self._messages if m.token_usage)

    @property
    def estimated_cost(self) -> float:
        return estimated_cost(
            self.total_input_tokens,
            self.total_output_tokens,
            self._settings.input_price_per_million,
            self._settings.output_price_per_million,
        )

    # --- configuration -----------------------------------------------------

    def set_system_prompt(self, prompt: str | None) -> None:
        self._settings.system_prompt = prompt.strip() if prompt and prompt.strip() else None
        self._save_settings()

    def use_preset(self, name: str) -> None:
        """Activate a named system prompt from settings.yaml presets.

        Raises:
            KeyError: If no preset has that name.
        """
        if name not in self._prompts.presets:
            raise KeyError(f"Unknown preset '{name}'. Available: {', '.join(sorted(self._prompts.presets))}")
        self.set_system_prompt(self._prompts.presets[name])

    def set_temperature(self, value: float | None) -> None:
        self._settings.temperature = _validate_temperature(value) if value is not None else None
        self._save_settings()

    def _options(self) -> InvokeOptions:
        return InvokeOptions(
            system_prompt=self._settings.system_prompt,
            temperature=self._settings.temperature,
            max_output_tokens=self._settings.max_output_tokens,
        )

    # --- mutation ----------------------------------------------------------

    async def submit(self, text: str) -> Message | None:
        """Send one user turn and append the reply.

        Whitespace-only input is ignored and returns None without calling
        the backend.

        Returns:
            The assistant Message appended to the log.

        Raises:
            BackendError: The backend failed. The user turn has been removed
                from the log again, as it is on cancellation.
            asyncio.CancelledError: Cancelled while waiting for the reply, the
                user turn is rolled back. Cancelled during the compaction that
                follows, the exchange is already committed and saved and the
                log is left uncompacted.
        """
        content = text.strip()
        if not content:
            logger.debug("Ignoring empty input for %s", self._key)
            return None

        async with self._lock:
            user_message = Message(role=Role.USER, content=content)
            self._messages.append(user_message)
            self._state = ContextState.SENDING
            self._notify()

            try:
                reply = await self._backend.invoke(tuple(self._messages), self._options())
            except BaseException:
                # Rollback also runs when the caller cancels mid-flight
                self._messages = [m for m in self._messages if m.id != user_message.id]
                self._state = ContextState.IDLE
                self._notify()
                logger.info("Exchange failed for %s, user turn rolled back", self._key)
                raise

            assistant_message = Message(
                role=Role.ASSISTANT,
                content=reply.text,
                token_usage=TokenUsage(input_tokens=reply.input_tokens, output_tokens=reply.output_tokens),
            )
            self._messages.append(assistant_message)
            self._state = ContextState.IDLE
            self._notify()
            self._save()

            if await self._compact_locked():
                self._save()

            return assistant_message

    async def compact(self) -> bool:
        """Run compaction now if the threshold is reached. Returns True if a summary was made."""
        async with self._lock:
            compacted = await self._compact_locked()
            if compacted:
                self._save()
            return compacted

    async def _compact_locked(self) -> bool:
        threshold = self._settings.compaction_threshold
        if threshold is None:
            return False

        batch = [m for m in self._messages if not m.is_summary][:threshold]
        if len(batch) < threshold:
            return False

        self._state = ContextState.COMPACTING
        prompt = self._prompts.summary.format(conversation=render_transcript(batch))
        logger.info("Compacting %d messages for %s", len(batch), self._key)

        try:
            reply = await self._backend.invoke((Message(role=Role.USER, content=prompt),), InvokeOptions())
        except Exception as exc:
            logger.warning("Compaction failed for %s, will retry on next send: %s", self._key, exc)
            return False
        finally:
            self._state = ContextState.IDLE

        batch_ids = {m.id for m in batch}
        summary = Message(
            role=Role.ASSISTANT,
            content=f"{SUMMARY_PREFIX}\n\n{reply.text}",
            created_at=batch[0].created_at,
            token_usage=TokenUsage(input_tokens=reply.input_tokens, output_tokens=reply.output_tokens),
            is_summary=True,
        )
        self._messages = [summary] + [m for m in self._messages if m.id not in batch_ids]
        self._stats.summary_count += 1
        self._stats.compressed_message_count += len(batch)
        self._notify()

        logger.info(
            "Conversation %s compacted: %d summaries, %d messages compressed",
            self._key,
            self._stats.summary_count,
            self._stats.compressed_message_count,
        )
        return True

    async def clear(self) -> None:
        """Empty the log and zero all counters. Safe to call repeatedly.

        Waits for an in-flight submit to finish first, so a late reply never
        lands in the emptied log.
        """
        async with self._lock:
            self._messages = []
            self._stats = ConversationStats()
            self._store.delete(self._history_key)
            self._store.delete(self._stats_key)
            self._notify()
