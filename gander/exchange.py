"""Conversation history, token accounting and model calls for one session."""

import asyncio
import copy
from typing import Any, Iterable, Sequence

from gander.exceptions import (
    EmptyHistoryError,
    InvalidMessageError,
    ProviderError,
    ProviderTimeoutError,
)
from gander.llm import LLMProvider, TokenUsage
from gander.logging import get_logger
from gander.message import Message, Role, ToolResult, ToolUse
from gander.tools.executor import ToolExecutor

log = get_logger(__name__)


class Exchange:
    """Single authority over one session's history and token usage.

    History and usage each have their own lock. The locks are never held at
    the same time, and no lock is held while the backend is being called.
    """

    def __init__(
        self,
        provider: LLMProvider,
        executor: ToolExecutor,
        timeout: float | None = None,
    ):
        self.provider = provider
        self.executor = executor
        self.timeout = timeout
        self._history: list[Message] = []
        self._usage = TokenUsage()
        self._history_lock = asyncio.Lock()
        self._usage_lock = asyncio.Lock()

    def _check_references(self, message: Message, history: Sequence[Message]) -> None:
        """Every ToolResult must answer a ToolUse still present in history."""
        if not message.has_tool_result():
            return
        known = {
            use.id
            for entry in history
            if entry.role == Role.ASSISTANT
            for use in entry.tool_uses()
        }
        for result in message.tool_results():
            if result.tool_use_id not in known:
                raise InvalidMessageError(
                    "tool_result_reference",
                    f"ToolResult references unknown tool use id: {result.tool_use_id}",
                )

    def _validate(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise InvalidMessageError("message_type", f"Expected a Message, got {type(message).__name__}")
        message.validate()
        self._check_references(message, self._history)

    async def add_message(self, message: Message) -> None:
        """Validate and append a message; nothing changes if validation fails.

        Raises:
            InvalidMessageError
        """
        async with self._history_lock:
            self._validate(message)
            self._history.append(copy.deepcopy(message))
        log.debug("Message added", role=message.role.value, message_id=message.id)

    async def load_history(self, messages: Iterable[Message]) -> None:
        """Seed an empty exchange from persisted messages, validating in order."""
        async with self._history_lock:
            if self._history:
                raise InvalidMessageError("load_history", "History can only be loaded into an empty exchange")
            loaded: list[Message] = []
            for message in messages:
                message.validate()
                self._check_references(message, loaded)
                loaded.append(copy.deepcopy(message))
            self._history = loaded
        log.info("History loaded", count=len(loaded))

    async def generate(self, tools: Sequence[dict[str, Any]] | None = None) -> Message:
        """Ask the backend for the next Assistant message and append it.

        Raises:
            ProviderError when the backend fails; history and usage unchanged
        """
        history = await self.history_snapshot()
        try:
            if self.timeout:
                response = await asyncio.wait_for(
                    self.provider.generate(history, tools),
                    timeout=self.timeout,
                )
            else:
                response = await self.provider.generate(history, tools)
        except asyncio.TimeoutError as e:
            log.error("Model backend timed out", timeout=self.timeout)
            raise ProviderTimeoutError(self.timeout or 0) from e
        except ProviderError as e:
            log.error("Model backend failed", error=str(e))
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Model backend failed", error=str(e))
            raise ProviderError(f"Model backend call failed: {e}") from e

        message = response.message
        if message.role != Role.ASSISTANT:
            raise ProviderError(f"Model backend returned a {message.role.value} message")
        try:
            message.validate()
        except InvalidMessageError as e:
            raise ProviderError(f"Model backend returned an invalid message: {e}") from e

        async with self._usage_lock:
            self._usage = self._usage + response.usage
        async with self._history_lock:
            self._history.append(copy.deepcopy(message))

        log.info(
            "Model responded",
            model=response.model,
            tool_calls=len(message.tool_uses()),
            total_tokens=response.usage.total_tokens,
        )
        return message

    async def rewind(self) -> Message:
        """Remove and return the most recent message.

        Raises:
            EmptyHistoryError if there is nothing to remove
        """
        async with self._history_lock:
            if not self._history:
                raise EmptyHistoryError()
            message = self._history.pop()
        log.debug("Message rewound", role=message.role.value, message_id=message.id)
        return message

    async def token_usage(self) -> TokenUsage:
        async with self._usage_lock:
            return copy.copy(self._usage)

    async def history_snapshot(self) -> list[Message]:
        async with self._history_lock:
            return copy.deepcopy(self._history)

    async def last_message(self) -> Message | None:
        async with self._history_lock:
            return copy.deepcopy(self._history[-1]) if self._history else None

    async def dispatch_tool(self, tool_use: ToolUse) -> ToolResult:
        """Run one tool call; the caller decides when results enter history."""
        return await self.executor.execute(tool_use)

    def __len__(self) -> int:
        return len(self._history)
