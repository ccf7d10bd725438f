"""Model backends - direct HTTP calls to OpenAI-compatible and Ollama APIs."""

import json
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from gander.exceptions import ConfigurationError, ProviderError, ProviderTimeoutError
from gander.logging import get_logger
from gander.message import Content, Message, Role, Text, ToolUse

if TYPE_CHECKING:
    from gander.config import Config

log = get_logger(__name__)


OPENAI_BASE_URL = "https://api.openai.com/v1"
OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class TokenUsage:
    """Token counts reported for one backend call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class LLMResponse:
    """Response from the model backend."""

    message: Message
    usage: TokenUsage
    model: str = ""


class LLMProvider(ABC):
    """Abstract base class for model backends."""

    @abstractmethod
    async def generate(
        self,
        history: Sequence[Message],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Produce the next Assistant message for history."""
        pass

    async def close(self) -> None:
        return None


def _tool_names_by_id(history: Sequence[Message]) -> dict[str, str]:
    return {
        use.id: use.name
        for message in history
        if message.role == Role.ASSISTANT
        for use in message.tool_uses()
    }


def _result_text(output: str, is_error: bool) -> str:
    return f"Error: {output}" if is_error else output


def _function_definitions(tools: Sequence[dict[str, Any]] | None) -> list[dict[str, Any]]:
    result = []
    for tool in tools or []:
        name = tool.get("name")
        if not name:
            continue
        result.append({
            "type": "function",
            "function": {
                "name": name,
                "description": tool.get("description", "") or "",
                "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
            },
        })
    return result


def _assistant_message(content: list[Content]) -> Message:
    if not content:
        content = [Text(text="")]
    return Message.construct(Role.ASSISTANT, content)


class _HTTPProvider(LLMProvider):
    """Shared plumbing for JSON-over-HTTP backends."""

    chat_path = ""

    def __init__(
        self,
        model: str,
        base_url: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        system_prompt: str = "",
        timeout: float = 120.0,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @abstractmethod
    def _build_body(
        self,
        history: Sequence[Message],
        tools: Sequence[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        pass

    async def generate(
        self,
        history: Sequence[Message],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        url = f"{self.base_url}{self.chat_path}"
        body = self._build_body(history, tools)
        try:
            log.debug("Calling model backend", model=self.model, url=url, msg_count=len(history))
            response = await self.client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.timeout) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"HTTP error calling {url}: {e}") from e

        log.debug("Model backend response status", status=response.status_code)
        if not response.is_success:
            raise ProviderError(
                f"Model backend error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            return self._parse_response(data)
        except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderError(f"Malformed model backend response: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OpenAIProvider(_HTTPProvider):
    """OpenAI-compatible chat completions provider."""

    chat_path = "/chat/completions"

    def _convert_messages(self, history: Sequence[Message]) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        if self.system_prompt:
            result.append({"role": "system", "content": self.system_prompt})

        for message in history:
            if message.role == Role.USER:
                for item in message.tool_results():
                    result.append({
                        "role": "tool",
                        "tool_call_id": item.tool_use_id,
                        "content": _result_text(item.output, item.is_error),
                    })
                text = message.text()
                if text or not message.has_tool_result():
                    result.append({"role": "user", "content": text})
                continue

            entry: dict[str, Any] = {"role": "assistant", "content": message.text() or None}
            uses = message.tool_uses()
            if uses:
                entry["tool_calls"] = [
                    {
                        "id": use.id,
                        "type": "function",
                        "function": {
                            "name": use.name,
                            "arguments": json.dumps(use.parameters),
                        },
                    }
                    for use in uses
                ]
            result.append(entry)
        return result

    def _build_body(
        self,
        history: Sequence[Message],
        tools: Sequence[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(history),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        functions = _function_definitions(tools)
        if functions:
            body["tools"] = functions
        return body

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        choice = data["choices"][0]["message"]
        content: list[Content] = []
        if choice.get("content"):
            content.append(Text(text=str(choice["content"])))
        for call in choice.get("tool_calls") or []:
            if call.get("type", "function") != "function":
                continue
            function = call.get("function") or {}
            raw_arguments = function.get("arguments") or "{}"
            try:
                arguments = json.loads(raw_arguments) if isinstance(raw_arguments, str) else raw_arguments
            except json.JSONDecodeError:
                arguments = {"raw": raw_arguments}
            content.append(ToolUse(
                id=str(call.get("id") or f"call_{uuid.uuid4().hex}"),
                name=str(function.get("name", "")),
                parameters=arguments,
            ))

        usage = data.get("usage") or {}
        prompt = int(usage.get("prompt_tokens", 0) or 0)
        completion = int(usage.get("completion_tokens", 0) or 0)
        return LLMResponse(
            message=_assistant_message(content),
            usage=TokenUsage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=int(usage.get("total_tokens", prompt + completion) or 0),
            ),
            model=str(data.get("model", self.model)),
        )


class OllamaProvider(_HTTPProvider):
    """Direct Ollama API provider."""

    chat_path = "/api/chat"

    def _convert_messages(self, history: Sequence[Message]) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        if self.system_prompt:
            result.append({"role": "system", "content": self.system_prompt})

        names = _tool_names_by_id(history)
        for message in history:
            if message.role == Role.USER:
                for item in message.tool_results():
                    entry = {"role": "tool", "content": _result_text(item.output, item.is_error)}
                    if item.tool_use_id in names:
                        entry["tool_name"] = names[item.tool_use_id]
                    result.append(entry)
                text = message.text()
                if text or not message.has_tool_result():
                    result.append({"role": "user", "content": text})
                continue

            entry = {"role": "assistant", "content": message.text()}
            uses = message.tool_uses()
            if uses:
                entry["tool_calls"] = [
                    {"function": {"name": use.name, "arguments": use.parameters}}
                    for use in uses
                ]
            result.append(entry)
        return result

    def _build_body(
        self,
        history: Sequence[Message],
        tools: Sequence[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(history),
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        functions = _function_definitions(tools)
        if functions:
            body["tools"] = functions
        return body

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        message = data.get("message") or {}
        content: list[Content] = []
        if message.get("content"):
            content.append(Text(text=str(message["content"])))
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"raw": arguments}
            content.append(ToolUse(
                id=str(call.get("id") or f"ollama_call_{uuid.uuid4().hex}"),
                name=str(function.get("name", "")),
                parameters=arguments,
            ))

        prompt = int(data.get("prompt_eval_count", 0) or 0)
        completion = int(data.get("eval_count", 0) or 0)
        return LLMResponse(
            message=_assistant_message(content),
            usage=TokenUsage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=prompt + completion,
            ),
            model=str(data.get("model", self.model)),
        )


def create_provider(
    provider: str = "openai",
    model: str = "gpt-4o",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    system_prompt: str = "",
    timeout: float = 120.0,
) -> LLMProvider:
    """Create a model backend.

    Args:
        provider: Provider name (openai, ollama)
        model: Model name
        api_key: Optional API key; openai falls back to OPENAI_API_KEY
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        system_prompt: System prompt prepended to every request
        timeout: HTTP timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    name = (provider or "").strip().lower()
    if name == "openai":
        return OpenAIProvider(
            model=model,
            base_url=base_url or OPENAI_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            system_prompt=system_prompt,
            timeout=timeout,
        )
    if name == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            system_prompt=system_prompt,
            timeout=timeout,
        )
    raise ConfigurationError(f"Provider '{provider}' not supported. Use 'openai' or 'ollama'.")


# Global provider instance
_provider: LLMProvider | None = None


def provider_from_config(cfg: "Config") -> LLMProvider:
    """Create the backend described by a config's model section."""
    return create_provider(
        provider=cfg.model.provider,
        model=cfg.model.model,
        api_key=cfg.model.api_key or None,
        base_url=cfg.model.base_url or None,
        temperature=cfg.model.temperature,
        max_tokens=cfg.model.max_tokens,
        system_prompt=cfg.model.system_prompt,
        timeout=cfg.model.timeout,
    )


def get_provider() -> LLMProvider:
    """Get the global model backend instance."""
    global _provider
    if _provider is None:
        from gander.config import get_config

        _provider = provider_from_config(get_config())
    return _provider


def set_provider(provider: LLMProvider | None) -> None:
    """Set the global model backend instance."""
    global _provider
    _provider = provider
