"""
llm_api.py: the language-model capability consumed by agents.

Agents talk to a provider only through this narrow interface:

    generate(messages, tools?)             -> text + usage (+ tool calls)
    stream(messages, tools?, abort_event)  -> async sequence of text chunks
    generate_structured(messages, schema)  -> schema-conforming value + usage

The workflow layer never imports a concrete provider. StubLLMClient is a
deterministic implementation for demos and tests.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional


# -------------------------
# RESULT CONTAINERS
# -------------------------

@dataclass
class Message:
    """ One chat turn: role is 'system', 'user', 'assistant' or 'tool' """
    role: str
    content: str


@dataclass
class Usage:
    """ Token accounting reported by the provider """
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ToolCall:
    """ A tool invocation requested by the model """
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class GenerationResult:
    text: str
    usage: Usage = field(default_factory=Usage)
    tool_calls: List[ToolCall] = field(default_factory=list)


@dataclass
class StructuredResult:
    value: Any
    usage: Usage = field(default_factory=Usage)


# --------------------------
# CAPABILITY INTERFACE
# --------------------------

class LLMClient(ABC):
    """
    Provider boundary. Implementations wrap a concrete SDK (OpenAI, Anthropic,
    self-hosted, ...) and must honour `abort_event` while streaming.
    """

    model_name: str = "unknown"

    @abstractmethod
    async def generate(self, messages: List[Message], tools: Optional[Dict[str, Callable]] = None, *,
                       tool_choice: Optional[str] = None, temperature: Optional[float] = None,
                       top_p: Optional[float] = None) -> GenerationResult:
        """ Single blocking completion. tool_choice='required' forces tool use. """

    @abstractmethod
    def stream(self, messages: List[Message], tools: Optional[Dict[str, Callable]] = None,
               abort_event: Optional[asyncio.Event] = None) -> AsyncIterator[str]:
        """ Incremental completion; stops early once abort_event is set. """

    @abstractmethod
    async def generate_structured(self, messages: List[Message], schema: Any) -> StructuredResult:
        """ Completion constrained to `schema` (pydantic model class or JSON schema dict). """


class StubLLMClient(LLMClient):
    """
    A fake/dummy LLM client with deterministic, configurable output.
    This is NOT a real LLM call.

    Args:
        response: fixed reply text; defaults to echoing the last user prompt
        responder: callable(messages) -> str, takes precedence over `response`
        structured: value (or callable(messages, schema)) for generate_structured
        tool_calls: tool calls to request when tools are offered
        delay_ms: artificial latency before every reply
        chunk_delay_ms: pause between streamed chunks
    """

    def __init__(self, model_name: str = "stubbed-llm", response: Optional[str] = None,
                 responder: Optional[Callable[[List[Message]], str]] = None,
                 structured: Any = None, tool_calls: Optional[List[ToolCall]] = None,
                 delay_ms: float = 0, chunk_delay_ms: float = 0):
        self.model_name = model_name
        self.response = response
        self.responder = responder
        self.structured = structured
        self.tool_calls = list(tool_calls or [])
        self.delay_ms = delay_ms
        self.chunk_delay_ms = chunk_delay_ms
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, messages, tools=None, *, tool_choice=None, temperature=None, top_p=None):
        self.calls.append({"kind": "generate", "messages": list(messages), "tools": tools,
                           "tool_choice": tool_choice, "temperature": temperature, "top_p": top_p})
        await self._pause(self.delay_ms)
        text = self._reply(messages)
        tool_calls = list(self.tool_calls) if tools else []
        return GenerationResult(text=text, usage=_usage(messages, text), tool_calls=tool_calls)

    async def stream(self, messages, tools=None, abort_event=None):
        self.calls.append({"kind": "stream", "messages": list(messages), "tools": tools})
        await self._pause(self.delay_ms)
        words = self._reply(messages).split(" ")
        for i, word in enumerate(words):
            if abort_event is not None and abort_event.is_set():
                return
            yield word if i == 0 else " " + word
            await self._pause(self.chunk_delay_ms)

    async def generate_structured(self, messages, schema):
        self.calls.append({"kind": "structured", "messages": list(messages), "schema": schema})
        await self._pause(self.delay_ms)
        if self.structured is None:
            raise ValueError("StubLLMClient has no structured response configured")
        value = self.structured(messages, schema) if callable(self.structured) else self.structured
        return StructuredResult(value=value, usage=_usage(messages, str(value)))

    def _reply(self, messages: List[Message]) -> str:
        if self.responder is not None:
            return self.responder(messages)
        if self.response is not None:
            return self.response
        return f"STUB: {last_user_prompt(messages)}"

    @staticmethod
    async def _pause(ms: float) -> None:
        if ms:
            await asyncio.sleep(ms / 1000)


# -------------------------
# HELPERS
# -------------------------

def last_user_prompt(messages: List[Message]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def _usage(messages: List[Message], text: str) -> Usage:
    # whitespace word counts stand in for tokens
    prompt = sum(len(m.content.split()) for m in messages)
    return Usage(prompt_tokens=prompt, completion_tokens=len(text.split()))
