import asyncio
import dataclasses
import inspect
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator
from pydantic import BaseModel

from .models import AgentConfig, AgentResult, AgentTask, TaskType
from .queue import TaskQueue
from .. import settings
from ..errors import CapabilityDenied, SchemaRequired, ToolsUnavailable, describe_error
from ..llm_api import Message, ToolCall, Usage

logger = logging.getLogger(__name__)


class Agent:
    """ Executes single LLM-backed tasks under a bounded-concurrency queue. """

    def __init__(self, config: AgentConfig):
        self._config = config
        self._task_queue = TaskQueue(
            config.capabilities.max_concurrent_tasks or settings.AGENT_MAX_CONCURRENT_TASKS
        )
        self._active_streams: Dict[str, asyncio.Event] = {}

    @property
    def id(self) -> str:
        return self._config.id

    def get_config(self) -> AgentConfig:
        return self._config

    def update_config(self, **changes: Any) -> None:
        """
        Replace config fields; resizes the task queue when capabilities change.
        """
        self._config = dataclasses.replace(self._config, **changes)
        if "capabilities" in changes:
            self._task_queue.concurrency = (
                self._config.capabilities.max_concurrent_tasks or settings.AGENT_MAX_CONCURRENT_TASKS
            )

    async def execute(self, task: AgentTask) -> AgentResult:
        """
        Run one task. Never raises: failures come back as success=False.
        """
        start = time.monotonic()
        logger.debug(f"Agent {self.id}: {task.type.value} task {task.id}")
        try:
            output, usage, tool_calls = await self._dispatch(task)
        except Exception as e:
            logger.warning(f"Agent {self.id}: task {task.id} failed: {describe_error(e)}")
            return AgentResult(
                task_id=task.id,
                agent_id=self.id,
                success=False,
                error=describe_error(e),
                duration_ms=_elapsed_ms(start),
                metadata=task.metadata,
            )

        return AgentResult(
            task_id=task.id,
            agent_id=self.id,
            success=True,
            output=output,
            usage=usage,
            tool_calls=tool_calls,
            duration_ms=_elapsed_ms(start),
            metadata=task.metadata,
        )

    async def queue_task(self, task: AgentTask) -> AgentResult:
        """ Same as execute(), admitted through the agent's bounded queue. """
        return await self._task_queue.add(lambda: self.execute(task), priority=task.priority)

    async def stream(self, task: AgentTask) -> AsyncIterator[str]:
        """ Yield text chunks for `task` until completion or abort_stream(task.id). """
        self._check_capabilities(task, TaskType.STREAM)
        async for chunk in self._stream_chunks(task.id, self._build_messages(task), self._tools_for(task)):
            yield chunk

    def abort_stream(self, task_id: str) -> bool:
        """
        Signal an active stream to stop. Returns False if no stream was active.
        """
        abort = self._active_streams.pop(task_id, None)
        if abort is None:
            return False
        abort.set()
        logger.info(f"Agent {self.id}: aborted stream {task_id}")
        return True

    def is_streaming(self, task_id: str) -> bool:
        return task_id in self._active_streams

    async def _dispatch(self, task: AgentTask) -> Tuple[Any, Optional[Usage], List[Dict[str, Any]]]:
        self._check_capabilities(task, task.type)
        messages = self._build_messages(task)
        tools = self._tools_for(task)
        model = self._config.model

        if task.type == TaskType.GENERATE:
            offered = tools if (self._config.capabilities.can_use_tools and tools) else None
            result = await model.generate(
                messages, offered, temperature=self._config.temperature, top_p=self._config.top_p
            )
            tool_calls = await self._run_tool_calls(result.tool_calls, offered or {})
            return result.text, result.usage, tool_calls

        if task.type == TaskType.STREAM:
            chunks = []
            async for chunk in self._stream_chunks(task.id, messages, tools):
                chunks.append(chunk)
                if task.on_chunk is not None:
                    pushed = task.on_chunk(chunk)
                    if inspect.isawaitable(pushed):
                        await pushed
            return "".join(chunks), None, []

        if task.type == TaskType.ANALYZE:
            result = await model.generate_structured(messages, task.schema)
            return _conform(result.value, task.schema), result.usage, []

        # TaskType.EXECUTE
        result = await model.generate(
            messages, tools, tool_choice="required",
            temperature=self._config.temperature, top_p=self._config.top_p,
        )
        tool_calls = await self._run_tool_calls(result.tool_calls, tools)
        return result.text, result.usage, tool_calls

    def _check_capabilities(self, task: AgentTask, task_type: TaskType) -> None:
        caps = self._config.capabilities
        if task_type == TaskType.STREAM and not caps.can_stream_responses:
            raise CapabilityDenied(self.id, task_type.value, "can_stream_responses")
        if task_type == TaskType.ANALYZE:
            if task.schema is None:
                raise SchemaRequired(task.id)
            if not caps.can_generate_structured_data:
                raise CapabilityDenied(self.id, task_type.value, "can_generate_structured_data")
        if task_type == TaskType.EXECUTE:
            if not caps.can_use_tools:
                raise ToolsUnavailable(self.id, "can_use_tools is disabled")
            if not self._tools_for(task):
                raise ToolsUnavailable(self.id, "no tools supplied")

    def _build_messages(self, task: AgentTask) -> List[Message]:
        messages = []
        if self._config.system_prompt:
            messages.append(Message(role="system", content=self._config.system_prompt))
        messages.extend(task.context)
        messages.append(Message(role="user", content=task.prompt))
        return messages

    def _tools_for(self, task: AgentTask) -> Dict[str, Callable]:
        return {**self._config.tools, **task.tools}

    async def _stream_chunks(self, task_id: str, messages: List[Message],
                             tools: Dict[str, Callable]) -> AsyncIterator[str]:
        abort = asyncio.Event()
        self._active_streams[task_id] = abort
        offered = tools if (self._config.capabilities.can_use_tools and tools) else None
        try:
            async for chunk in self._config.model.stream(messages, offered, abort_event=abort):
                if abort.is_set():
                    break
                yield chunk
        finally:
            # abort_stream() may have already dropped the handle
            if self._active_streams.get(task_id) is abort:
                del self._active_streams[task_id]

    async def _run_tool_calls(self, calls: List[ToolCall], tools: Dict[str, Callable]) -> List[Dict[str, Any]]:
        records = []
        for call in calls:
            fn = tools.get(call.name)
            if fn is None:
                raise ToolsUnavailable(self.id, f"model requested unknown tool '{call.name}'")
            value = fn(**call.arguments)
            if inspect.isawaitable(value):
                value = await value
            records.append({"id": call.id, "name": call.name, "arguments": call.arguments, "result": value})
        return records


def _conform(value: Any, schema: Any) -> Any:
    """ Validate structured output against a pydantic model or a JSON schema dict. """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return value if isinstance(value, schema) else schema.model_validate(value)
    if isinstance(schema, dict):
        Draft202012Validator(schema).validate(value)
    return value


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
