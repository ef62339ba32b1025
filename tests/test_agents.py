"""Tests for Agent task dispatch, capabilities, queueing and streaming."""

import asyncio
import time

import pytest
from pydantic import BaseModel

from agent_orchestrator.agents.base import Agent
from agent_orchestrator.agents.models import AgentCapabilities, AgentConfig, AgentTask, TaskType
from agent_orchestrator.llm_api import Message, StubLLMClient, ToolCall

from conftest import ALL_CAPABILITIES, make_stub_agent


class Sentiment(BaseModel):
    label: str
    score: float


@pytest.mark.asyncio
async def test_generate_returns_text_and_usage(stub_agent):
    """A generate task returns the model's text with token usage."""
    result = await stub_agent.execute(AgentTask(prompt="Summarise the report"))

    assert result.success is True
    assert result.output == "STUB: Summarise the report"
    assert result.agent_id == "default"
    assert result.usage.completion_tokens == 4
    assert result.error is None


@pytest.mark.asyncio
async def test_messages_include_system_prompt_and_context():
    """System prompt, then task context, then the user prompt."""
    model = StubLLMClient()
    agent = Agent(AgentConfig(id="a", name="a", model=model, system_prompt="Be terse."))
    task = AgentTask(prompt="Next?", context=[Message("assistant", "Earlier answer")])

    await agent.execute(task)

    messages = model.calls[0]["messages"]
    assert [m.role for m in messages] == ["system", "assistant", "user"]
    assert messages[0].content == "Be terse."
    assert messages[-1].content == "Next?"


@pytest.mark.asyncio
async def test_generate_passes_sampling_settings():
    model = StubLLMClient()
    agent = Agent(AgentConfig(id="a", name="a", model=model, temperature=0.2, top_p=0.9))

    await agent.execute(AgentTask(prompt="hi"))

    assert model.calls[0]["temperature"] == 0.2
    assert model.calls[0]["top_p"] == 0.9


@pytest.mark.asyncio
async def test_analyze_requires_schema(stub_agent):
    """Analyze without a schema fails with SchemaRequired."""
    result = await stub_agent.execute(AgentTask(prompt="Rate it", type="analyze"))

    assert result.success is False
    assert result.error.startswith("SchemaRequired:")


@pytest.mark.asyncio
async def test_analyze_validates_pydantic_schema():
    """Structured output is validated into the pydantic model."""
    agent = make_stub_agent(structured={"label": "positive", "score": 0.93})

    result = await agent.execute(AgentTask(prompt="Rate it", type=TaskType.ANALYZE, schema=Sentiment))

    assert result.success is True
    assert result.output == Sentiment(label="positive", score=0.93)


@pytest.mark.asyncio
async def test_analyze_with_invalid_structured_output_fails():
    agent = make_stub_agent(structured={"label": "positive"})

    result = await agent.execute(AgentTask(prompt="Rate it", type="analyze", schema=Sentiment))

    assert result.success is False
    assert result.error.startswith("ValidationError")


@pytest.mark.asyncio
async def test_analyze_checks_json_schema_dict():
    """A JSON schema dict (the YAML form) is enforced on structured output."""
    schema = {"type": "object", "required": ["label"], "properties": {"label": {"type": "string"}}}
    conforming = make_stub_agent(structured={"label": "bug"})
    stray = make_stub_agent(structured={"unexpected": 1})

    ok = await conforming.execute(AgentTask(prompt="Classify", type="analyze", schema=schema))
    bad = await stray.execute(AgentTask(prompt="Classify", type="analyze", schema=schema))

    assert ok.success is True
    assert ok.output == {"label": "bug"}
    assert bad.success is False
    assert bad.error.startswith("ValidationError")
    assert "'label' is a required property" in bad.error


@pytest.mark.asyncio
async def test_capabilities_gate_task_types_before_model_call():
    """Disabled capabilities fail the task without calling the model."""
    agent = make_stub_agent(capabilities=AgentCapabilities(), structured={"label": "x", "score": 1})

    streamed = await agent.execute(AgentTask(prompt="hi", type="stream"))
    analyzed = await agent.execute(AgentTask(prompt="hi", type="analyze", schema=Sentiment))

    assert streamed.error.startswith("CapabilityDenied:")
    assert analyzed.error.startswith("CapabilityDenied:")
    assert agent.get_config().model.calls == []


@pytest.mark.asyncio
async def test_execute_requires_tools(stub_agent):
    """Execute tasks need tools and the can_use_tools capability."""
    no_tools = await stub_agent.execute(AgentTask(prompt="do it", type="execute"))
    disabled = make_stub_agent(capabilities=AgentCapabilities())
    no_capability = await disabled.execute(
        AgentTask(prompt="do it", type="execute", tools={"noop": lambda: None})
    )

    assert no_tools.error.startswith("ToolsUnavailable:")
    assert no_capability.error.startswith("ToolsUnavailable:")


@pytest.mark.asyncio
async def test_execute_forces_and_runs_tool_calls():
    """Execute forces tool use and records each tool call with its result."""
    def add(a, b):
        return a + b

    async def shout(text):
        return text.upper()

    agent = make_stub_agent(
        tool_calls=[ToolCall("add", {"a": 2, "b": 3}, id="c1"), ToolCall("shout", {"text": "hi"}, id="c2")],
    )
    result = await agent.execute(AgentTask(prompt="compute", type="execute", tools={"add": add, "shout": shout}))

    model = agent.get_config().model
    assert result.success is True
    assert model.calls[0]["tool_choice"] == "required"
    assert [(c["id"], c["result"]) for c in result.tool_calls] == [("c1", 5), ("c2", "HI")]


@pytest.mark.asyncio
async def test_task_tools_override_config_tools():
    """Tools on the task win over same-named tools on the agent config."""
    model = StubLLMClient(tool_calls=[ToolCall("lookup", {"key": "k"})])
    agent = Agent(AgentConfig(
        id="a", name="a", model=model, capabilities=ALL_CAPABILITIES,
        tools={"lookup": lambda key: "config"},
    ))

    result = await agent.execute(AgentTask(prompt="find", type="execute", tools={"lookup": lambda key: "task"}))

    assert result.tool_calls[0]["result"] == "task"


@pytest.mark.asyncio
async def test_unknown_tool_request_fails_task():
    agent = make_stub_agent(tool_calls=[ToolCall("missing")])

    result = await agent.execute(AgentTask(prompt="go", type="execute", tools={"other": lambda: None}))

    assert result.success is False
    assert "missing" in result.error


@pytest.mark.asyncio
async def test_stream_task_pushes_chunks_to_callback():
    """Stream tasks push every chunk to on_chunk and return the joined text."""
    agent = make_stub_agent(response="one two three")
    chunks = []

    result = await agent.execute(AgentTask(prompt="go", type="stream", on_chunk=chunks.append))

    assert chunks == ["one", " two", " three"]
    assert result.output == "one two three"
    assert not agent.is_streaming(result.task_id)


@pytest.mark.asyncio
async def test_stream_iterator_and_abort():
    """abort_stream stops an active stream; a second abort is a no-op."""
    agent = make_stub_agent(response="a b c d e f", chunk_delay_ms=5)
    task = AgentTask(prompt="go", type="stream")
    received = []

    async for chunk in agent.stream(task):
        received.append(chunk)
        if len(received) == 2:
            assert agent.is_streaming(task.id)
            assert agent.abort_stream(task.id) is True

    assert received == ["a", " b"]
    assert agent.abort_stream(task.id) is False
    assert not agent.is_streaming(task.id)


@pytest.mark.asyncio
async def test_failed_task_echoes_metadata_and_never_raises():
    agent = make_stub_agent()  # no structured response configured
    task = AgentTask(prompt="x", type="analyze", schema=Sentiment, metadata={"trace": "t-1"})

    result = await agent.execute(task)

    assert result.success is False
    assert result.task_id == task.id
    assert result.metadata == {"trace": "t-1"}
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_queue_task_with_single_slot_never_overlaps():
    """max_concurrent_tasks=1: three queued tasks run strictly one at a time."""
    agent = make_stub_agent(delay_ms=30)
    spans = []
    original = agent.execute

    async def timed(task):
        start = time.monotonic()
        result = await original(task)
        spans.append((start, time.monotonic()))
        return result

    agent.execute = timed
    results = await asyncio.gather(*(agent.queue_task(AgentTask(prompt=f"t{i}")) for i in range(3)))

    assert all(r.success for r in results)
    spans.sort()
    for (_, first_end), (second_start, _) in zip(spans, spans[1:]):
        assert second_start >= first_end


@pytest.mark.asyncio
async def test_update_config_resizes_queue(stub_agent):
    stub_agent.update_config(
        capabilities=AgentCapabilities(max_concurrent_tasks=4), system_prompt="New prompt"
    )

    assert stub_agent.get_config().system_prompt == "New prompt"
    assert stub_agent._task_queue.concurrency == 4
