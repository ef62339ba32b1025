"""Shared fixtures: agents backed by StubLLMClient."""

import asyncio

import pytest

from agent_orchestrator.agents.base import Agent
from agent_orchestrator.agents.models import AgentCapabilities, AgentConfig, AgentResult, AgentTask
from agent_orchestrator.llm_api import StubLLMClient


ALL_CAPABILITIES = AgentCapabilities(
    can_use_tools=True,
    can_stream_responses=True,
    can_generate_structured_data=True,
    max_concurrent_tasks=1,
)


def make_stub_agent(agent_id: str = "default", capabilities: AgentCapabilities = ALL_CAPABILITIES,
                    **stub_kwargs) -> Agent:
    """Build an Agent over a StubLLMClient configured with `stub_kwargs`."""
    model = StubLLMClient(**stub_kwargs)
    return Agent(AgentConfig(id=agent_id, name=agent_id, model=model, capabilities=capabilities))


class ScriptedAgent(Agent):
    """
    Agent whose execute() follows a script of outcomes: an Exception instance
    fails that call, anything else is returned as output. The last entry repeats.
    """

    def __init__(self, agent_id: str, outcomes, delay_ms: float = 0):
        super().__init__(AgentConfig(id=agent_id, name=agent_id, model=StubLLMClient()))
        self.outcomes = list(outcomes)
        self.delay_ms = delay_ms
        self.calls = 0

    async def execute(self, task: AgentTask) -> AgentResult:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000)
        if isinstance(outcome, Exception):
            return AgentResult(task_id=task.id, agent_id=self.id, success=False,
                               error=f"{type(outcome).__name__}: {outcome}")
        return AgentResult(task_id=task.id, agent_id=self.id, success=True, output=outcome)


@pytest.fixture
def stub_agent():
    """Agent 'default' that echoes prompts as 'STUB: <prompt>'."""
    return make_stub_agent()


@pytest.fixture
def agent_factory():
    return make_stub_agent
