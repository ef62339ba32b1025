"""Tests for role preset agent construction."""

import pytest

from agent_orchestrator.agents.factory import (
    create_analyst, create_coder, create_orchestrator, create_researcher, make_agent,
)
from agent_orchestrator.agents.models import AgentRole
from agent_orchestrator.agents.orchestrator import OrchestratorAgent
from agent_orchestrator.llm_api import StubLLMClient


def test_researcher_preset():
    agent = create_researcher(StubLLMClient())

    config = agent.get_config()
    assert config.role == AgentRole.RESEARCHER
    assert config.name == "Research Agent"
    assert config.capabilities.max_concurrent_tasks == 3
    assert config.capabilities.can_stream_responses is True
    assert agent.id.startswith("researcher-")


def test_coder_and_analyst_presets_share_concurrency():
    assert create_coder(StubLLMClient()).get_config().capabilities.max_concurrent_tasks == 2
    assert create_analyst(StubLLMClient()).get_config().capabilities.max_concurrent_tasks == 2


def test_orchestrator_preset_is_an_orchestrator_agent():
    agent = create_orchestrator(StubLLMClient(), agent_id="lead")

    assert isinstance(agent, OrchestratorAgent)
    assert agent.id == "lead"
    assert agent.get_config().capabilities.can_delegate_to_agents is True
    assert agent.get_config().capabilities.max_concurrent_tasks == 5


def test_preset_tools_are_copied():
    tools = {"search": lambda query: []}
    agent = make_agent("coder", StubLLMClient(), tools=tools)

    tools["other"] = lambda: None
    assert list(agent.get_config().tools) == ["search"]


def test_roles_without_preset_are_rejected():
    with pytest.raises(ValueError, match="No agent preset"):
        make_agent(AgentRole.CREATIVE, StubLLMClient())
