""" Factory for creating preset agents by role. """
import uuid
from typing import Callable, Dict, Optional

from .base import Agent
from .models import AgentCapabilities, AgentConfig, AgentRole
from .orchestrator import OrchestratorAgent
from ..llm_api import LLMClient


def _capabilities(max_concurrent_tasks: int, delegate: bool = False) -> AgentCapabilities:
    return AgentCapabilities(
        can_use_tools=True,
        can_delegate_to_agents=delegate,
        can_access_memory=True,
        can_stream_responses=True,
        can_generate_structured_data=True,
        max_concurrent_tasks=max_concurrent_tasks,
    )


# role -> (display name, system prompt, capabilities)
_PRESETS = {
    AgentRole.RESEARCHER: (
        "Research Agent",
        """You are a research specialist. Your role is to:
1. Find and analyze information from various sources
2. Verify facts and cross-reference information
3. Provide comprehensive, well-researched answers
4. Cite sources when available
5. Identify gaps in available information""",
        _capabilities(3),
    ),
    AgentRole.CODER: (
        "Coding Agent",
        """You are an expert software developer. Your role is to:
1. Write clean, efficient, and well-documented code
2. Follow established conventions and design patterns
3. Handle errors gracefully
4. Optimize for performance and maintainability
5. Provide clear explanations of your code""",
        _capabilities(2),
    ),
    AgentRole.ANALYST: (
        "Analysis Agent",
        """You are a data analyst. Your role is to:
1. Analyze data and identify patterns
2. Provide insights and recommendations
3. Create structured reports
4. Validate conclusions with evidence""",
        _capabilities(2),
    ),
    AgentRole.ORCHESTRATOR: (
        "Orchestrator Agent",
        """You are an orchestrator agent. Your role is to:
1. Understand complex tasks and break them down
2. Delegate subtasks to appropriate specialized agents
3. Coordinate agent activities and manage dependencies
4. Synthesize results from multiple agents""",
        _capabilities(5, delegate=True),
    ),
}


def make_agent(role: AgentRole, model: LLMClient, tools: Optional[Dict[str, Callable]] = None,
               agent_id: Optional[str] = None) -> Agent:
    role = AgentRole(role)
    if role not in _PRESETS:
        raise ValueError(f"No agent preset for role: {role.value}")

    name, system_prompt, capabilities = _PRESETS[role]
    config = AgentConfig(
        id=agent_id or f"{role.value}-{uuid.uuid4()}",
        name=name,
        role=role,
        model=model,
        system_prompt=system_prompt,
        capabilities=capabilities,
        tools=dict(tools or {}),
    )
    cls = OrchestratorAgent if role == AgentRole.ORCHESTRATOR else Agent
    return cls(config)


def create_researcher(model: LLMClient, tools=None, agent_id=None) -> Agent:
    return make_agent(AgentRole.RESEARCHER, model, tools, agent_id)


def create_coder(model: LLMClient, tools=None, agent_id=None) -> Agent:
    return make_agent(AgentRole.CODER, model, tools, agent_id)


def create_analyst(model: LLMClient, tools=None, agent_id=None) -> Agent:
    return make_agent(AgentRole.ANALYST, model, tools, agent_id)


def create_orchestrator(model: LLMClient, tools=None, agent_id=None) -> OrchestratorAgent:
    return make_agent(AgentRole.ORCHESTRATOR, model, tools, agent_id)
