"""
Orchestrator agent that decomposes goals, delegates subtasks, and threads results.

The orchestrator follows this cycle:
1. Receive a high-level goal and the agents allowed to work on it
2. Decompose the goal into subtasks, each assigned to one agent
3. Delegate each subtask through the distribution queue
4. In sequential mode, hand each result to the next subtask as context
"""

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import Agent
from .models import AgentConfig, AgentResult, AgentRole, AgentTask, TaskType
from .queue import TaskQueue
from .. import settings
from ..errors import AgentNotFound, DecompositionFailed
from ..llm_api import Message

logger = logging.getLogger(__name__)


class PlannedSubtask(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(alias="agentId")
    description: str
    dependencies: Optional[List[str]] = None
    priority: Optional[int] = None


class Decomposition(BaseModel):
    """Fixed schema the orchestrator asks its model to fill when planning."""
    subtasks: List[PlannedSubtask] = Field(default_factory=list)


@dataclass
class Subtask:
    agent_id: str
    task: AgentTask


DECOMPOSITION_PROMPT = """Decompose this task into subtasks for the following agents: {agents}
Task: {goal}

For each subtask, specify:
1. Which agent should handle it
2. What the subtask is
3. Any dependencies on other subtasks"""


class OrchestratorAgent(Agent):
    """
    Agent that holds a registry of other agents and coordinates multi-agent plans.
    """

    def __init__(self, config: AgentConfig,
                 distribution_concurrency: int = settings.ORCHESTRATOR_DISTRIBUTION_CONCURRENCY):
        capabilities = dataclasses.replace(config.capabilities, can_delegate_to_agents=True)
        super().__init__(dataclasses.replace(config, role=AgentRole.ORCHESTRATOR, capabilities=capabilities))
        self._agents: Dict[str, Agent] = {}
        self._task_distributor = TaskQueue(distribution_concurrency)

    def register_agent(self, agent: Agent) -> None:
        self._agents[agent.id] = agent

    def get_agents(self) -> Mapping[str, Agent]:
        return MappingProxyType(self._agents)

    async def delegate_task(self, agent_id: str, task: AgentTask) -> AgentResult:
        """ Route a task to a registered agent through the distribution queue. """
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return await self._task_distributor.add(lambda: agent.execute(task))

    async def coordinate_task(self, goal: str, agent_ids: List[str], parallel: bool = False) -> List[AgentResult]:
        """
        Plan `goal` across `agent_ids` and run the resulting subtasks.

        Sequential mode appends each subtask's output to the next subtask's
        context as an assistant message before it runs. Parallel mode gives
        no ordering guarantee between subtasks.
        """
        subtasks = await self.decompose_task(goal, agent_ids)
        logger.info(
            f"Orchestrator {self.id}: {len(subtasks)} subtasks for goal "
            f"({'parallel' if parallel else 'sequential'})"
        )

        if parallel:
            results = await asyncio.gather(*(self.delegate_task(s.agent_id, s.task) for s in subtasks))
            return list(results)

        results: List[AgentResult] = []
        for i, subtask in enumerate(subtasks):
            result = await self.delegate_task(subtask.agent_id, subtask.task)
            results.append(result)
            if i + 1 < len(subtasks):
                following = subtasks[i + 1].task
                following.context = [
                    *following.context,
                    Message(role="assistant", content=json.dumps(result.output, default=str)),
                ]
        return results

    async def decompose_task(self, goal: str, agent_ids: List[str]) -> List[Subtask]:
        """ Ask the orchestrator's own model for a plan and turn it into agent tasks. """
        decomposition = await self.execute(AgentTask(
            type=TaskType.ANALYZE,
            prompt=DECOMPOSITION_PROMPT.format(agents=", ".join(agent_ids), goal=goal),
            schema=Decomposition,
        ))
        if not decomposition.success:
            raise DecompositionFailed(goal, decomposition.error or "analyze step failed")

        plan: Decomposition = decomposition.output
        if plan is None or not plan.subtasks:
            raise DecompositionFailed(goal, "no subtasks were produced")

        return [
            Subtask(
                agent_id=planned.agent_id,
                task=AgentTask(
                    type=TaskType.GENERATE,
                    prompt=planned.description,
                    priority=planned.priority,
                    metadata={"goal": goal, "dependencies": list(planned.dependencies or [])},
                ),
            )
            for planned in plan.subtasks
        ]
