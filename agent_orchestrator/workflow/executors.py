""" Node executors: one per node type, shared by every execution of an engine. """

import asyncio
import dataclasses
import inspect
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .context import WorkflowContext
from .guards import compile_condition
from .models import (
    Condition, ConditionNodeConfig, LoopNodeConfig, ParallelNodeConfig,
    SubworkflowNodeConfig, TaskNodeConfig, WaitNodeConfig, WorkflowNode,
)
from .. import settings
from ..agents.queue import TaskQueue
from ..errors import (
    AgentNotFound, ExecutionCancelled, InvalidWorkflow, NodeExecutionFailed, WorkflowTimeout,
    describe_error,
)

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)

# Routing decision: None follows next/edges, a list (possibly empty) overrides them.
Routing = Optional[List[str]]


async def evaluate(condition: Condition, context: WorkflowContext) -> bool:
    """
    Evaluate a guard: a predicate over the context (sync or async), or a
    guard expression over the context's variables and results.
    """
    if isinstance(condition, str):
        return compile_condition(condition)(context.namespace())
    value = condition(context)
    if inspect.isawaitable(value):
        value = await value
    return bool(value)


class NodeExecutor(ABC):
    """ Runs one node against an execution context. """

    @abstractmethod
    async def execute(self, node: WorkflowNode, context: WorkflowContext, engine: "WorkflowEngine") -> Routing:
        """
        Do the node's work, storing its output in context.results.
        Raise on failure; the engine owns retries.
        """


def _config(node: WorkflowNode, expected: type) -> Any:
    if not isinstance(node.config, expected):
        raise InvalidWorkflow(f"{node.type.value.capitalize()} node '{node.id}' requires configuration")
    return node.config


class PassThroughExecutor(NodeExecutor):
    """ start and end nodes: structural only. """

    async def execute(self, node, context, engine) -> Routing:
        return None


class WaitExecutor(NodeExecutor):
    async def execute(self, node, context, engine) -> Routing:
        config = node.config if isinstance(node.config, WaitNodeConfig) else WaitNodeConfig()
        if config.duration_ms > 0:
            await asyncio.sleep(config.duration_ms / 1000)
            context.raise_if_cancelled()
        return None


class TaskExecutor(NodeExecutor):
    """ Hands the node's task to a registered agent. """

    async def execute(self, node, context, engine) -> Routing:
        config: TaskNodeConfig = _config(node, TaskNodeConfig)
        agent_id = config.agent_id or settings.AGENT_DEFAULT_ID
        agent = engine.get_agent(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)

        task = config.task
        if config.tools:
            task = dataclasses.replace(task, tools={**task.tools, **config.tools})

        if config.timeout_ms:
            try:
                result = await asyncio.wait_for(agent.execute(task), config.timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    f"Agent '{agent_id}' did not finish within {config.timeout_ms:g}ms"
                ) from None
        else:
            result = await agent.execute(task)

        if not result.success:
            raise NodeExecutionFailed(node.id, result.error or "Task execution failed")

        context.results[node.id] = result.output
        if config.output_variable:
            context.variables[config.output_variable] = result.output
        return None


class ConditionExecutor(NodeExecutor):
    async def execute(self, node, context, engine) -> Routing:
        config: ConditionNodeConfig = _config(node, ConditionNodeConfig)
        outcome = await evaluate(config.expression, context)
        context.results[node.id] = outcome

        branch = config.true_branch if outcome else config.false_branch
        logger.debug(f"Condition '{node.id}' is {outcome}, routing to {branch or 'nothing'}")
        return [branch] if branch else []


class ParallelExecutor(NodeExecutor):
    """
    Runs every branch sub-graph (the branch node and whatever follows it)
    under a bounded queue.

    With wait_for_all any failed branch fails the node. Otherwise the node
    records one entry per branch, in branch order:

        {"branch_id": "a", "status": "fulfilled", "result": ...}
        {"branch_id": "b", "status": "rejected", "error": "ErrorName: message"}
    """

    async def execute(self, node, context, engine) -> Routing:
        config: ParallelNodeConfig = _config(node, ParallelNodeConfig)
        queue = TaskQueue(config.max_concurrency or len(config.branches))

        async def run(branch_id: str) -> Any:
            await queue.add(lambda: engine.run_branch(branch_id, context))
            return context.results.get(branch_id)

        outcomes = await asyncio.gather(*(run(b) for b in config.branches), return_exceptions=True)

        for outcome in outcomes:
            # execution-wide aborts are never folded into branch results
            if isinstance(outcome, (WorkflowTimeout, ExecutionCancelled, asyncio.CancelledError)):
                raise outcome

        entries: List[Dict[str, Any]] = []
        failed = 0
        for branch_id, outcome in zip(config.branches, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                entries.append({"branch_id": branch_id, "status": "rejected", "error": describe_error(outcome)})
            else:
                entries.append({"branch_id": branch_id, "status": "fulfilled", "result": outcome})

        if failed and config.wait_for_all:
            raise NodeExecutionFailed(node.id, f"{failed} of {len(config.branches)} parallel branches failed")

        context.results[node.id] = entries
        return None


class LoopExecutor(NodeExecutor):
    """ Re-runs the body node while the condition holds, up to max_iterations. """

    async def execute(self, node, context, engine) -> Routing:
        config: LoopNodeConfig = _config(node, LoopNodeConfig)
        body = engine.require_node(context, config.body)

        iterations: List[Any] = []
        while await evaluate(config.condition, context):
            if len(iterations) >= config.max_iterations:
                logger.warning(f"Loop '{node.id}' stopped at its cap of {config.max_iterations} iterations")
                break
            await engine.run_node(body, context)
            iterations.append(context.results.get(body.id))

        context.results[node.id] = iterations
        return None


class SubworkflowExecutor(NodeExecutor):
    """
    Runs another registered workflow and stores its WorkflowExecutionResult.
    A failed child does not fail the parent node.
    """

    async def execute(self, node, context, engine) -> Routing:
        config: SubworkflowNodeConfig = _config(node, SubworkflowNodeConfig)
        if not config.workflow_id:
            raise InvalidWorkflow(f"Subworkflow node '{node.id}' requires workflow_id")

        inputs = config.inputs if config.inputs is not None else context.variables
        result = await engine.execute_workflow(config.workflow_id, dict(inputs))
        if not result.succeeded:
            logger.info(f"Subworkflow '{config.workflow_id}' ended {result.state.value} under node '{node.id}'")
        context.results[node.id] = result
        return None
