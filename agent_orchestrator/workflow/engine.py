"""
Workflow engine: traverses a WorkflowDefinition from its start node.

Each execution owns one WorkflowContext. A node is entered (history,
timeout and cancellation checks), run through its executor under the
node's retry policy, then its successors run concurrently. A node failure
that survives its retries aborts the whole execution, which still returns a
complete WorkflowExecutionResult.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .compiler import validate_definition
from .context import WorkflowContext
from .executors import NodeExecutor, Routing, evaluate
from .factory import default_executors
from .models import (
    NodeType, RetryPolicy, WorkflowDefinition, WorkflowExecutionResult, WorkflowNode, WorkflowState,
)
from ..agents.base import Agent
from ..errors import (
    ExecutionCancelled, InvalidWorkflow, NoStartNode, NodeExecutionFailed, WorkflowNotFound,
    WorkflowTimeout, describe_error,
)

logger = logging.getLogger(__name__)

_NO_RETRY = RetryPolicy()


class WorkflowEngine:
    def __init__(self, agents: Optional[Iterable[Agent]] = None,
                 workflows: Optional[Iterable[WorkflowDefinition]] = None,
                 executors: Optional[Mapping[Union[NodeType, str], NodeExecutor]] = None):
        self._agents: Dict[str, Agent] = {}
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._executions: Dict[str, WorkflowContext] = {}
        self._executors = default_executors(executors)
        for agent in agents or ():
            self.register_agent(agent)
        for definition in workflows or ():
            self.register_workflow(definition)

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def register_workflow(self, definition: WorkflowDefinition) -> None:
        """ Validate and register a definition, replacing any with the same id. """
        validate_definition(definition)
        self._workflows[definition.id] = definition

    def register_agent(self, agent: Agent) -> None:
        self._agents[agent.id] = agent

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(workflow_id)

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    async def execute_workflow(self, workflow_id: str,
                               inputs: Optional[Mapping] = None) -> WorkflowExecutionResult:
        """
        Run a registered workflow to completion, failure or cancellation.

        Raises WorkflowNotFound for unknown ids; every other failure is
        reported through the returned result.
        """
        definition = self._workflows.get(workflow_id)
        if definition is None:
            raise WorkflowNotFound(workflow_id)

        context = WorkflowContext.create(definition, inputs)
        self._executions[context.execution_id] = context
        context.state = WorkflowState.RUNNING
        logger.info(f"Executing workflow '{definition.name}' ({workflow_id}), execution {context.execution_id}")

        try:
            start = _find_start(definition)
            await self._with_deadline(self.run_branch(start.id, context), context)
            context.state = WorkflowState.COMPLETED
        except ExecutionCancelled:
            context.state = WorkflowState.CANCELLED
        except Exception as e:
            context.state = WorkflowState.FAILED
            if all(recorded is not e for recorded in context.errors.values()):
                key = context.current_node or workflow_id
                context.errors.setdefault(workflow_id if key in context.errors else key, e)
            logger.error(f"Workflow '{definition.name}' failed: {describe_error(e)}")
        finally:
            self._executions.pop(context.execution_id, None)

        result = context.to_result()
        logger.info(
            f"Workflow '{definition.name}' {result.state.value} in {result.duration_ms:.0f}ms "
            f"({len(result.nodes_executed)} nodes)"
        )
        return result

    def get_execution_status(self, execution_id: str) -> Optional[WorkflowContext]:
        """ Live context of a running execution, or None once it has finished. """
        return self._executions.get(execution_id)

    def cancel_execution(self, execution_id: str) -> bool:
        """
        Request cooperative cancellation. The execution stops at its next
        node entry or backoff; an in-flight agent call runs to completion.
        """
        context = self._executions.get(execution_id)
        if context is None:
            return False
        context.cancellation.cancel()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def run_branch(self, node_id: str, context: WorkflowContext) -> None:
        """ Run a node and, unless it ends the branch, everything that follows it. """
        node = self.require_node(context, node_id)
        if node.condition is not None and not await evaluate(node.condition, context):
            logger.debug(f"Skipping node '{node.id}': gating condition is false")
            return

        next_ids = await self.run_node(node, context)
        if next_ids:
            await self._execute_next_nodes(next_ids, context)

    async def run_node(self, node: WorkflowNode, context: WorkflowContext) -> List[str]:
        """ Enter and execute a single node; returns the ids to run next. """
        self._enter_node(node, context)
        decision = await self._run_executor_with_retry(node, context)
        context.raise_if_cancelled()
        return await self._determine_next_nodes(node, decision, context)

    def require_node(self, context: WorkflowContext, node_id: str) -> WorkflowNode:
        node = context.definition.get_node(node_id)
        if node is None:
            raise InvalidWorkflow(f"Workflow '{context.workflow_id}' has no node '{node_id}'")
        return node

    def _enter_node(self, node: WorkflowNode, context: WorkflowContext) -> None:
        context.enter(node.id)
        context.check_timeout()
        context.raise_if_cancelled()

    async def _run_executor_with_retry(self, node: WorkflowNode, context: WorkflowContext) -> Routing:
        executor = self._executors[node.type]
        policy = node.retry_policy or _NO_RETRY
        attempt = 0
        while True:
            try:
                decision = await executor.execute(node, context, self)
                # a re-run that succeeds supersedes any earlier failure of this node
                context.errors.pop(node.id, None)
                return decision
            except (WorkflowTimeout, ExecutionCancelled):
                raise
            except Exception as e:
                if attempt < policy.max_retries:
                    delay_ms = policy.delay_ms(attempt)
                    logger.warning(
                        f"Node '{node.id}' attempt {attempt + 1} failed ({describe_error(e)}); "
                        f"retrying in {delay_ms:g}ms"
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    context.raise_if_cancelled()
                    attempt += 1
                    continue

                if isinstance(e, NodeExecutionFailed) and e.node_id == node.id:
                    reason = e.reason
                else:
                    reason = describe_error(e)
                failure = NodeExecutionFailed(node.id, reason, attempts=attempt + 1)
                context.errors[node.id] = failure
                logger.error(str(failure))
                raise failure from e

    async def _determine_next_nodes(self, node: WorkflowNode, decision: Routing,
                                    context: WorkflowContext) -> List[str]:
        if node.type == NodeType.END:
            return []
        if decision is not None:
            return list(decision)
        explicit = node.next_ids()
        if explicit is not None:
            return list(explicit)
        return [
            edge.target
            for edge in context.definition.outgoing_edges(node.id)
            if edge.condition is None or await evaluate(edge.condition, context)
        ]

    async def _execute_next_nodes(self, node_ids: List[str], context: WorkflowContext) -> None:
        # siblings run concurrently; the first failure cancels the rest
        tasks = [asyncio.ensure_future(self.run_branch(node_id, context)) for node_id in node_ids]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _with_deadline(self, coro, context: WorkflowContext) -> None:
        timeout_ms = context.definition.timeout_ms
        if timeout_ms is None:
            await coro
            return
        remaining = max(timeout_ms - context.elapsed_ms(), 0)
        try:
            await asyncio.wait_for(coro, remaining / 1000)
        except asyncio.TimeoutError:
            raise WorkflowTimeout(context.workflow_id, timeout_ms, context.elapsed_ms()) from None


def _find_start(definition: WorkflowDefinition) -> WorkflowNode:
    starts = [node for node in definition.nodes if node.type == NodeType.START]
    if len(starts) != 1:
        raise NoStartNode(definition.id, count=len(starts))
    return starts[0]
