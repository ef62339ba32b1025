""" Load WorkflowDefinitions from YAML and validate their structure. """

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml

from .guards import compile_condition
from .models import (
    ConditionNodeConfig, Edge, LoopNodeConfig, NodeType, ParallelNodeConfig, RetryPolicy,
    SubworkflowNodeConfig, TaskNodeConfig, WaitNodeConfig, WorkflowDefinition, WorkflowNode,
    CONFIG_TYPES,
)
from .schema import NodeSpec, RetrySpec, TaskSpec, validate_node_config, validate_workflow
from .. import settings
from ..agents.models import AgentTask
from ..errors import InvalidWorkflow, NoStartNode
from ..llm_api import Message
from ..tools.registry import resolve_tools

logger = logging.getLogger(__name__)


def load_workflow(yaml_text: str) -> WorkflowDefinition:
    """
    Load a WorkflowDefinition from a YAML string.
    """
    data = yaml.safe_load(yaml_text)
    if not isinstance(data, dict):
        raise InvalidWorkflow("Workflow YAML must be a mapping at the top level")

    spec = validate_workflow(data)
    optional = {"id": spec.id} if spec.id else {}
    definition = WorkflowDefinition(
        name=spec.name,
        version=spec.version,
        description=spec.description,
        nodes=[_build_node(node) for node in spec.nodes],
        edges=[Edge(source=e.source, target=e.target, condition=e.condition) for e in spec.edges],
        variables=spec.variables,
        timeout_ms=spec.timeout_ms,
        metadata=spec.metadata,
        **optional,
    )
    validate_definition(definition)
    return definition


def load_workflow_file(path: Union[str, Path]) -> WorkflowDefinition:
    return load_workflow(Path(path).read_text(encoding="utf-8"))


def validate_definition(definition: WorkflowDefinition) -> None:
    """
    Structural checks: unique ids, exactly one start node, every reference
    resolves, configs match node types, guard expressions compile.
    """
    seen = set()
    for node in definition.nodes:
        if node.id in seen:
            raise InvalidWorkflow(f"Duplicate node id: {node.id}")
        seen.add(node.id)

    starts = [node for node in definition.nodes if node.type == NodeType.START]
    if len(starts) != 1:
        raise NoStartNode(definition.id, count=len(starts))

    for edge in definition.edges:
        if edge.source not in seen or edge.target not in seen:
            raise InvalidWorkflow(f"Edge references unknown node: {edge.source} -> {edge.target}")
        _check_condition(edge.condition, f"edge {edge.source} -> {edge.target}")

    for node in definition.nodes:
        _check_refs(node, node.next_ids() or (), seen, "next")
        _check_condition(node.condition, f"node '{node.id}'")
        if node.retry_policy is not None and node.retry_policy.max_retries < 0:
            raise InvalidWorkflow(f"Node '{node.id}' has a negative max_retries")
        _check_config(node, seen)

    if _has_cycle(definition):
        logger.warning(
            f"Workflow '{definition.name}' routes in a cycle; "
            f"only its timeout bounds the traversal (prefer loop nodes)"
        )


def _check_config(node: WorkflowNode, node_ids: set) -> None:
    expected = CONFIG_TYPES.get(node.type)
    config = node.config
    if expected is None:
        return
    if config is None:
        if node.type == NodeType.WAIT:
            return
        raise InvalidWorkflow(f"{node.type.value.capitalize()} node '{node.id}' requires configuration")
    if not isinstance(config, expected):
        raise InvalidWorkflow(
            f"Node '{node.id}' of type '{node.type.value}' needs {expected.__name__}, got {type(config).__name__}"
        )

    if isinstance(config, ConditionNodeConfig):
        _check_refs(node, [b for b in (config.true_branch, config.false_branch) if b], node_ids, "branch")
        _check_condition(config.expression, f"condition node '{node.id}'")
    elif isinstance(config, ParallelNodeConfig):
        if not config.branches:
            raise InvalidWorkflow(f"Parallel node '{node.id}' has no branches")
        if config.max_concurrency is not None and config.max_concurrency < 1:
            raise InvalidWorkflow(f"Parallel node '{node.id}' needs max_concurrency >= 1")
        _check_refs(node, config.branches, node_ids, "branch")
    elif isinstance(config, LoopNodeConfig):
        if config.max_iterations < 1:
            raise InvalidWorkflow(f"Loop node '{node.id}' needs max_iterations >= 1")
        if config.body == node.id:
            raise InvalidWorkflow(f"Loop node '{node.id}' cannot be its own body")
        _check_refs(node, [config.body], node_ids, "body")
        _check_condition(config.condition, f"loop node '{node.id}'")
    elif isinstance(config, SubworkflowNodeConfig):
        if not config.workflow_id:
            raise InvalidWorkflow(f"Subworkflow node '{node.id}' requires workflow_id")


def _check_refs(node: WorkflowNode, refs: Iterable[str], node_ids: set, what: str) -> None:
    for ref in refs:
        if ref not in node_ids:
            raise InvalidWorkflow(f"Node '{node.id}' references unknown {what} node: {ref}")


def _check_condition(condition, where: str) -> None:
    if isinstance(condition, str):
        try:
            compile_condition(condition)
        except ValueError as e:
            raise InvalidWorkflow(f"Bad guard on {where}: {e}") from None
    elif condition is not None and not callable(condition):
        raise InvalidWorkflow(f"Guard on {where} must be a string or a callable")


def _has_cycle(definition: WorkflowDefinition) -> bool:
    """
    Cycle check over routing links (Kahn's algorithm).
    """
    adjacency = {node.id: [] for node in definition.nodes}
    for node in definition.nodes:
        targets = list(node.next_ids() or ())
        if isinstance(node.config, ConditionNodeConfig):
            targets += [b for b in (node.config.true_branch, node.config.false_branch) if b]
        adjacency[node.id].extend(targets)
    for edge in definition.edges:
        adjacency[edge.source].append(edge.target)

    indegree = {node_id: 0 for node_id in adjacency}
    for targets in adjacency.values():
        for target in targets:
            indegree[target] += 1

    queue = [node_id for node_id, deg in indegree.items() if deg == 0]
    visited = 0
    while queue:
        current = queue.pop(0)
        visited += 1
        for neighbor in adjacency[current]:
            indegree[neighbor] -= 1
            if indegree[neighbor] == 0:
                queue.append(neighbor)
    return visited != len(adjacency)


def _build_node(spec: NodeSpec) -> WorkflowNode:
    config_spec = validate_node_config(spec)
    node_type = NodeType(spec.type)
    config = None

    if node_type == NodeType.TASK:
        config = TaskNodeConfig(
            task=_build_task(config_spec.task, spec.id),
            agent_id=config_spec.agent_id,
            timeout_ms=config_spec.timeout_ms,
            tools=_resolve(config_spec.tools, spec.id),
            output_variable=config_spec.output_variable,
        )
    elif node_type == NodeType.CONDITION:
        config = ConditionNodeConfig(
            expression=config_spec.expression,
            true_branch=config_spec.true_branch,
            false_branch=config_spec.false_branch,
        )
    elif node_type == NodeType.PARALLEL:
        config = ParallelNodeConfig(
            branches=config_spec.branches,
            wait_for_all=config_spec.wait_for_all,
            max_concurrency=config_spec.max_concurrency,
        )
    elif node_type == NodeType.LOOP:
        config = LoopNodeConfig(
            condition=config_spec.condition,
            body=config_spec.body,
            max_iterations=config_spec.max_iterations or settings.LOOP_MAX_ITERATIONS,
        )
    elif node_type == NodeType.SUBWORKFLOW:
        config = SubworkflowNodeConfig(workflow_id=config_spec.workflow_id, inputs=config_spec.inputs)
    elif node_type == NodeType.WAIT:
        config = WaitNodeConfig(duration_ms=config_spec.duration_ms)

    return WorkflowNode(
        id=spec.id,
        type=node_type,
        name=spec.name,
        description=spec.description,
        config=config,
        next=spec.next,
        condition=spec.condition,
        retry_policy=_build_retry(spec.retry),
    )


def _build_task(spec: TaskSpec, node_id: str) -> AgentTask:
    optional = {"id": spec.id} if spec.id else {}
    return AgentTask(
        prompt=spec.prompt,
        type=spec.type,
        context=[Message(role=m.role, content=m.content) for m in spec.context],
        tools=_resolve(spec.tools, node_id),
        schema=spec.output_schema,
        priority=spec.priority,
        metadata=spec.metadata,
        **optional,
    )


def _build_retry(spec: Optional[RetrySpec]) -> Optional[RetryPolicy]:
    if spec is None:
        return None
    overrides = {
        key: value
        for key, value in spec.model_dump().items()
        if value is not None and key != "max_retries"
    }
    return RetryPolicy(max_retries=spec.max_retries, **overrides)


def _resolve(names, node_id: str):
    try:
        return resolve_tools(names)
    except ValueError as e:
        raise InvalidWorkflow(f"Node '{node_id}': {e}") from None
