""" Data models for workflow representation """

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .. import settings
from ..agents.models import AgentTask


class NodeType(str, Enum):
    START = "start"
    END = "end"
    TASK = "task"
    CONDITION = "condition"
    PARALLEL = "parallel"
    LOOP = "loop"
    WAIT = "wait"
    SUBWORKFLOW = "subworkflow"


class WorkflowState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"  # defined but never entered, see DESIGN.md
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# A predicate receives the WorkflowContext; a string is a guard expression.
Predicate = Callable[[Any], Union[bool, Awaitable[bool]]]
Condition = Union[str, Predicate]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 0
    backoff_ms: float = settings.RETRY_BACKOFF_MS
    backoff_multiplier: float = settings.RETRY_BACKOFF_MULTIPLIER
    max_backoff_ms: float = settings.RETRY_MAX_BACKOFF_MS

    def delay_ms(self, attempt: int) -> float:
        """ Backoff before retrying after failed attempt number `attempt` (0-based). """
        return min(self.backoff_ms * self.backoff_multiplier ** attempt, self.max_backoff_ms)


@dataclass(frozen=True)
class TaskNodeConfig:
    task: AgentTask
    agent_id: Optional[str] = None
    timeout_ms: Optional[float] = None
    tools: Mapping[str, Callable] = field(default_factory=dict)
    output_variable: Optional[str] = None


@dataclass(frozen=True)
class ConditionNodeConfig:
    expression: Condition
    true_branch: str
    false_branch: Optional[str] = None


@dataclass(frozen=True)
class ParallelNodeConfig:
    branches: Tuple[str, ...]
    wait_for_all: bool = True
    max_concurrency: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "branches", tuple(self.branches))


@dataclass(frozen=True)
class LoopNodeConfig:
    condition: Condition
    body: str
    max_iterations: int = settings.LOOP_MAX_ITERATIONS


@dataclass(frozen=True)
class SubworkflowNodeConfig:
    workflow_id: str
    inputs: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class WaitNodeConfig:
    duration_ms: float = 0


NodeConfig = Union[
    TaskNodeConfig, ConditionNodeConfig, ParallelNodeConfig,
    LoopNodeConfig, SubworkflowNodeConfig, WaitNodeConfig,
]

CONFIG_TYPES = {
    NodeType.TASK: TaskNodeConfig,
    NodeType.CONDITION: ConditionNodeConfig,
    NodeType.PARALLEL: ParallelNodeConfig,
    NodeType.LOOP: LoopNodeConfig,
    NodeType.SUBWORKFLOW: SubworkflowNodeConfig,
    NodeType.WAIT: WaitNodeConfig,
}


@dataclass(frozen=True)
class WorkflowNode:
    id: str
    type: NodeType
    name: str = ""
    description: str = ""
    config: Optional[NodeConfig] = None
    next: Union[None, str, Sequence[str]] = None
    condition: Optional[Condition] = None
    retry_policy: Optional[RetryPolicy] = None

    def __post_init__(self):
        object.__setattr__(self, "type", NodeType(self.type))
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if self.next is not None and not isinstance(self.next, str):
            object.__setattr__(self, "next", tuple(self.next))

    def next_ids(self) -> Optional[Tuple[str, ...]]:
        """ Explicit successors, or None when the node follows its edges. """
        if self.next is None:
            return None
        if isinstance(self.next, str):
            return (self.next,)
        return tuple(self.next)


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    condition: Optional[Condition] = None


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    version: str = "1.0.0"
    description: str = ""
    nodes: Tuple[WorkflowNode, ...] = ()
    edges: Tuple[Edge, ...] = ()
    variables: Mapping[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    _node_index: Dict[str, WorkflowNode] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))
        # first declaration wins; duplicates are rejected by validation
        index: Dict[str, WorkflowNode] = {}
        for node in self.nodes:
            index.setdefault(node.id, node)
        object.__setattr__(self, "_node_index", index)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return self._node_index.get(node_id)

    def outgoing_edges(self, node_id: str) -> Tuple[Edge, ...]:
        return tuple(edge for edge in self.edges if edge.source == node_id)


@dataclass
class WorkflowExecutionResult:
    execution_id: str
    workflow_id: str
    state: WorkflowState
    results: Dict[str, Any]
    duration_ms: float
    nodes_executed: List[str]
    errors: Optional[Dict[str, str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state == WorkflowState.COMPLETED
