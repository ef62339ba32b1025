""" Fluent construction of WorkflowDefinitions in code. """
import uuid
from typing import Any, Dict, List, Mapping, Optional, Union

from .compiler import validate_definition
from .models import Condition, Edge, NodeType, WorkflowDefinition, WorkflowNode


class WorkflowBuilder:
    """
    Collects nodes and edges, then builds a validated, immutable definition.

        definition = (
            WorkflowBuilder("triage")
            .add_node(WorkflowNode(id="start", type="start"))
            .add_node("classify", "task", config=TaskNodeConfig(task=AgentTask("...")))
            .add_node(WorkflowNode(id="end", type="end"))
            .add_edge("start", "classify")
            .add_edge("classify", "end")
            .set_timeout(30_000)
            .build()
        )
    """

    def __init__(self, name: str, description: str = "", workflow_id: Optional[str] = None,
                 version: str = "1.0.0"):
        self._name = name
        self._description = description
        self._id = workflow_id or str(uuid.uuid4())
        self._version = version
        self._nodes: List[WorkflowNode] = []
        self._edges: List[Edge] = []
        self._variables: Dict[str, Any] = {}
        self._metadata: Dict[str, Any] = {}
        self._timeout_ms: Optional[float] = None

    def add_node(self, node: Union[WorkflowNode, str], node_type: Union[NodeType, str, None] = None,
                 **fields: Any) -> "WorkflowBuilder":
        if isinstance(node, str):
            if node_type is None:
                raise ValueError(f"Node '{node}' needs a type")
            node = WorkflowNode(id=node, type=node_type, **fields)
        self._nodes.append(node)
        return self

    def add_edge(self, source: str, target: str, condition: Optional[Condition] = None) -> "WorkflowBuilder":
        self._edges.append(Edge(source=source, target=target, condition=condition))
        return self

    def set_variables(self, variables: Mapping[str, Any]) -> "WorkflowBuilder":
        self._variables = dict(variables)
        return self

    def set_timeout(self, timeout_ms: float) -> "WorkflowBuilder":
        if timeout_ms <= 0:
            raise ValueError("Workflow timeout must be positive")
        self._timeout_ms = timeout_ms
        return self

    def set_metadata(self, metadata: Mapping[str, Any]) -> "WorkflowBuilder":
        self._metadata = dict(metadata)
        return self

    def build(self) -> WorkflowDefinition:
        definition = WorkflowDefinition(
            name=self._name,
            id=self._id,
            version=self._version,
            description=self._description,
            nodes=self._nodes,
            edges=self._edges,
            variables=dict(self._variables),
            timeout_ms=self._timeout_ms,
            metadata=dict(self._metadata),
        )
        validate_definition(definition)
        return definition
