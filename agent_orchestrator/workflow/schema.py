from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidWorkflow


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class RetrySpec(_Spec):
    max_retries: int = Field(0, ge=0)
    backoff_ms: Optional[float] = Field(None, ge=0)
    backoff_multiplier: Optional[float] = Field(None, ge=1)
    max_backoff_ms: Optional[float] = Field(None, ge=0)


class MessageSpec(_Spec):
    role: Literal["system", "user", "assistant", "tool"]
    content: str


class TaskSpec(_Spec):
    prompt: str
    type: Literal["generate", "stream", "analyze", "execute"] = "generate"
    id: Optional[str] = None
    context: List[MessageSpec] = Field(default_factory=list)
    tools: List[str] = Field(default_factory=list)
    # JSON schema for analyze tasks; "schema" clashes with a BaseModel attribute
    output_schema: Optional[Dict[str, Any]] = Field(None, alias="schema")
    priority: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TaskConfigSpec(_Spec):
    task: TaskSpec
    agent_id: Optional[str] = None
    timeout_ms: Optional[float] = Field(None, gt=0)
    tools: List[str] = Field(default_factory=list)
    output_variable: Optional[str] = None


class ConditionConfigSpec(_Spec):
    expression: str
    true_branch: str
    false_branch: Optional[str] = None


class ParallelConfigSpec(_Spec):
    branches: List[str] = Field(min_length=1)
    wait_for_all: bool = True
    max_concurrency: Optional[int] = Field(None, ge=1)


class LoopConfigSpec(_Spec):
    condition: str
    body: str
    max_iterations: Optional[int] = Field(None, ge=1)


class SubworkflowConfigSpec(_Spec):
    workflow_id: str
    inputs: Optional[Dict[str, Any]] = None


class WaitConfigSpec(_Spec):
    duration_ms: float = Field(0, ge=0)


CONFIG_SPECS: Dict[str, Type[_Spec]] = {
    "task": TaskConfigSpec,
    "condition": ConditionConfigSpec,
    "parallel": ParallelConfigSpec,
    "loop": LoopConfigSpec,
    "subworkflow": SubworkflowConfigSpec,
    "wait": WaitConfigSpec,
}


class NodeSpec(_Spec):
    id: str
    type: Literal["start", "end", "task", "condition", "parallel", "loop", "wait", "subworkflow"]
    name: str = ""
    description: str = ""
    next: Union[str, List[str], None] = None
    condition: Optional[str] = None
    retry: Optional[RetrySpec] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class EdgeSpec(_Spec):
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    condition: Optional[str] = None


class WorkflowSpec(_Spec):
    name: str
    id: Optional[str] = None
    version: str = "1.0.0"
    description: str = ""

    nodes: List[NodeSpec] = Field(default_factory=list)
    edges: List[EdgeSpec] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: Optional[float] = Field(None, gt=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


def validate_workflow(raw: Dict[str, Any]) -> WorkflowSpec:
    """Validate a raw YAML dict against WorkflowSpec."""
    try:
        return WorkflowSpec.model_validate(raw)
    except ValidationError as e:
        raise InvalidWorkflow(f"YAML validation error: {e}") from None


def validate_node_config(node: NodeSpec) -> Optional[_Spec]:
    """Validate a node's config block against the spec for its type."""
    spec_cls = CONFIG_SPECS.get(node.type)
    if spec_cls is None:
        if node.config:
            raise InvalidWorkflow(f"Node '{node.id}' of type '{node.type}' takes no config")
        return None
    try:
        return spec_cls.model_validate(node.config)
    except ValidationError as e:
        raise InvalidWorkflow(f"Invalid config for node '{node.id}': {e}") from None
