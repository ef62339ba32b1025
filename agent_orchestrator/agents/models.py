""" Data models for agents, their tasks and results """

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .. import settings
from ..llm_api import LLMClient, Message, Usage


class AgentRole(str, Enum):
    ORCHESTRATOR = "orchestrator"
    RESEARCHER = "researcher"
    CODER = "coder"
    ANALYST = "analyst"
    CREATIVE = "creative"
    REVIEWER = "reviewer"
    EXECUTOR = "executor"


class TaskType(str, Enum):
    GENERATE = "generate"
    STREAM = "stream"
    ANALYZE = "analyze"
    EXECUTE = "execute"


@dataclass(frozen=True)
class AgentCapabilities:
    can_use_tools: bool = False
    can_delegate_to_agents: bool = False
    can_access_memory: bool = False
    can_stream_responses: bool = False
    can_generate_structured_data: bool = False
    max_concurrent_tasks: int = settings.AGENT_MAX_CONCURRENT_TASKS


@dataclass
class AgentConfig:
    id: str
    name: str
    model: LLMClient
    role: AgentRole = AgentRole.EXECUTOR
    system_prompt: str = ""
    capabilities: AgentCapabilities = field(default_factory=AgentCapabilities)
    tools: Dict[str, Callable] = field(default_factory=dict)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentTask:
    """A unit of work for one agent.

    `schema` is required for analyze tasks and may be a pydantic model class
    or a JSON schema dict. `on_chunk` receives streamed text for stream tasks.
    """
    prompt: str
    type: TaskType = TaskType.GENERATE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    context: List[Message] = field(default_factory=list)
    tools: Dict[str, Callable] = field(default_factory=dict)
    schema: Any = None
    priority: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    on_chunk: Optional[Callable[[str], Any]] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        self.type = TaskType(self.type)


@dataclass
class AgentResult:
    task_id: str
    agent_id: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    usage: Optional[Usage] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
