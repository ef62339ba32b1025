"""Error taxonomy shared by agents and the workflow engine."""

from typing import Optional


class OrchestrationError(Exception):
    """Base class for every error raised by agents, executors and the engine."""


class CapabilityDenied(OrchestrationError):
    """Raised when a task type is not allowed by the agent's capabilities."""

    def __init__(self, agent_id: str, task_type: str, capability: str):
        self.agent_id = agent_id
        self.task_type = task_type
        self.capability = capability
        super().__init__(
            f"Agent '{agent_id}' cannot run '{task_type}' tasks ({capability} is disabled)"
        )


class SchemaRequired(OrchestrationError):
    """Raised when an analyze task carries no output schema."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Schema required for analyze task '{task_id}'")


class ToolsUnavailable(OrchestrationError):
    """Raised when an execute task has no usable tools."""

    def __init__(self, agent_id: str, reason: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' cannot execute tools: {reason}")


class AgentNotFound(OrchestrationError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent '{agent_id}' not found")


class WorkflowNotFound(OrchestrationError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class InvalidWorkflow(OrchestrationError, ValueError):
    """Raised when a workflow definition is structurally malformed."""


class NoStartNode(InvalidWorkflow):
    def __init__(self, workflow_id: str, count: int = 0):
        self.workflow_id = workflow_id
        self.count = count
        if count:
            message = f"Workflow '{workflow_id}' has {count} start nodes, expected exactly one"
        else:
            message = f"Workflow '{workflow_id}' has no start node"
        super().__init__(message)


class WorkflowTimeout(OrchestrationError):
    """Raised when an execution runs past its timeout_ms."""

    def __init__(self, workflow_id: str, timeout_ms: float, elapsed_ms: Optional[float] = None):
        self.workflow_id = workflow_id
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        detail = f" after {elapsed_ms:.0f}ms" if elapsed_ms is not None else ""
        super().__init__(
            f"Workflow '{workflow_id}' exceeded its {timeout_ms:g}ms timeout{detail}"
        )


class ExecutionCancelled(OrchestrationError):
    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' was cancelled")


class NodeExecutionFailed(OrchestrationError):
    """Raised when a node fails for good, after its retries are exhausted."""

    def __init__(self, node_id: str, reason: str, attempts: int = 1):
        self.node_id = node_id
        self.reason = reason
        self.attempts = attempts
        suffix = f" after {attempts} attempts" if attempts > 1 else ""
        super().__init__(f"Node '{node_id}' failed{suffix}: {reason}")


class DecompositionFailed(OrchestrationError):
    """Raised when the orchestrator cannot plan subtasks for a goal."""

    def __init__(self, goal: str, reason: str):
        self.goal = goal
        self.reason = reason
        super().__init__(f"Failed to decompose task: {reason}")


def describe_error(error: BaseException) -> str:
    """Render an error as 'ErrorName: message' for results and logs."""
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name
