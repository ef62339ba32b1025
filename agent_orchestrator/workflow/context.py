""" Execution context threaded through one workflow traversal. """
import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .models import WorkflowDefinition, WorkflowExecutionResult, WorkflowState
from ..errors import ExecutionCancelled, WorkflowTimeout, describe_error


class CancellationToken:
    """ Cooperative cancellation flag checked at suspension points. """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass
class WorkflowContext:
    workflow_id: str
    execution_id: str
    definition: WorkflowDefinition = field(repr=False)
    variables: Dict[str, Any] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, BaseException] = field(default_factory=dict)
    current_node: Optional[str] = None
    history: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic)
    metadata: Dict[str, Any] = field(default_factory=dict)
    state: WorkflowState = WorkflowState.PENDING
    cancellation: CancellationToken = field(default_factory=CancellationToken, repr=False)

    @classmethod
    def create(cls, definition: WorkflowDefinition, inputs: Optional[Mapping[str, Any]] = None) -> "WorkflowContext":
        """ Fresh context: definition defaults overlaid with caller inputs. """
        variables = copy.deepcopy(dict(definition.variables))
        variables.update(inputs or {})
        return cls(
            workflow_id=definition.id,
            execution_id=str(uuid.uuid4()),
            definition=definition,
            variables=variables,
            metadata=dict(definition.metadata),
        )

    def enter(self, node_id: str) -> None:
        self.current_node = node_id
        self.history.append(node_id)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def check_timeout(self) -> None:
        timeout_ms = self.definition.timeout_ms
        if timeout_ms is not None:
            elapsed = self.elapsed_ms()
            if elapsed > timeout_ms:
                raise WorkflowTimeout(self.workflow_id, timeout_ms, elapsed)

    def raise_if_cancelled(self) -> None:
        if self.cancellation.cancelled:
            raise ExecutionCancelled(self.execution_id)

    def namespace(self) -> Dict[str, Any]:
        """ Names visible to guard expressions: variables plus `results`. """
        return {"results": dict(self.results), **self.variables}

    def to_result(self) -> WorkflowExecutionResult:
        errors = None
        if self.state == WorkflowState.FAILED:
            errors = {node_id: describe_error(error) for node_id, error in self.errors.items()}
        return WorkflowExecutionResult(
            execution_id=self.execution_id,
            workflow_id=self.workflow_id,
            state=self.state,
            results=dict(self.results),
            errors=errors,
            duration_ms=self.elapsed_ms(),
            nodes_executed=list(self.history),
            metadata=dict(self.metadata),
        )
