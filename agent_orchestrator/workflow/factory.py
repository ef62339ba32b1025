""" Factory for node executors, keyed by node type. """
from typing import Dict, Mapping, Optional, Type, Union

from .executors import (
    ConditionExecutor, LoopExecutor, NodeExecutor, ParallelExecutor, PassThroughExecutor,
    SubworkflowExecutor, TaskExecutor, WaitExecutor,
)
from .models import NodeType

_EXECUTOR_MAP: Dict[NodeType, Type[NodeExecutor]] = {
    NodeType.START: PassThroughExecutor,
    NodeType.END: PassThroughExecutor,
    NodeType.TASK: TaskExecutor,
    NodeType.CONDITION: ConditionExecutor,
    NodeType.PARALLEL: ParallelExecutor,
    NodeType.LOOP: LoopExecutor,
    NodeType.WAIT: WaitExecutor,
    NodeType.SUBWORKFLOW: SubworkflowExecutor,
}


def default_executors(
    overrides: Optional[Mapping[Union[NodeType, str], NodeExecutor]] = None,
) -> Dict[NodeType, NodeExecutor]:
    """
    One executor instance per node type, with `overrides` replacing defaults.
    """
    executors = {node_type: cls() for node_type, cls in _EXECUTOR_MAP.items()}
    for node_type, executor in (overrides or {}).items():
        if not isinstance(executor, NodeExecutor):
            raise TypeError(f"Executor for '{node_type}' must be a NodeExecutor, got {type(executor).__name__}")
        executors[NodeType(node_type)] = executor
    return executors
