"""Tests for loading workflows from YAML."""

import pytest

from agent_orchestrator.agents.models import TaskType
from agent_orchestrator.errors import InvalidWorkflow, NoStartNode
from agent_orchestrator.tools.registry import get_tool, list_tools, register_tool
from agent_orchestrator.workflow.compiler import load_workflow, load_workflow_file
from agent_orchestrator.workflow.models import (
    ConditionNodeConfig, LoopNodeConfig, NodeType, ParallelNodeConfig, TaskNodeConfig, WaitNodeConfig,
)


@register_tool("test.word_count")
def tool_word_count(text: str) -> int:
    """Count words in a text."""
    return len(text.split())


TRIAGE_YAML = """
name: triage
id: triage-v1
description: Classify a ticket and route it
variables:
  priority: 5
timeout_ms: 60000
metadata:
  team: support

nodes:
  - id: start
    type: start
  - id: classify
    type: task
    retry: { max_retries: 2, backoff_ms: 10 }
    config:
      agent_id: classifier
      timeout_ms: 5000
      output_variable: label
      tools: [test.word_count]
      task:
        prompt: "Classify the ticket"
        type: execute
        context:
          - { role: system, content: "Labels: bug, billing" }
  - id: route
    type: condition
    config:
      expression: "priority > 3 && label == 'bug'"
      true_branch: escalate
      false_branch: end
  - id: escalate
    type: wait
    config: { duration_ms: 5 }
  - id: end
    type: end

edges:
  - { from: start, to: classify }
  - { from: classify, to: route }
  - { from: escalate, to: end, condition: "priority >= 5" }
"""


def test_load_workflow_builds_definition():
    """YAML maps onto nodes, edges, configs and retry policies."""
    definition = load_workflow(TRIAGE_YAML)

    assert definition.id == "triage-v1"
    assert definition.timeout_ms == 60000
    assert definition.variables == {"priority": 5}
    assert definition.metadata == {"team": "support"}
    assert [n.type for n in definition.nodes] == [
        NodeType.START, NodeType.TASK, NodeType.CONDITION, NodeType.WAIT, NodeType.END,
    ]

    classify = definition.get_node("classify")
    assert isinstance(classify.config, TaskNodeConfig)
    assert classify.config.agent_id == "classifier"
    assert classify.config.output_variable == "label"
    assert classify.config.tools == {"test.word_count": get_tool("test.word_count")}
    assert classify.config.task.type == TaskType.EXECUTE
    assert classify.config.task.context[0].content == "Labels: bug, billing"
    assert classify.retry_policy.max_retries == 2
    assert classify.retry_policy.backoff_ms == 10
    assert classify.retry_policy.backoff_multiplier == 2.0

    route = definition.get_node("route")
    assert isinstance(route.config, ConditionNodeConfig)
    assert route.config.false_branch == "end"
    assert isinstance(definition.get_node("escalate").config, WaitNodeConfig)
    assert definition.edges[-1].condition == "priority >= 5"


def test_load_parallel_and_loop_configs():
    definition = load_workflow("""
name: fan_out
nodes:
  - { id: start, type: start, next: fan }
  - id: fan
    type: parallel
    next: repeat
    config: { branches: [a, b], wait_for_all: false, max_concurrency: 1 }
  - { id: a, type: task, config: { task: { prompt: "A" } } }
  - { id: b, type: task, config: { task: { prompt: "B" } } }
  - id: repeat
    type: loop
    next: [end]
    config: { condition: "count < 3", body: a }
  - { id: end, type: end }
""")

    fan = definition.get_node("fan")
    assert isinstance(fan.config, ParallelNodeConfig)
    assert fan.config.branches == ("a", "b")
    assert fan.config.wait_for_all is False
    loop = definition.get_node("repeat")
    assert isinstance(loop.config, LoopNodeConfig)
    assert loop.config.max_iterations == 1000
    assert loop.next_ids() == ("end",)
    assert definition.id  # generated when the file gives none


def test_load_workflow_file(tmp_path):
    path = tmp_path / "triage.yaml"
    path.write_text(TRIAGE_YAML, encoding="utf-8")

    assert load_workflow_file(path).name == "triage"


@pytest.mark.parametrize("yaml_text, message", [
    ("- just\n- a list\n", "mapping"),
    ("name: x\nnodes:\n  - { id: s, type: teleport }\n", "YAML validation error"),
    ("name: x\nbogus: 1\nnodes: []\n", "YAML validation error"),
    ("name: x\nnodes:\n  - { id: s, type: start, config: { a: 1 } }\n", "takes no config"),
    ("name: x\nnodes:\n  - { id: s, type: start }\n  - { id: p, type: parallel, config: { branches: [] } }\n",
     "Invalid config"),
    ("name: x\nnodes:\n  - { id: s, type: start }\n"
     "  - { id: t, type: task, config: { task: { prompt: p }, tools: [no.such.tool] } }\n", "Tool not found"),
])
def test_load_workflow_rejects_bad_documents(yaml_text, message):
    with pytest.raises(InvalidWorkflow, match=message):
        load_workflow(yaml_text)


def test_load_workflow_requires_start_node():
    with pytest.raises(NoStartNode):
        load_workflow("name: x\nnodes:\n  - { id: e, type: end }\n")


def test_registered_tools_are_listed():
    assert "test.word_count" in list_tools()
    assert get_tool("test.word_count")(text="three little words") == 3
