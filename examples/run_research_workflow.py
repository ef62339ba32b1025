"""Example: build a research workflow in code and run it with stub agents.

A researcher gathers notes, two reviewers check them in parallel, and a
condition decides whether the coder drafts a script. Swap StubLLMClient for
a real LLMClient implementation to talk to a provider.
"""
import asyncio

from agent_orchestrator.agents.factory import create_coder, create_researcher
from agent_orchestrator.agents.models import AgentTask
from agent_orchestrator.llm_api import StubLLMClient
from agent_orchestrator.logging_config import setup_logger
from agent_orchestrator.workflow.builder import WorkflowBuilder
from agent_orchestrator.workflow.engine import WorkflowEngine
from agent_orchestrator.workflow.models import (
    ConditionNodeConfig, ParallelNodeConfig, RetryPolicy, TaskNodeConfig, WorkflowNode,
)


def build_workflow():
    return (
        WorkflowBuilder("research-and-draft", description="Research a topic, review it, maybe write code")
        .add_node(WorkflowNode(id="start", type="start"))
        .add_node("research", "task", retry_policy=RetryPolicy(max_retries=2, backoff_ms=100), config=TaskNodeConfig(
            task=AgentTask(prompt="Collect recent findings on battery recycling"),
            agent_id="researcher",
            output_variable="notes",
        ))
        .add_node("review", "parallel", config=ParallelNodeConfig(branches=["check_facts", "check_tone"]))
        .add_node("check_facts", "task", config=TaskNodeConfig(
            task=AgentTask(prompt="List any unsupported claims"), agent_id="researcher",
        ))
        .add_node("check_tone", "task", config=TaskNodeConfig(
            task=AgentTask(prompt="Flag jargon"), agent_id="researcher",
        ))
        .add_node("needs_code", "condition", config=ConditionNodeConfig(
            lambda context: "recycling" in context.variables.get("notes", ""),
            true_branch="draft_script",
            false_branch="end",
        ))
        .add_node("draft_script", "task", next="end", config=TaskNodeConfig(
            task=AgentTask(prompt="Write a script that tabulates the findings"), agent_id="coder",
        ))
        .add_node(WorkflowNode(id="end", type="end"))
        .add_edge("start", "research")
        .add_edge("research", "review")
        .add_edge("review", "needs_code")
        .set_timeout(10_000)
        .build()
    )


async def main():
    setup_logger()

    researcher = create_researcher(StubLLMClient(delay_ms=50), agent_id="researcher")
    coder = create_coder(StubLLMClient(response="print('findings')"), agent_id="coder")
    definition = build_workflow()
    engine = WorkflowEngine(agents=[researcher, coder], workflows=[definition])

    result = await engine.execute_workflow(definition.id)

    print('\n--- RUN RESULT ---')
    print('state:', result.state.value)
    print('nodes:', ' -> '.join(result.nodes_executed))
    for node_id, output in result.results.items():
        print(f'  {node_id}: {output}')
    if result.errors:
        print('errors:', result.errors)


if __name__ == '__main__':
    asyncio.run(main())
