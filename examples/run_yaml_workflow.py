"""Example: load the triage workflow from YAML and run it."""
import asyncio
from pathlib import Path

from agent_orchestrator.agents.base import Agent
from agent_orchestrator.agents.models import AgentCapabilities, AgentConfig
from agent_orchestrator.llm_api import StubLLMClient, last_user_prompt
from agent_orchestrator.logging_config import setup_logger
from agent_orchestrator.workflow.compiler import load_workflow_file
from agent_orchestrator.workflow.engine import WorkflowEngine


def triage_responder(messages):
    # a stand-in model: "bug" for classification prompts, echo otherwise
    prompt = last_user_prompt(messages)
    return "bug" if prompt.startswith("Answer with one word") else f"Report: {prompt}"


async def main():
    setup_logger()

    definition = load_workflow_file(Path(__file__).with_name("triage.yaml"))
    agent = Agent(AgentConfig(
        id="default",
        name="Triage",
        model=StubLLMClient(responder=triage_responder),
        capabilities=AgentCapabilities(max_concurrent_tasks=2),
    ))
    engine = WorkflowEngine(agents=[agent], workflows=[definition])

    result = await engine.execute_workflow(definition.id)

    print('state:', result.state.value)
    print('path:', result.nodes_executed)
    print('results:', result.results)


if __name__ == '__main__':
    asyncio.run(main())
