"""
Agent Loader
============

Named registry of ready-built agents. The composition root registers the
agents once at startup; callers look them up by name.

    loader = AgentLoader()
    loader.register("research_agent", agent)
    loader.list_agents()                  # ["research_agent"]
    loader.load_agent("research_agent")   # the Orchestrator
"""

from deepresearch.agent.core import Orchestrator
from deepresearch.utils.logger import Logger

logger = Logger("AgentLoader")


class AgentLoader:
    """Holds a fixed set of agents by name."""

    def __init__(self, agents: dict[str, Orchestrator] | None = None):
        self._agents: dict[str, Orchestrator] = {}
        for name, agent in (agents or {}).items():
            self.register(name, agent)

    def register(self, name: str, agent: Orchestrator) -> None:
        if not name or not name.strip():
            raise ValueError("Agent name cannot be empty")
        if name in self._agents:
            raise ValueError(f"Agent '{name}' is already registered")
        self._agents[name] = agent
        logger.debug(f"Registered agent {name}")

    def list_agents(self) -> list[str]:
        return list(self._agents)

    def load_agent(self, name: str) -> Orchestrator:
        """
        Look up an agent by name.

        Raises:
            ValueError: If name is empty
            KeyError: If no agent has that name
        """
        if name is None or not name.strip():
            raise ValueError("Agent name cannot be empty")

        agent = self._agents.get(name)
        if agent is None:
            raise KeyError(f"Agent not found: {name}")
        return agent
