"""
Agent Registry - name to agent lookup.

Agents are registered once at startup (see leadflow.runtime.build_runtime).
The registry itself performs no access control; call sites that accept an
agent name from outside run ensure_agent_allowed() first so the
conversational agent family can't be invoked ad hoc.
"""

import logging
import re
from typing import Optional

from leadflow import config
from leadflow.agents.base import BaseAgent
from leadflow.exceptions import ForbiddenError, ValidationError

logger = logging.getLogger("leadflow.agents.registry")


class AgentRegistry:
    """Maps agent names to agent instances."""

    def __init__(self):
        self._agents = {}

    def register(self, agent: BaseAgent, name: str = None) -> BaseAgent:
        name = name or agent.name
        if not callable(getattr(agent, "process", None)) or \
                not callable(getattr(agent, "get_metadata", None)):
            raise ValidationError(f"Agent {name} must implement process() and get_metadata()")
        if name in self._agents:
            logger.warning("Replacing registered agent %s", name)
        self._agents[name] = agent
        return agent

    def unregister(self, name: str) -> bool:
        return self._agents.pop(name, None) is not None

    def get(self, name: str) -> Optional[BaseAgent]:
        return self._agents.get(name)

    def has(self, name: str) -> bool:
        return name in self._agents

    def list(self) -> list:
        return sorted(self._agents)

    def get_all_metadata(self) -> list:
        """Metadata for every agent; an agent whose metadata call fails is reported, not dropped."""
        out = []
        for name in self.list():
            try:
                out.append({"name": name, "metadata": self._agents[name].get_metadata()})
            except Exception as e:
                logger.error("Error getting metadata for %s: %s", name, e)
                out.append({"name": name, "status": "error", "error": str(e)})
        return out


def is_excluded_agent(name: str, pattern: str = None) -> bool:
    """True when `name` belongs to the conversational agent family."""
    pattern = config.EXCLUDED_AGENT_PATTERN if pattern is None else pattern
    if not pattern or not name:
        return False
    return re.search(pattern, name, re.IGNORECASE) is not None


def ensure_agent_allowed(name: str, pattern: str = None):
    """Raise ForbiddenError for names in the conversational agent family."""
    if is_excluded_agent(name, pattern):
        raise ForbiddenError(f"Agent '{name}' cannot be invoked through this endpoint")
