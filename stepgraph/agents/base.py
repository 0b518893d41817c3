"""
Base agent class for graph nodes.

An agent is a named, callable node: the executor calls it with a read-only
state snapshot and merges the partial update it returns.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from ..utils.logger import get_logger


logger = get_logger()


class BaseAgent(ABC):
    """
    Abstract base class for node implementations.

    Subclasses implement ``process``; instances are registered directly
    with ``StateGraph.add_node``.
    """

    name: str = "BaseAgent"
    component: str = "Executor"

    @abstractmethod
    async def process(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Process the current state and return a partial update.

        Args:
            state: Read-only snapshot of the graph state

        Returns:
            Mapping of channel name to new value
        """

    async def __call__(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.process(state)

    @property
    def log(self):
        return logger.with_component(self.component)
