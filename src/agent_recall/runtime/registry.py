"""
Action / Evaluator / Provider Registry

Plugins contribute actions (things the agent can do in reply),
evaluators (post-turn analysis) and providers (extra prompt context).
Actions and evaluators are looked up by an exact normalized key; each
one's similes are registered as aliases of that key.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger("agent_recall.runtime")

HandlerCallback = Callable[..., Awaitable[Any]]

_NORMALIZE_PATTERN = re.compile(r"[\s_\-]+")


def normalize_name(name: str) -> str:
    """Lowercase and drop underscores, hyphens and whitespace."""
    return _NORMALIZE_PATTERN.sub("", name or "").lower()


class ActionExample(BaseModel):
    user: str
    content: Dict[str, Any] = Field(default_factory=dict)


class EvaluationExample(BaseModel):
    context: str
    messages: List[ActionExample] = Field(default_factory=list)
    outcome: str


class Action(ABC):
    """Something the agent can do in response to a message."""

    name: str = ""
    description: str = ""
    similes: List[str] = []
    examples: List[List[ActionExample]] = []

    @abstractmethod
    async def validate(self, runtime, message, state) -> bool:
        pass

    @abstractmethod
    async def handler(
        self,
        runtime,
        message,
        state=None,
        options: Optional[dict] = None,
        callback: Optional[HandlerCallback] = None,
    ) -> Any:
        pass


class Evaluator(ABC):
    """Post-turn analysis, run when the model selects it."""

    name: str = ""
    description: str = ""
    similes: List[str] = []
    examples: List[EvaluationExample] = []
    # Run even when the agent did not respond
    always_run: bool = False

    @abstractmethod
    async def validate(self, runtime, message, state) -> bool:
        pass

    @abstractmethod
    async def handler(
        self,
        runtime,
        message,
        state=None,
        options: Optional[dict] = None,
        callback: Optional[HandlerCallback] = None,
    ) -> Any:
        pass


class Provider(ABC):
    """Source of additional prompt context."""

    @abstractmethod
    async def get(self, runtime, message, state=None) -> str:
        pass


T = TypeVar("T", Action, Evaluator)


class _NamedRegistry(Generic[T]):
    kind = "item"

    def __init__(self):
        self._items: Dict[str, T] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, item: T) -> None:
        key = normalize_name(item.name)
        if not key:
            raise ValueError(f"Cannot register {self.kind} without a name")
        if key in self._items:
            logger.warning(f"{self.kind.capitalize()} {item.name} is already registered, replacing it")
        self._items[key] = item

        for simile in item.similes:
            alias = normalize_name(simile)
            if not alias or alias == key:
                continue
            owner = self._aliases.get(alias)
            if owner is not None and owner != key:
                logger.warning(
                    f"Alias '{simile}' of {self.kind} {item.name} already points to {owner}, ignoring"
                )
                continue
            self._aliases[alias] = key
        logger.info(f"Registered {self.kind}: {item.name}")

    def get(self, name: str) -> Optional[T]:
        """Exact lookup by normalized name, then by alias."""
        key = normalize_name(name)
        if key in self._items:
            return self._items[key]
        target = self._aliases.get(key)
        if target is not None:
            return self._items.get(target)
        return None

    def all(self) -> List[T]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())


class ActionRegistry(_NamedRegistry[Action]):
    kind = "action"


class EvaluatorRegistry(_NamedRegistry[Evaluator]):
    kind = "evaluator"
