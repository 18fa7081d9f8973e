"""Agent runtime package - state composition and plugin dispatch."""

from agent_recall.runtime.agent import AgentRuntime, EvaluatorNames
from agent_recall.runtime.composer import CompositionPolicy, StateComposer, collect_attachments
from agent_recall.runtime.formatting import add_header, compose_context
from agent_recall.runtime.registry import (
    Action,
    ActionExample,
    ActionRegistry,
    EvaluationExample,
    Evaluator,
    EvaluatorRegistry,
    Provider,
    normalize_name,
)

__all__ = [
    "Action",
    "ActionExample",
    "ActionRegistry",
    "AgentRuntime",
    "CompositionPolicy",
    "EvaluationExample",
    "Evaluator",
    "EvaluatorNames",
    "EvaluatorRegistry",
    "Provider",
    "StateComposer",
    "add_header",
    "collect_attachments",
    "compose_context",
    "normalize_name",
]
