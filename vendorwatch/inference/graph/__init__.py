from .context import ReasoningBudget, RunContext
from .engine import END, CompiledGraph, StateGraph, WorkflowState, apply_patch

__all__ = [
    "END",
    "CompiledGraph",
    "ReasoningBudget",
    "RunContext",
    "StateGraph",
    "WorkflowState",
    "apply_patch",
]
