import logging
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel

from vendorwatch.exceptions import (
    GraphDefinitionException,
    UnknownRouteException,
    UnknownStateFieldException,
)
from vendorwatch.inference.graph.context import RunContext

logger = logging.getLogger(__name__)


class WorkflowState(BaseModel):
    status: str = "pending"
    confidence: float = 0.0
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != "pending"


StateT = TypeVar("StateT", bound=WorkflowState)
StepT = TypeVar("StepT", bound=Enum)

END = "__end__"

StepFunction = Callable[[StateT, RunContext], Awaitable[dict]]
RouteFunction = Callable[[StateT], "StepT | str"]
StepHook = Callable[[str, StateT, RunContext], Awaitable[None]]


def apply_patch(state: StateT, patch: dict, step: str = "<unknown>") -> StateT:
    """Merge ``patch`` into ``state`` field by field; absent fields are untouched."""
    unknown = [key for key in patch if key not in type(state).model_fields]
    if unknown:
        raise UnknownStateFieldException(
            f"Step {step} returned unknown state fields: {unknown}", step, unknown
        )
    return state.model_copy(update=patch)


class StateGraph(Generic[StateT, StepT]):
    def __init__(
        self,
        name: str,
        state_type: type[StateT],
        steps: type[StepT],
        entry: StepT,
    ):
        self.name = name
        self.state_type = state_type
        self.steps = steps
        self.entry = entry
        self._step_functions: dict[StepT, StepFunction] = {}
        self._routes: dict[StepT, RouteFunction] = {}

    def add_step(self, step: StepT, function: StepFunction, route: RouteFunction):
        if not isinstance(step, self.steps):
            raise GraphDefinitionException(
                f"{step} is not a member of {self.steps.__name__}", self.name
            )
        if step in self._step_functions:
            raise GraphDefinitionException(f"{step} registered twice", self.name)
        self._step_functions[step] = function
        self._routes[step] = route
        return self

    def compile(self) -> "CompiledGraph[StateT, StepT]":
        missing = [step.name for step in self.steps if step not in self._step_functions]
        if missing:
            raise GraphDefinitionException(
                f"Graph {self.name} has steps without a function and route: {missing}",
                self.name,
            )
        if not isinstance(self.entry, self.steps):
            raise GraphDefinitionException(
                f"Entry {self.entry} is not a step of {self.name}", self.name
            )
        return CompiledGraph(self)


class CompiledGraph(Generic[StateT, StepT]):
    def __init__(self, graph: StateGraph[StateT, StepT]):
        self.name = graph.name
        self.state_type = graph.state_type
        self.steps = graph.steps
        self.entry = graph.entry
        self._step_functions = dict(graph._step_functions)
        self._routes = dict(graph._routes)

    def _budget_patch(
        self, ctx: RunContext, steps_run: int | None = None
    ) -> dict | None:
        if steps_run is not None and steps_run >= ctx.settings.MAX_WORKFLOW_STEPS:
            reason = f"Step budget of {ctx.settings.MAX_WORKFLOW_STEPS} exhausted"
        elif ctx.budget.overrun:
            reason = f"Reasoning budget of {ctx.budget.max_calls} calls exceeded"
        else:
            return None
        return {"status": "NEEDS_REVIEW", "confidence": 0.0, "error_message": reason}

    async def run(
        self,
        state: StateT,
        ctx: RunContext,
        on_step: StepHook | None = None,
    ) -> StateT:
        if not isinstance(state, self.state_type):
            raise TypeError(
                f"{self.name} expects {self.state_type.__name__}, got {type(state).__name__}"
            )

        current: StepT | str = self.entry
        steps_run = 0
        while current != END and not state.is_terminal:
            budget_patch = self._budget_patch(ctx, steps_run)
            if budget_patch is not None:
                logger.warning(f"{self.name}: {budget_patch['error_message']}")
                state = apply_patch(state, budget_patch, current.name)
                break

            logger.debug(f"{self.name}: running {current.name}")
            patch = await self._step_functions[current](state, ctx)
            state = apply_patch(state, patch or {}, current.name)
            steps_run += 1

            budget_patch = self._budget_patch(ctx)
            if budget_patch is not None:
                logger.warning(f"{self.name}: {budget_patch['error_message']}")
                state = apply_patch(state, budget_patch, current.name)

            if on_step is not None:
                await on_step(current.name, state, ctx)

            if state.is_terminal:
                logger.info(f"{self.name}: {current.name} ended run with {state.status}")
                break

            next_step = self._routes[current](state)
            if next_step != END and not isinstance(next_step, self.steps):
                raise UnknownRouteException(
                    f"Route of {current.name} returned {next_step!r}",
                    current.name,
                    next_step,
                )
            current = next_step

        return state
