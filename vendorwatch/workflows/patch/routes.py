from vendorwatch.inference.graph.engine import END
from vendorwatch.workflows.patch.state import PatchState, PatchStep


def route_after_load_code(state: PatchState) -> PatchStep:
    return PatchStep.GENERATE_FIX


def route_after_generate_fix(state: PatchState) -> PatchStep:
    return PatchStep.OPEN_PR


def route_after_open_pr(state: PatchState) -> str:
    return END
