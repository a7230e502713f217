import logging
import uuid

from vendorwatch.inference.core.logging import save_step_state
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.graph.engine import CompiledGraph, StateGraph
from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.results import PatchResult
from vendorwatch.workflows.patch import nodes, routes
from vendorwatch.workflows.patch.state import PatchState, PatchStep

logger = logging.getLogger(__name__)


def build_patch_graph() -> CompiledGraph[PatchState, PatchStep]:
    graph = StateGraph("patch", PatchState, PatchStep, entry=PatchStep.LOAD_CODE)
    graph.add_step(PatchStep.LOAD_CODE, nodes.load_code, routes.route_after_load_code)
    graph.add_step(
        PatchStep.GENERATE_FIX, nodes.generate_fix, routes.route_after_generate_fix
    )
    graph.add_step(PatchStep.OPEN_PR, nodes.open_pr, routes.route_after_open_pr)
    return graph.compile()


patch_graph = build_patch_graph()


async def run_patch(
    ctx: RunContext, system_code: str, change_set: ChangeSet
) -> tuple[PatchResult, PatchState]:
    ctx.run_id = ctx.run_id or uuid.uuid4().hex
    state = PatchState(system_code=system_code, change_set=change_set)
    final_state = await patch_graph.run(state, ctx, on_step=save_step_state)

    if final_state.status == "pending":
        logger.error(f"Patch graph ended without a status: {final_state.error_message}")
        final_state = final_state.model_copy(update={"status": "FAILED"})

    result = PatchResult(
        status=final_state.status,
        message=final_state.error_message,
        pr_url=final_state.pr_url,
        pr_number=final_state.pr_number,
        branch_name=final_state.branch_name,
        token_usage=ctx.token_usage,
    )
    return result, final_state
