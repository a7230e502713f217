import logging
import uuid

from vendorwatch.inference.core.logging import save_step_state
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.graph.engine import CompiledGraph, StateGraph
from vendorwatch.schema.results import LoginResult
from vendorwatch.workflows.login import nodes, routes
from vendorwatch.workflows.login.state import LoginState, LoginStep

logger = logging.getLogger(__name__)


def build_login_graph() -> CompiledGraph[LoginState, LoginStep]:
    graph = StateGraph("login", LoginState, LoginStep, entry=LoginStep.LOAD_SPEC)
    graph.add_step(LoginStep.LOAD_SPEC, nodes.load_spec, routes.route_after_load_spec)
    graph.add_step(LoginStep.NAVIGATE, nodes.navigate, routes.route_after_navigate)
    graph.add_step(LoginStep.LOCATE, nodes.locate_form, routes.route_after_locate)
    graph.add_step(LoginStep.FILL, nodes.fill_credentials, routes.route_after_fill)
    graph.add_step(LoginStep.SUBMIT, nodes.submit, routes.route_after_submit)
    graph.add_step(LoginStep.VERIFY, nodes.verify, routes.route_after_verify)
    graph.add_step(
        LoginStep.EXTRACT_SESSION,
        nodes.extract_session,
        routes.route_after_extract_session,
    )
    return graph.compile()


login_graph = build_login_graph()


async def run_login(
    ctx: RunContext, system_code: str, url: str
) -> tuple[LoginResult, LoginState]:
    ctx.run_id = ctx.run_id or uuid.uuid4().hex
    state = LoginState(system_code=system_code, url=url)
    final_state = await login_graph.run(state, ctx, on_step=save_step_state)

    if final_state.status == "pending":
        logger.error(f"Login graph ended without a status: {final_state.error_message}")
        final_state = final_state.model_copy(update={"status": "UNKNOWN_ERROR"})

    result = LoginResult(
        status=final_state.status,
        confidence=final_state.confidence,
        message=final_state.error_message,
        session=final_state.session,
        change_set=final_state.change_set,
        token_usage=ctx.token_usage,
    )
    return result, final_state
