import logging
import uuid

from vendorwatch.inference.core.logging import save_step_state
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.graph.engine import CompiledGraph, StateGraph
from vendorwatch.schema.results import SearchResult
from vendorwatch.schema.session import SessionInfo
from vendorwatch.workflows.search import nodes, routes
from vendorwatch.workflows.search.state import SearchState, SearchStep

logger = logging.getLogger(__name__)


def build_search_graph() -> CompiledGraph[SearchState, SearchStep]:
    graph = StateGraph("search", SearchState, SearchStep, entry=SearchStep.LOAD_SPEC)
    graph.add_step(SearchStep.LOAD_SPEC, nodes.load_spec, routes.route_after_load_spec)
    graph.add_step(SearchStep.LOCATE, nodes.locate_form, routes.route_after_locate)
    graph.add_step(
        SearchStep.EXECUTE_DOM, nodes.execute_dom, routes.route_after_execute_dom
    )
    graph.add_step(
        SearchStep.EXECUTE_API, nodes.execute_api, routes.route_after_execute_api
    )
    graph.add_step(
        SearchStep.CAPTURE_RESULTS,
        nodes.capture_results,
        routes.route_after_capture_results,
    )
    graph.add_step(
        SearchStep.COMPARE_SPEC, nodes.compare_spec, routes.route_after_compare_spec
    )
    return graph.compile()


search_graph = build_search_graph()


async def run_search(
    ctx: RunContext,
    system_code: str,
    url: str,
    query: str,
    session: SessionInfo | None = None,
    path_params: dict[str, str] | None = None,
) -> tuple[SearchResult, SearchState]:
    ctx.run_id = ctx.run_id or uuid.uuid4().hex
    state = SearchState(
        system_code=system_code,
        url=url,
        query=query,
        session=session,
        path_params=path_params or {},
    )
    final_state = await search_graph.run(state, ctx, on_step=save_step_state)

    if final_state.status == "pending":
        logger.error(
            f"Search graph ended without a status: {final_state.error_message}"
        )
        final_state = final_state.model_copy(update={"status": "UNKNOWN_ERROR"})

    result = SearchResult(
        status=final_state.status,
        confidence=final_state.confidence,
        message=final_state.error_message,
        data=final_state.result_data,
        change_set=final_state.change_set,
        token_usage=ctx.token_usage,
    )
    return result, final_state
