from vendorwatch.inference.graph.engine import END
from vendorwatch.workflows.search.state import SearchState, SearchStep


def route_after_load_spec(state: SearchState) -> SearchStep:
    return SearchStep.LOCATE


def route_after_locate(state: SearchState) -> SearchStep:
    if state.search_method == "api":
        return SearchStep.EXECUTE_API
    return SearchStep.EXECUTE_DOM


def route_after_execute_dom(state: SearchState) -> SearchStep:
    return SearchStep.CAPTURE_RESULTS


def route_after_execute_api(state: SearchState) -> SearchStep | str:
    if state.outcome is None:
        return END
    return SearchStep.COMPARE_SPEC


def route_after_capture_results(state: SearchState) -> SearchStep:
    return SearchStep.COMPARE_SPEC


def route_after_compare_spec(state: SearchState) -> str:
    return END
