import json
import logging
from typing import Any

from pydantic import ValidationError

from vendorwatch.inference.agents.result_analyzer.result_analyzer import (
    ResultAnalyzerAgent,
)
from vendorwatch.inference.agents.runner import run_agent
from vendorwatch.inference.core.diff_engine import PLACEHOLDER, diff, relevant_requests
from vendorwatch.inference.core.error_classifier import classify
from vendorwatch.inference.core.locator.chain import locate
from vendorwatch.inference.core.locator.snapshot import parse_snapshot
from vendorwatch.inference.core.locator.strategies import LocateRequest
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.network_capture import CaptureChannel, redact_body
from vendorwatch.inference.infra.tool_client import ToolName
from vendorwatch.schema.actions import ApiCall
from vendorwatch.schema.changes import DiffConfig, ObservedContract
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.utils.utils import loads_tool_json
from vendorwatch.workflows.search.state import SearchState
from vendorwatch.workflows.utils import (
    collect_requests,
    executor_for,
    navigation_failure,
    connection_status,
    page_url,
    settle,
)

logger = logging.getLogger(__name__)

ROW_CONTAINER_KEYS = ("data", "list", "items", "result", "results", "rows", "content")
ENVELOPE_KEYS = {"success", "code", "message", "msg", "status", "result", "error"}

READ_ROWS_JS = """() => Array.from(document.querySelectorAll(%s))
  .map(row => (row.innerText || '').trim())
  .filter(text => text.length > 0)"""


def api_rows(data: Any) -> list[dict]:
    """Result rows of an API response body, empty when nothing was found."""
    if isinstance(data, list):
        return [row if isinstance(row, dict) else {"value": row} for row in data]
    if not isinstance(data, dict):
        return []
    for key in ROW_CONTAINER_KEYS:
        value = data.get(key)
        if isinstance(value, (list, dict)) and value:
            return api_rows(value)
    payload_keys = set(data) - ENVELOPE_KEYS
    if payload_keys and all(not isinstance(data[key], (list, dict)) for key in data):
        return [data]
    return []


async def load_spec(state: SearchState, ctx: RunContext) -> dict:
    try:
        spec = await ctx.spec_store.get(ctx.vendor_id)
    except (OSError, ValidationError) as e:
        logger.error(f"Could not read spec for {ctx.vendor_id}: {e}")
        return {"status": "UNKNOWN_ERROR", "error_message": f"Spec unreadable: {e}"}

    snapshot = await ctx.tools.snapshot()
    current_url = page_url(snapshot)
    if current_url is None or current_url == "about:blank":
        result = await ctx.tools.call_tool(ToolName.NAVIGATE, {"url": state.url})
        failure = navigation_failure(result.text, result.is_error)
        if failure is not None:
            return {
                "status": connection_status(failure),
                "connection_error": failure,
                "error_message": failure.summary,
            }
        snapshot = await ctx.tools.snapshot()

    await CaptureChannel(ctx.tools).install()
    return {"spec": spec, "snapshot": snapshot}


async def locate_form(state: SearchState, ctx: RunContext) -> dict:
    request = LocateRequest(kind="search", spec=state.spec, snapshot=state.snapshot)
    result = await locate(request, ctx)
    if result.outcome != "found":
        return {
            "status": "FORM_CHANGED",
            "confidence": 0.0,
            "error_message": result.reason,
        }
    return {
        "form_elements": result.refs,
        "locate_source": result.source,
        "search_method": result.method,
        "observed_selectors": result.observed_selectors,
    }


def _execution_failure(state: SearchState, message: str) -> dict:
    if state.locate_source == "spec_fallback":
        return {
            "status": "FORM_CHANGED",
            "error_message": f"Search with the stored spec failed: {message}",
        }
    return {"status": "UNKNOWN_ERROR", "error_message": message}


async def execute_dom(state: SearchState, ctx: RunContext) -> dict:
    executor = executor_for(ctx)
    capture = CaptureChannel(ctx.tools)
    await capture.install()
    since = await capture.mark()

    filled = await executor.fill(
        "search_input", state.form_elements["search_input"], state.query
    )
    if not filled.success:
        return _execution_failure(state, filled.message)

    clicked = await executor.click(
        state.form_elements["search_button"], "search_button", submit=True
    )
    if not clicked.success:
        return _execution_failure(state, clicked.message)

    await settle(ctx)
    await executor.dismiss_dialog()
    return {
        "capture_since": since,
        "captured_requests": await collect_requests(capture, since),
        "snapshot": await ctx.tools.snapshot(),
    }


def _api_call(state: SearchState) -> ApiCall:
    api = state.spec.api

    def fill_placeholder(match):
        return state.path_params.get(match.group(1), match.group(0))

    url = PLACEHOLDER.sub(fill_placeholder, api.endpoint)
    fields = {}
    for field_name, source in (api.request_fields or {"query": "query"}).items():
        fields[field_name] = state.path_params.get(source, state.query)

    headers = {}
    if state.session is not None and state.session.access_token:
        headers["Authorization"] = f"Bearer {state.session.access_token}"

    if api.method == "GET":
        return ApiCall(url=url, method=api.method, params=fields, headers=headers)
    return ApiCall(
        url=url,
        method=api.method,
        body=fields,
        headers=headers,
        content_type=api.content_type,
    )


async def execute_api(state: SearchState, ctx: RunContext) -> dict:
    if state.spec is None or state.spec.api is None:
        return {
            "outcome": "API_CHANGED",
            "outcome_message": "No API contract stored",
        }

    request = _api_call(state)
    if PLACEHOLDER.search(request.url):
        return {
            "status": "UNKNOWN_ERROR",
            "error_message": f"Missing path parameters for {request.url}",
        }

    capture = CaptureChannel(ctx.tools)
    since = await capture.mark()
    result = await executor_for(ctx).call_api(request)
    await settle(ctx)

    captured = await collect_requests(capture, since)
    if not captured:
        captured = [
            CapturedRequest(
                url=request.url,
                method=request.method,
                request_body=redact_body(request.body),
                response_status=result.response_status or 0,
                response_body=result.response_body,
                timestamp=since or 0,
                source="api_call",
            )
        ]

    status = result.response_status or 0
    patch = {
        "capture_since": since,
        "captured_requests": captured,
        "api_response_status": status,
    }

    if status in (401, 403):
        return patch | {
            "status": "SESSION_EXPIRED",
            "error_message": f"API authentication failed: HTTP {status}",
        }
    if 400 <= status < 500:
        return patch | {
            "outcome": "API_CHANGED",
            "outcome_message": f"API call rejected: HTTP {status}",
        }
    if status == 0 or status >= 500:
        info = classify(result.message if status == 0 else f"HTTP {status}")
        return patch | {
            "status": "TIMEOUT_ERROR" if info.category == "timeout" else "CONNECTION_ERROR",
            "connection_error": info,
            "error_message": info.summary,
        }

    rows = api_rows(result.response_body)
    if rows:
        return patch | {
            "outcome": "SUCCESS",
            "outcome_confidence": 0.95,
            "result_data": rows,
        }
    return patch | {"outcome": "NOT_FOUND", "outcome_confidence": 0.9}


async def capture_results(state: SearchState, ctx: RunContext) -> dict:
    snapshot = state.snapshot or ""
    current_url = page_url(snapshot) or ""
    if "login" in current_url.lower() and any(
        element.is_password for element in parse_snapshot(snapshot)
    ):
        return {
            "status": "SESSION_EXPIRED",
            "error_message": f"Redirected to login page {current_url}",
        }

    spec = state.spec
    indicators = spec.success_indicators if spec is not None else None
    if indicators is not None and indicators.no_result_text:
        if indicators.no_result_text in snapshot:
            return {
                "outcome": "NOT_FOUND",
                "outcome_confidence": 0.9,
                "outcome_message": indicators.no_result_text,
            }

    if spec is not None and spec.form is not None and spec.form.result_row_selector:
        result = await ctx.tools.evaluate(
            READ_ROWS_JS % json.dumps(spec.form.result_row_selector)
        )
        rows = loads_tool_json(result.text)
        if not result.is_error and isinstance(rows, list) and rows:
            return {
                "outcome": "SUCCESS",
                "outcome_confidence": 0.85,
                "result_data": [{"text": row} for row in rows],
            }

    if ctx.llm is not None:
        response = await run_agent(
            ctx, ResultAnalyzerAgent(ctx.llm).analyze_results, state.query, snapshot
        )
        if response is not None:
            if response.found:
                return {
                    "outcome": "SUCCESS",
                    "outcome_confidence": response.confidence,
                    "result_data": response.rows,
                }
            return {
                "outcome": "NOT_FOUND",
                "outcome_confidence": response.confidence,
                "outcome_message": response.no_result_message,
            }

    # Fall back on what the page fetched for the search.
    for request in reversed(relevant_requests(state.captured_requests, DiffConfig())):
        if 200 <= request.response_status < 300:
            rows = api_rows(request.response_body)
            if rows:
                return {
                    "outcome": "SUCCESS",
                    "outcome_confidence": 0.6,
                    "result_data": rows,
                }

    return {
        "outcome": "NEEDS_REVIEW",
        "outcome_confidence": 0.0,
        "outcome_message": "Search result could not be determined",
    }


async def compare_spec(state: SearchState, ctx: RunContext) -> dict:
    change_set = diff(
        state.spec,
        ObservedContract(
            selectors=state.observed_selectors,
            requests=state.captured_requests,
        ),
    )
    if change_set.has_changes:
        logger.info(
            f"{state.system_code} drift ({change_set.change_type}, "
            f"breaking={change_set.breaking}): {change_set.changes}"
        )

    return {
        "status": state.outcome or "NEEDS_REVIEW",
        "confidence": state.outcome_confidence,
        "error_message": state.outcome_message,
        "change_set": change_set,
    }
