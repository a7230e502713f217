import asyncio
import logging
import re

from vendorwatch.inference.core.action_executor import ActionExecutor
from vendorwatch.inference.core.error_classifier import classify
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.network_capture import CaptureChannel
from vendorwatch.inference.infra.tool_client import ToolName
from vendorwatch.schema.errors import ConnectionErrorInfo
from vendorwatch.schema.network import CapturedRequest

logger = logging.getLogger(__name__)

PAGE_URL = re.compile(r"Page URL:\s*(\S+)")
NAVIGATION_FAILURE = re.compile(
    r"net::err_|^\s*error\b|\(status 5\d\d\)", re.IGNORECASE | re.MULTILINE
)


def page_url(snapshot: str | None) -> str | None:
    if not snapshot:
        return None
    match = PAGE_URL.search(snapshot)
    return match.group(1) if match else None


def executor_for(ctx: RunContext) -> ActionExecutor:
    return ActionExecutor(ctx.tools, ctx.credential_store)


def navigation_failure(text: str, is_error: bool) -> ConnectionErrorInfo | None:
    """Classified failure of a navigation, or None when it went through.

    The tool may report a failed navigation as a successful call whose text
    describes the browser error page, so the text is inspected too.
    """
    if not is_error and not NAVIGATION_FAILURE.search(text):
        return None
    return classify(text)


def connection_status(info: ConnectionErrorInfo) -> str:
    if info.category == "timeout":
        return "TIMEOUT_ERROR"
    if info.is_connection_error:
        return "CONNECTION_ERROR"
    return "UNKNOWN_ERROR"


async def settle(ctx: RunContext):
    """Give the page time to issue the requests triggered by the last action."""
    delay = ctx.settings.SETTLE_DELAY_SECONDS
    result = await ctx.tools.call_tool(ToolName.WAIT_FOR, {"time": delay})
    if result.is_error:
        await asyncio.sleep(delay)


async def collect_requests(
    capture: CaptureChannel, since: float | None
) -> list[CapturedRequest]:
    """In-page capture first, then network-log entries the capture missed."""
    captured = await capture.drain(since)
    seen = {(request.method, request.url) for request in captured}
    for request in await capture.network_activity(since):
        if (request.method, request.url) not in seen:
            captured.append(request)
    return captured
