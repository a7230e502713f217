from enum import Enum, unique

from vendorwatch.schema.tool import ToolResult


@unique
class ToolName(str, Enum):
    NAVIGATE = "browser_navigate"
    SNAPSHOT = "browser_snapshot"
    CLICK = "browser_click"
    TYPE = "browser_type"
    EVALUATE = "browser_evaluate"
    TAKE_SCREENSHOT = "browser_take_screenshot"
    NETWORK_REQUESTS = "browser_network_requests"
    HANDLE_DIALOG = "browser_handle_dialog"
    WAIT_FOR = "browser_wait_for"


class ToolClient:
    """Request/response interface to the browser automation tool.

    Failures of the tool itself are reported as ``ToolResult.is_error`` with
    the failure text as content; implementations only raise for programming
    errors such as an unknown tool name.
    """

    async def call_tool(self, name: ToolName | str, arguments: dict) -> ToolResult:
        raise NotImplementedError("This method should be implemented by subclasses.")

    async def snapshot(self) -> str:
        result = await self.call_tool(ToolName.SNAPSHOT, {})
        return result.text

    async def evaluate(self, function: str) -> ToolResult:
        return await self.call_tool(ToolName.EVALUATE, {"function": function})

    async def screenshot(self) -> str | None:
        result = await self.call_tool(ToolName.TAKE_SCREENSHOT, {})
        return result.image

    async def __aenter__(self) -> "ToolClient":
        return self

    async def __aexit__(self, *exc_info):
        return None
