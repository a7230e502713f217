from tests.conftest import FakeToolClient
from vendorwatch.inference.core.action_executor import ActionExecutor
from vendorwatch.inference.infra.tool_client import ToolName
from vendorwatch.schema.actions import ApiCall
from vendorwatch.schema.elements import ElementRef
from vendorwatch.schema.tool import ToolResult
from vendorwatch.stores.credential_store import InMemoryCredentialStore


class FlakyTools(FakeToolClient):
    """Answers TYPE with scripted results before behaving normally."""

    def __init__(self, type_results: list[ToolResult], **kwargs):
        super().__init__(**kwargs)
        self.type_results = list(type_results)

    async def call_tool(self, name, arguments):
        if ToolName(name) == ToolName.TYPE and self.type_results:
            self.calls.append((ToolName(name).value, arguments))
            return self.type_results.pop(0)
        return await super().call_tool(name, arguments)


def refs():
    return {
        "username": ElementRef(ref="1"),
        "password": ElementRef(ref="2"),
        "login_button": ElementRef(ref="3"),
    }


async def test_submit_credentials_fills_username_before_password(credential_store):
    tools = FakeToolClient()
    result = await ActionExecutor(tools, credential_store).submit_credentials(
        "vendor-1", refs()
    )
    assert result.success
    assert tools.typed == [("username", "operator"), ("password", "s3cret!")]
    assert "s3cret!" not in result.message


async def test_submit_credentials_without_stored_password():
    store = InMemoryCredentialStore({"vendor-1": {"username": "operator"}})
    tools = FakeToolClient()
    result = await ActionExecutor(tools, store).submit_credentials("vendor-1", refs())
    assert not result.success
    assert "password" in result.message
    assert tools.typed == [("username", "operator")]


async def test_error_response_is_retried_up_to_the_budget():
    tools = FlakyTools(
        [ToolResult.from_text("Error: element detached", True)] * 5
    )
    result = await ActionExecutor(tools, max_attempts=3).fill(
        "search_input", ElementRef(ref="10"), "12가3456"
    )
    assert not result.success
    assert result.attempts == 3
    assert len([call for call in tools.calls if call[0] == "browser_type"]) == 3


async def test_dialog_in_the_way_is_dismissed_and_retried():
    tools = FlakyTools(
        [ToolResult.from_text('### Modal state\n- ["alert" dialog with message "Notice"]')]
    )
    tools.pending_dialog = "Notice"
    result = await ActionExecutor(tools).fill(
        "search_input", ElementRef(ref="10"), "12가3456"
    )
    assert result.success
    assert result.attempts == 2
    assert tools.typed == [("search_input", "12가3456")]
    assert tools.pending_dialog is None


async def test_submit_click_that_opens_a_dialog_is_not_repeated():
    tools = FakeToolClient(click_dialogs={"3": "Password does not match"})
    result = await ActionExecutor(tools).click(
        ElementRef(ref="3"), "login_button", submit=True
    )
    assert result.success
    assert "Password does not match" in result.message
    assert tools.clicked == ["3"]


async def test_selector_only_fill_uses_evaluate():
    tools = FakeToolClient()
    result = await ActionExecutor(tools).fill(
        "search_input", ElementRef(selector="#carNo"), "12가3456"
    )
    assert result.success
    function = tools.calls[-1][1]["function"]
    assert '"#carNo"' in function
    assert "dispatchEvent(new Event('input'" in function


async def test_unresolved_element_is_never_touched():
    tools = FakeToolClient()
    result = await ActionExecutor(tools).click(ElementRef(), "search_button")
    assert not result.success
    assert tools.calls == []


async def test_call_api_reports_status_and_body():
    tools = FakeToolClient(
        api_responses=[{"status": 200, "body": {"data": [{"carNo": "12가3456"}]}}]
    )
    result = await ActionExecutor(tools).call_api(
        ApiCall(
            url="/api/sites/9981/cars",
            params={"carNo": "12가3456"},
            headers={"Authorization": "Bearer token-xyz"},
        )
    )
    assert result.success
    assert result.response_status == 200
    assert result.response_body == {"data": [{"carNo": "12가3456"}]}
    assert tools.api_calls[0]["headers"] == {"Authorization": "Bearer token-xyz"}


async def test_call_api_network_failure_has_status_zero():
    tools = FakeToolClient(
        api_responses=[{"status": 0, "body": None, "error": "Failed to fetch"}]
    )
    result = await ActionExecutor(tools).call_api(ApiCall(url="/api/cars"))
    assert not result.success
    assert result.response_status == 0
    assert result.message == "Failed to fetch"


async def test_error_words_inside_a_reply_are_not_failures():
    tools = FlakyTools(
        [ToolResult.from_text("Typed into 12가3456 (field errorMsg cleared)")]
    )
    result = await ActionExecutor(tools, max_attempts=3).fill(
        "search_input", ElementRef(ref="10"), "12가3456"
    )
    assert result.success
    assert result.attempts == 1


class MissingElement(FakeToolClient):
    async def call_tool(self, name, arguments):
        if ToolName(name) == ToolName.EVALUATE:
            self.calls.append((ToolName(name).value, arguments))
            return ToolResult.from_text('"error: element not found"')
        return await super().call_tool(name, arguments)


async def test_evaluated_error_string_is_retried():
    tools = MissingElement()
    result = await ActionExecutor(tools, max_attempts=2).fill(
        "search_input", ElementRef(selector="#carNo"), "12가3456"
    )
    assert not result.success
    assert result.attempts == 2
    assert len([call for call in tools.calls if call[0] == "browser_evaluate"]) == 2
