import json
import re
from urllib.parse import urlencode

import pytest

from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.tool_client import ToolClient, ToolName
from vendorwatch.inference.models.llm_model import GeminiModels, LLMModel
from vendorwatch.integrations.source_control import (
    PullRequest,
    SourceControl,
    SourceFile,
)
from vendorwatch.schema.tool import ToolContent, ToolResult
from vendorwatch.schema.token_usage import TokenUsage
from vendorwatch.stores.credential_store import InMemoryCredentialStore
from vendorwatch.stores.spec_store import SpecStore
from vendorwatch.utils.settings import settings

LOGIN_URL = "https://vendor.example/login"
DASHBOARD_URL = "https://vendor.example/dashboard"
RESULTS_URL = "https://vendor.example/dashboard/results"

LOGIN_PAGE = """[1]<input type=text id=userId placeholder=User ID />
[2]<input type=password id=userPw placeholder=Password />
[3]<button id=loginBtn />Login"""

DASHBOARD_PAGE = """[10]<input type=text id=carNo placeholder=Car number />
[11]<button id=searchBtn />Search"""

RESULTS_PAGE = """Vehicle 12가3456 entered at 10:32
[12]<a href=/dashboard />Back"""

MARK = 1000.0

# 1x1 PNG
PIXEL_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

SELECTORS_SCRIPT = re.compile(r"const selectors = (\{.*?\}); const out", re.DOTALL)
API_SCRIPT = re.compile(r"const request = (\{.*?\});\n", re.DOTALL)


class FakeToolClient(ToolClient):
    """In-memory page model speaking the automation tool protocol."""

    def __init__(
        self,
        pages: dict[str, str] | None = None,
        url: str = "about:blank",
        click_targets: dict[str, str] | None = None,
        click_dialogs: dict[str, str] | None = None,
        click_requests: dict[str, list[dict]] | None = None,
        api_responses: list[dict] | None = None,
        navigate_result: ToolResult | None = None,
        session_storage: dict | None = None,
        screenshot_data: str = PIXEL_PNG,
    ):
        self.pages = pages or {}
        self.url = url
        self.click_targets = click_targets or {}
        self.click_dialogs = click_dialogs or {}
        self.click_requests = click_requests or {}
        self.api_responses = list(api_responses or [])
        self.navigate_result = navigate_result
        self.screenshot_data = screenshot_data
        self.session_storage = session_storage or {
            "cookies": "JSESSIONID=abc123",
            "local_storage": {"accessToken": "token-xyz"},
            "session_storage": {},
        }

        self.pending_dialog: str | None = None
        self.captured: list[dict] = []
        self.network_log: list[dict] = []
        self.calls: list[tuple[str, dict]] = []
        self.typed: list[tuple[str, str]] = []
        self.clicked: list[str] = []
        self.api_calls: list[dict] = []

    @property
    def page(self) -> str:
        return self.pages.get(self.url, "")

    def resolves(self, selector: str) -> bool:
        if selector.startswith("#"):
            return f"id={selector[1:]} " in self.page + " "
        name = re.search(r'\[name="([^"]+)"\]', selector)
        if name:
            return f"name={name.group(1)} " in self.page + " "
        return False

    def _text(self, text: str, is_error: bool = False) -> ToolResult:
        return ToolResult.from_text(text, is_error)

    def _json(self, value) -> ToolResult:
        return ToolResult.from_text(json.dumps(value))

    async def call_tool(self, name, arguments: dict) -> ToolResult:
        name = ToolName(name)
        self.calls.append((name.value, arguments))

        if name == ToolName.NAVIGATE:
            if self.navigate_result is not None:
                return self.navigate_result
            self.url = arguments["url"]
            return self._text(f"Navigated to {self.url} (status 200)")

        if name == ToolName.SNAPSHOT:
            return self._text(f"- Page URL: {self.url}\n{self.page}")

        if name == ToolName.TYPE:
            self.typed.append((arguments["element"], arguments["text"]))
            return self._text(f"Typed into {arguments['ref']}")

        if name == ToolName.CLICK:
            ref = arguments["ref"]
            self.clicked.append(ref)
            for entry in self.click_requests.get(ref, []):
                self.captured.append({"timestamp": MARK + 1, **entry})
            if ref in self.click_dialogs:
                self.pending_dialog = self.click_dialogs[ref]
                return self._text(
                    f"Clicked {ref}\n### Modal state\n"
                    f'- ["alert" dialog with message "{self.pending_dialog}"]'
                )
            if ref in self.click_targets:
                self.url = self.click_targets[ref]
            return self._text(f"Clicked {ref}")

        if name == ToolName.EVALUATE:
            return self._evaluate(arguments["function"])

        if name == ToolName.TAKE_SCREENSHOT:
            return ToolResult(
                content=[
                    ToolContent(type="image", data=self.screenshot_data, mime_type="image/png")
                ]
            )

        if name == ToolName.NETWORK_REQUESTS:
            return self._json(self.network_log)

        if name == ToolName.HANDLE_DIALOG:
            if self.pending_dialog is None:
                return self._text("No dialog visible", True)
            message, self.pending_dialog = self.pending_dialog, None
            return self._text(f"Handled dialog: {message}")

        if name == ToolName.WAIT_FOR:
            return self._text("Waited")

        raise ValueError(f"Unknown tool {name}")

    def _evaluate(self, function: str) -> ToolResult:
        if "__vendorwatchCaptureInstalled" in function:
            return self._json("installed")
        if "__vendorwatchMark" in function:
            return self._json(MARK)
        if "__capturedApiRequests" in function:
            return self._json(json.dumps(self.captured))
        if "localStorage" in function:
            return self._json(self.session_storage)
        if "document.cookie" in function:
            return self._json(self.session_storage.get("cookies", ""))

        match = SELECTORS_SCRIPT.search(function)
        if match:
            selectors = json.loads(match.group(1))
            return self._json(
                {role: self.resolves(selector) for role, selector in selectors.items()}
            )

        match = API_SCRIPT.search(function)
        if match:
            request = json.loads(match.group(1))
            self.api_calls.append(request)
            response = (
                self.api_responses.pop(0)
                if self.api_responses
                else {"status": 200, "body": []}
            )
            url = request["url"]
            if request.get("params"):
                url = f"{url}?{urlencode(request['params'])}"
            self.captured.append(
                {
                    "url": url,
                    "method": request["method"],
                    "request_body": request.get("body"),
                    "response_status": response["status"],
                    "response_body": response.get("body"),
                    "timestamp": MARK + 1,
                    "source": "fetch",
                }
            )
            return self._json(response)

        if "querySelectorAll" in function:
            return self._json([])
        if "el.value =" in function:
            return self._json("filled")
        if "el.click()" in function:
            return self._json("clicked")
        return self._json(None)


class ScriptedLLM(LLMModel):
    """Answers structured-output calls from per-schema queues."""

    def __init__(self, responses: list | None = None):
        super().__init__(GeminiModels.GEMINI_2_5_FLASH, True)
        self.responses: dict[str, list] = {}
        for response in responses or []:
            self.responses.setdefault(type(response).__name__, []).append(response)
        self.prompts: list[str] = []
        self.screenshots: list[str | None] = []

    def _get_model_response_with_structured_output(
        self, prompt, response_schema, screenshot=None, system_instruction=None
    ):
        self.prompts.append(prompt)
        self.screenshots.append(screenshot)
        queue = self.responses.get(response_schema.__name__, [])
        if not queue:
            return None, TokenUsage()
        return queue.pop(0), TokenUsage(input_tokens=10, output_tokens=5)

    def _get_model_response(self, prompt, system_instruction=None):
        self.prompts.append(prompt)
        return "", TokenUsage()


class FakeSourceControl(SourceControl):
    def __init__(self, files: dict[str, str] | None = None, fail_pr: bool = False):
        self.files = files or {}
        self.fail_pr = fail_pr
        self.pull_requests: list[dict] = []

    async def get_file(self, path: str) -> SourceFile | None:
        if path not in self.files:
            return None
        return SourceFile(path=path, content=self.files[path], sha="abc")

    async def open_pull_request(
        self, branch_name, file, new_content, commit_message, title, body
    ) -> PullRequest:
        if self.fail_pr:
            raise ValueError("Failed to open pull request: 422 - Reference exists")
        self.pull_requests.append(
            {
                "branch_name": branch_name,
                "path": file.path,
                "content": new_content,
                "commit_message": commit_message,
                "title": title,
                "body": body,
            }
        )
        number = len(self.pull_requests)
        return PullRequest(
            url=f"https://github.com/acme/vendors/pull/{number}",
            number=number,
            branch_name=branch_name,
        )


class RecordingNotifier:
    def __init__(self):
        self.notifications: list[tuple[str, str, str]] = []

    async def notify(self, kind, system_code, message):
        self.notifications.append((kind, system_code, message))


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LLM_RETRY_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "DIALOG_DISMISS_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "SETTLE_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "RUNS_DIRECTORY", tmp_path / "runs")
    monkeypatch.setattr(settings, "SPEC_STORE_DIRECTORY", tmp_path / "specs")
    return settings


@pytest.fixture
def spec_store(tmp_path):
    return SpecStore(tmp_path / "specs")


@pytest.fixture
def credential_store():
    return InMemoryCredentialStore(
        {"vendor-1": {"username": "operator", "password": "s3cret!"}}
    )


def make_portal() -> FakeToolClient:
    return FakeToolClient(
        pages={
            LOGIN_URL: LOGIN_PAGE,
            DASHBOARD_URL: DASHBOARD_PAGE,
            RESULTS_URL: RESULTS_PAGE,
        },
        click_targets={"3": DASHBOARD_URL, "11": RESULTS_URL},
        click_requests={
            "11": [
                {
                    "url": "https://vendor.example/api/search?carNo=12%EA%B0%803456",
                    "method": "GET",
                    "request_body": None,
                    "response_status": 200,
                    "response_body": {"data": [{"carNo": "12가3456", "inTime": "10:32"}]},
                    "source": "fetch",
                }
            ]
        },
    )


@pytest.fixture
def portal():
    return make_portal()


@pytest.fixture
def make_context(spec_store, credential_store):
    def make(tools=None, llm=None, source_control=None, **kwargs) -> RunContext:
        return RunContext(
            vendor_id="vendor-1",
            llm=llm,
            spec_store=spec_store,
            tools=tools,
            credential_store=credential_store,
            source_control=source_control,
            run_id="test-run",
            **kwargs,
        )

    return make
