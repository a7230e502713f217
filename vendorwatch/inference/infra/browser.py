import asyncio
import base64
import json
import logging
import time as time_module

from browser_use import Agent, BrowserSession, ChatGoogle
from playwright.async_api import Dialog, Response

from vendorwatch.inference.infra.network_capture import redact_body
from vendorwatch.inference.infra.tool_client import ToolClient, ToolName
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.tool import ToolContent, ToolResult
from vendorwatch.utils.settings import settings
from vendorwatch.utils.utils import is_static_asset

logger = logging.getLogger(__name__)

# responses kept for browser_network_requests, oldest dropped first
NETWORK_LOG_LIMIT = 200


class Browser(ToolClient):
    """Automation tool backed by Playwright and a browser-use session.

    Element refs handed out by ``browser_snapshot`` are browser-use element
    indices, so ``browser_click``/``browser_type`` act through ``multi_act``.
    """

    def __init__(
        self,
        headless: bool | None = None,
        stealth: bool = True,
        debug_port: int = 9222,
    ):
        self.headless = settings.HEADLESS if headless is None else headless
        self.stealth = stealth
        self.debug_port = debug_port

        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None
        self.cdp_url = f"http://localhost:{self.debug_port}"
        self.backend_agent = None

        self.pending_dialog: Dialog | None = None
        self.network_calls: list[CapturedRequest] = []

    async def start(self):
        logger.debug("Starting browser")
        try:
            if self.playwright is not None:
                await self.playwright.stop()

            if self.stealth:
                from patchright.async_api import async_playwright
            else:
                from playwright.async_api import async_playwright

            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                channel="chromium",
                headless=self.headless,
                args=[f"--remote-debugging-port={self.debug_port}"],
                chromium_sandbox=False,
            )

            self.context = await self.browser.new_context(no_viewport=True)
            self.page = await self.context.new_page()
            self.attach_listeners(self.page)

            browser_session = BrowserSession(cdp_url=self.cdp_url, keep_alive=True)

            self.backend_agent = Agent(
                task="",
                llm=ChatGoogle(model=settings.LLM_MODEL),
                browser_session=browser_session,
                use_vision=False,
            )

            await self.backend_agent.browser_session.start()

            logger.debug("Browser started successfully")

        except Exception as e:
            logger.error(f"Error starting playwright: {e}")
            raise e

    async def stop(self):
        logger.debug("Stopping full system")
        if self.backend_agent is not None:
            self.backend_agent.stop()
            if self.backend_agent.browser_session:
                await self.backend_agent.browser_session.stop()
            self.backend_agent = None

        if self.context is not None:
            await self.context.close()
            self.context = None

        if self.browser is not None:
            await self.browser.close()
            self.browser = None

        if self.playwright is not None:
            await self.playwright.stop()
            self.playwright = None
        logger.debug("Full system stopped")

    async def __aenter__(self) -> "Browser":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    async def get_current_page(self):
        if self.context is None:
            return None
        pages = self.context.pages
        if len(pages) == 0:
            self.page = await self.context.new_page()
            self.attach_listeners(self.page)
        else:
            self.page = pages[-1]

        return self.page

    def attach_listeners(self, page):
        page.on("response", self._on_response)
        page.on("dialog", self._on_dialog)

    async def _on_dialog(self, dialog: Dialog):
        logger.info(f"Dialog opened: {dialog.type} {dialog.message!r}")
        self.pending_dialog = dialog

    async def _on_response(self, response: Response):
        if is_static_asset(response.url):
            return

        try:
            body = await response.json()
        except Exception:
            try:
                body = await response.text()
            except Exception:
                body = None

        try:
            request_body = redact_body(response.request.post_data)
        except Exception:
            request_body = None

        self.network_calls.append(
            CapturedRequest(
                url=response.url,
                method=response.request.method,
                request_body=request_body,
                response_status=response.status,
                response_body=body,
                timestamp=time_module.time() * 1000,
                source="network_log",
            )
        )
        del self.network_calls[:-NETWORK_LOG_LIMIT]

    def _with_modal_state(self, text: str) -> str:
        if self.pending_dialog is None:
            return text
        return (
            f"{text}\n### Modal state\n- [{self.pending_dialog.type} dialog]: "
            f"{self.pending_dialog.message!r}"
        )

    async def call_tool(self, name: ToolName | str, arguments: dict) -> ToolResult:
        name = ToolName(name)
        handler = {
            ToolName.NAVIGATE: self._navigate,
            ToolName.SNAPSHOT: self._snapshot,
            ToolName.CLICK: self._click,
            ToolName.TYPE: self._type,
            ToolName.EVALUATE: self._evaluate,
            ToolName.TAKE_SCREENSHOT: self._take_screenshot,
            ToolName.NETWORK_REQUESTS: self._network_requests,
            ToolName.HANDLE_DIALOG: self._handle_dialog,
            ToolName.WAIT_FOR: self._wait_for,
        }[name]
        try:
            return await handler(**arguments)
        except Exception as e:
            logger.warning(f"{name.value} failed: {e}")
            return ToolResult.from_text(self._with_modal_state(f"Error: {e}"), True)

    async def _navigate(self, url: str) -> ToolResult:
        page = await self.get_current_page()
        response = await page.goto(url)
        status = response.status if response is not None else "unknown"
        return ToolResult.from_text(
            self._with_modal_state(f"Navigated to {page.url} (status {status})")
        )

    async def _snapshot(self) -> ToolResult:
        browser_state_summary = (
            await self.backend_agent.browser_session.get_browser_state_summary(
                include_screenshot=False,
                include_recent_events=self.backend_agent.include_recent_events,
                cached=False,
            )
        )
        page = await self.get_current_page()
        text = (
            f"- Page URL: {page.url}\n"
            f"- Page Title: {await page.title()}\n"
            f"{browser_state_summary.dom_state.llm_representation()}"
        )
        return ToolResult.from_text(self._with_modal_state(text))

    async def _click(self, ref: str, element: str | None = None) -> ToolResult:
        action_model = self.backend_agent.ActionModel(**{"click": {"index": int(ref)}})
        results = await self.backend_agent.multi_act([action_model])
        error = results[-1].error if results else None
        if error:
            return ToolResult.from_text(self._with_modal_state(f"Error: {error}"), True)
        return ToolResult.from_text(self._with_modal_state(f"Clicked {element or ref}"))

    async def _type(
        self, ref: str, text: str, element: str | None = None, submit: bool = False
    ) -> ToolResult:
        action_model = self.backend_agent.ActionModel(
            **{"input": {"index": int(ref), "text": text, "clear": True}}
        )
        results = await self.backend_agent.multi_act([action_model])
        error = results[-1].error if results else None
        if error:
            return ToolResult.from_text(self._with_modal_state(f"Error: {error}"), True)
        if submit:
            page = await self.get_current_page()
            await page.keyboard.press("Enter")
        return ToolResult.from_text(self._with_modal_state(f"Typed into {element or ref}"))

    async def _evaluate(self, function: str) -> ToolResult:
        page = await self.get_current_page()
        value = await page.evaluate(function)
        return ToolResult.from_text(json.dumps(value, default=str))

    async def _take_screenshot(self) -> ToolResult:
        page = await self.get_current_page()
        data = base64.b64encode(await page.screenshot()).decode("utf-8")
        return ToolResult(
            content=[ToolContent(type="image", data=data, mime_type="image/png")]
        )

    async def _network_requests(self) -> ToolResult:
        return ToolResult.from_text(
            json.dumps([call.model_dump(mode="json") for call in self.network_calls])
        )

    async def _handle_dialog(
        self, accept: bool = True, prompt_text: str | None = None
    ) -> ToolResult:
        if self.pending_dialog is None:
            return ToolResult.from_text("Error: No dialog visible", True)
        dialog, self.pending_dialog = self.pending_dialog, None
        if accept:
            await dialog.accept(prompt_text)
        else:
            await dialog.dismiss()
        return ToolResult.from_text(f"Handled {dialog.type} dialog")

    async def _wait_for(self, time: float | None = None, text: str | None = None):
        page = await self.get_current_page()
        if text is not None:
            await page.get_by_text(text).first.wait_for()
            return ToolResult.from_text(f"Waited for text {text!r}")
        await asyncio.sleep(time or 0)
        return ToolResult.from_text(f"Waited for {time or 0} seconds")
