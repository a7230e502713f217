import asyncio
import json
import logging
import re

from vendorwatch.inference.infra.tool_client import ToolClient, ToolName
from vendorwatch.schema.actions import ActionResult, ApiCall
from vendorwatch.schema.elements import ElementRef
from vendorwatch.schema.tool import ToolResult
from vendorwatch.stores.credential_store import CredentialStore
from vendorwatch.utils.settings import settings
from vendorwatch.utils.utils import loads_tool_json

logger = logging.getLogger(__name__)

DIALOG_MARKERS = ("modal state", "dialog")
# a tool reply that leads with an error, bare or as an evaluated JSON string
ERROR_MARKER = re.compile(r'^\s*"?error\b', re.IGNORECASE | re.MULTILINE)

FILL_BY_SELECTOR_JS = """() => {
  const el = document.querySelector(%s);
  if (!el) return 'error: element not found';
  el.focus();
  el.value = %s;
  el.dispatchEvent(new Event('input', {bubbles: true}));
  el.dispatchEvent(new Event('change', {bubbles: true}));
  return 'filled';
}"""

CLICK_BY_SELECTOR_JS = """() => {
  const el = document.querySelector(%s);
  if (!el) return 'error: element not found';
  el.click();
  return 'clicked';
}"""

API_CALL_JS = """async () => {
  const request = %s;
  const url = new URL(request.url, window.location.href);
  for (const [key, value] of Object.entries(request.params || {})) {
    url.searchParams.set(key, value);
  }
  const init = {method: request.method, credentials: 'include', headers: {...request.headers}};
  if (request.body !== null && request.body !== undefined) {
    if ((request.content_type || '').includes('x-www-form-urlencoded')) {
      init.headers['Content-Type'] = request.content_type;
      init.body = new URLSearchParams(request.body).toString();
    } else {
      init.headers['Content-Type'] = request.content_type || 'application/json';
      init.body = JSON.stringify(request.body);
    }
  }
  try {
    const response = await fetch(url.toString(), init);
    const text = await response.text();
    let body = text;
    try { body = JSON.parse(text); } catch (e) {}
    return {status: response.status, body: body};
  } catch (err) {
    return {status: 0, body: null, error: String(err && err.message)};
  }
}"""


def _has_dialog(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in DIALOG_MARKERS)


class ActionExecutor:
    """Performs page actions with dialog dismissal and bounded retries.

    Every operation returns an ``ActionResult``; tool failures never escape
    as exceptions.
    """

    def __init__(
        self,
        tools: ToolClient,
        credential_store: CredentialStore | None = None,
        max_attempts: int | None = None,
    ):
        self.tools = tools
        self.credential_store = credential_store
        self.max_attempts = max_attempts or settings.MAX_ACTION_ATTEMPTS

    async def dismiss_dialog(self) -> bool:
        try:
            result = await self.tools.call_tool(
                ToolName.HANDLE_DIALOG, {"accept": True}
            )
        except Exception as e:
            logger.debug(f"Dialog dismissal failed: {e}")
            return False
        if result.is_error:
            # "No dialog visible" is the normal case
            return False
        logger.info(f"Dismissed dialog: {result.text}")
        await asyncio.sleep(settings.DIALOG_DISMISS_DELAY_SECONDS)
        return True

    async def _call_tool(self, name: ToolName, arguments: dict) -> ToolResult:
        try:
            return await self.tools.call_tool(name, arguments)
        except Exception as e:
            return ToolResult.from_text(f"Error: {e}", True)

    async def _with_retries(
        self,
        description: str,
        name: ToolName,
        arguments: dict,
        retry_dialogs: bool = True,
    ) -> ActionResult:
        last_text = ""
        for attempt in range(1, self.max_attempts + 1):
            await self.dismiss_dialog()
            result = await self._call_tool(name, arguments)
            last_text = result.text

            if _has_dialog(last_text) and not retry_dialogs:
                # the action itself opened the dialog, e.g. a rejected login
                return ActionResult(success=True, message=last_text, attempts=attempt)
            if _has_dialog(last_text):
                logger.info(f"{description}: dialog in the way, attempt {attempt}")
                await self.dismiss_dialog()
                continue
            if result.is_error or ERROR_MARKER.search(last_text):
                logger.warning(
                    f"{description}: attempt {attempt}/{self.max_attempts} "
                    f"failed: {last_text[:200]}"
                )
                continue
            return ActionResult(success=True, message=last_text, attempts=attempt)

        return ActionResult(
            success=False,
            message=f"{description} failed after {self.max_attempts} attempts: "
            f"{last_text[:500]}",
            attempts=self.max_attempts,
        )

    async def fill(self, field: str, ref: ElementRef, value: str) -> ActionResult:
        if not ref.resolved:
            return ActionResult(success=False, message=f"No element for {field}")
        if ref.ref:
            return await self._with_retries(
                f"fill {field}",
                ToolName.TYPE,
                {"ref": ref.ref, "element": field, "text": value},
            )
        script = FILL_BY_SELECTOR_JS % (json.dumps(ref.selector), json.dumps(value))
        return await self._with_retries(
            f"fill {field}", ToolName.EVALUATE, {"function": script}
        )

    async def click(
        self, ref: ElementRef, element: str = "element", submit: bool = False
    ) -> ActionResult:
        """Click ``ref``. A submit click is not repeated when it opens a dialog."""
        if not ref.resolved:
            return ActionResult(success=False, message=f"No element for {element}")
        if ref.ref:
            name, arguments = ToolName.CLICK, {"ref": ref.ref, "element": element}
        else:
            script = CLICK_BY_SELECTOR_JS % json.dumps(ref.selector)
            name, arguments = ToolName.EVALUATE, {"function": script}
        return await self._with_retries(
            f"click {element}", name, arguments, retry_dialogs=not submit
        )

    async def submit_credentials(
        self, vendor_id: str, refs: dict[str, ElementRef]
    ) -> ActionResult:
        """Fill username, then password. Values never leave this method."""
        if self.credential_store is None:
            return ActionResult(success=False, message="No credential store configured")

        for field in ("username", "password"):
            ref = refs.get(field)
            if ref is None or not ref.resolved:
                return ActionResult(success=False, message=f"No element for {field}")
            value = self.credential_store.get_field(vendor_id, field)
            if value is None:
                return ActionResult(
                    success=False, message=f"No {field} stored for {vendor_id}"
                )
            result = await self.fill(field, ref, value)
            if not result.success:
                return result
        return ActionResult(success=True, message="Credentials entered", attempts=1)

    async def call_api(self, request: ApiCall) -> ActionResult:
        script = API_CALL_JS % json.dumps(request.model_dump(mode="json"))
        last_text = ""
        for attempt in range(1, self.max_attempts + 1):
            await self.dismiss_dialog()
            result = await self._call_tool(ToolName.EVALUATE, {"function": script})
            last_text = result.text
            payload = loads_tool_json(last_text)
            if result.is_error or not isinstance(payload, dict):
                logger.warning(
                    f"API call {request.method} {request.url}: attempt {attempt} "
                    f"failed: {last_text[:200]}"
                )
                continue

            status = int(payload.get("status") or 0)
            return ActionResult(
                success=200 <= status < 300,
                message=payload.get("error") or f"HTTP {status}",
                attempts=attempt,
                response_status=status,
                response_body=payload.get("body"),
            )

        return ActionResult(
            success=False,
            message=f"API call failed after {self.max_attempts} attempts: "
            f"{last_text[:500]}",
            attempts=self.max_attempts,
            response_status=0,
        )
