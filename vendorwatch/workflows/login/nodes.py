import logging
import re

from pydantic import ValidationError

from vendorwatch.inference.agents.login_verifier.login_verifier import (
    LoginVerifierAgent,
)
from vendorwatch.inference.agents.runner import run_agent
from vendorwatch.inference.core.diff_engine import diff
from vendorwatch.inference.core.error_classifier import classify_exception
from vendorwatch.inference.core.locator.chain import locate
from vendorwatch.inference.core.locator.strategies import (
    LocateRequest,
    selectors_resolving,
)
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.network_capture import CaptureChannel
from vendorwatch.inference.infra.tool_client import ToolName
from vendorwatch.schema.changes import ObservedContract
from vendorwatch.schema.session import SessionInfo
from vendorwatch.schema.spec import LOGIN_ROLES, SuccessIndicators
from vendorwatch.utils.utils import loads_tool_json
from vendorwatch.workflows.login.state import LoginState
from vendorwatch.workflows.utils import (
    collect_requests,
    connection_status,
    executor_for,
    navigation_failure,
    page_url,
    settle,
)

logger = logging.getLogger(__name__)

REJECTION_TEXT = re.compile(
    r"invalid|incorrect|wrong|does not match|not match|locked|"
    r"일치하지|틀렸|잘못|확인해\s*주세요",
    re.IGNORECASE,
)
TOKEN_KEY = re.compile(r"token|jwt|auth", re.IGNORECASE)

READ_SESSION_JS = """() => ({
  cookies: document.cookie,
  local_storage: Object.fromEntries(Object.entries(window.localStorage || {})),
  session_storage: Object.fromEntries(Object.entries(window.sessionStorage || {}))
})"""


async def load_spec(state: LoginState, ctx: RunContext) -> dict:
    try:
        spec = await ctx.spec_store.get(ctx.vendor_id)
    except (OSError, ValidationError) as e:
        logger.error(f"Could not read spec for {ctx.vendor_id}: {e}")
        return {"status": "UNKNOWN_ERROR", "error_message": f"Spec unreadable: {e}"}

    if spec is None:
        logger.info(f"No spec stored for {ctx.vendor_id}")
    else:
        logger.info(f"Loaded spec v{spec.version} for {ctx.vendor_id}")
    return {"spec": spec}


async def navigate(state: LoginState, ctx: RunContext) -> dict:
    try:
        result = await ctx.tools.call_tool(ToolName.NAVIGATE, {"url": state.url})
    except Exception as e:
        info = classify_exception(e)
        return {
            "status": connection_status(info),
            "connection_error": info,
            "error_message": info.summary,
        }

    failure = navigation_failure(result.text, result.is_error)
    if failure is not None:
        logger.warning(f"Navigation to {state.url} failed: {failure.summary}")
        return {
            "status": connection_status(failure),
            "connection_error": failure,
            "error_message": failure.summary,
        }

    capture_installed = await CaptureChannel(ctx.tools).install()
    await executor_for(ctx).dismiss_dialog()
    snapshot = await ctx.tools.snapshot()
    return {
        "capture_installed": capture_installed,
        "snapshot": snapshot,
        "current_url": page_url(snapshot) or state.url,
    }


async def locate_form(state: LoginState, ctx: RunContext) -> dict:
    request = LocateRequest(kind="login", spec=state.spec, snapshot=state.snapshot)
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
        "observed_selectors": result.observed_selectors,
        "confidence": result.confidence,
    }


async def fill_credentials(state: LoginState, ctx: RunContext) -> dict:
    for role in ("username", "password"):
        ref = state.form_elements.get(role)
        if ref is None or not ref.resolved:
            return {
                "status": "FORM_NOT_FOUND",
                "error_message": f"{role} field not found",
            }

    result = await executor_for(ctx).submit_credentials(
        ctx.vendor_id, state.form_elements
    )
    if not result.success:
        return {
            "status": "UNKNOWN_ERROR",
            "error_message": f"Failed to fill credentials: {result.message}",
        }
    return {"credentials_filled": True}


async def submit(state: LoginState, ctx: RunContext) -> dict:
    ref = state.form_elements.get("login_button")
    if ref is None or not ref.resolved:
        return {"status": "FORM_NOT_FOUND", "error_message": "Login button not found"}

    capture = CaptureChannel(ctx.tools)
    since = await capture.mark()
    result = await executor_for(ctx).click(ref, "login_button", submit=True)
    if not result.success:
        return {
            "status": "UNKNOWN_ERROR",
            "error_message": f"Click login failed: {result.message}",
        }

    await settle(ctx)
    captured = await collect_requests(capture, since)
    snapshot = await ctx.tools.snapshot()
    return {
        "login_clicked": True,
        "submit_message": result.message,
        "url_before_submit": state.current_url,
        "current_url": page_url(snapshot) or state.current_url,
        "snapshot": snapshot,
        "capture_since": since,
        "captured_requests": captured,
    }


async def _indicators_met(
    indicators: SuccessIndicators, current_url: str | None, ctx: RunContext
) -> bool:
    if indicators.url_pattern and current_url:
        try:
            if re.search(indicators.url_pattern, current_url):
                return True
        except re.error:
            if indicators.url_pattern in current_url:
                return True

    if indicators.element_selector:
        resolving = await selectors_resolving(
            ctx.tools, {"indicator": indicators.element_selector}
        )
        if resolving.get("indicator"):
            return True

    if indicators.cookie_name:
        result = await ctx.tools.evaluate("() => document.cookie")
        cookies = loads_tool_json(result.text) or ""
        if isinstance(cookies, str) and f"{indicators.cookie_name}=" in cookies:
            return True
    return False


def _login_change_set(state: LoginState):
    if state.spec is None:
        return None
    # the login form is always driven through the page
    login_contract = state.spec.model_copy(update={"mode": "dom", "api": None})
    return diff(
        login_contract,
        ObservedContract(
            selectors={
                role: selector
                for role, selector in state.observed_selectors.items()
                if role in LOGIN_ROLES
            }
        ),
    )


async def verify(state: LoginState, ctx: RunContext) -> dict:
    submit_message = state.submit_message or ""
    dialog_text = submit_message if "dialog" in submit_message.lower() else ""
    if dialog_text:
        await executor_for(ctx).dismiss_dialog()
        if REJECTION_TEXT.search(dialog_text):
            return {
                "status": "INVALID_CREDENTIALS",
                "confidence": 0.8,
                "error_message": dialog_text.strip()[:300],
            }

    change_set = _login_change_set(state)

    if state.spec is not None and await _indicators_met(
        state.spec.success_indicators, state.current_url, ctx
    ):
        logger.info("Login verified by stored success indicators")
        return {"login_verified": True, "confidence": 0.95, "change_set": change_set}

    response = None
    if ctx.llm is not None:
        response = await run_agent(
            ctx,
            LoginVerifierAgent(ctx.llm).verify_login,
            state.url_before_submit or state.url,
            state.current_url or "",
            (state.snapshot or "") + (f"\n{dialog_text}" if dialog_text else ""),
        )

    if response is not None:
        if response.invalid_credentials:
            return {
                "status": "INVALID_CREDENTIALS",
                "confidence": response.confidence,
                "error_message": response.reason,
            }
        if response.logged_in:
            return {
                "login_verified": True,
                "confidence": response.confidence,
                "change_set": change_set,
            }
        return {
            "status": "UNKNOWN_ERROR",
            "confidence": response.confidence,
            "error_message": f"Login not confirmed: {response.reason}",
            "change_set": change_set,
        }

    # No usable answer: a changed URL with the password field gone is
    # weak evidence of success.
    password_ref = state.form_elements.get("password")
    url_changed = (
        state.current_url is not None
        and state.url_before_submit is not None
        and state.current_url != state.url_before_submit
    )
    snapshot = state.snapshot or ""
    password_gone = (
        password_ref is None
        or not password_ref.ref
        or (
            f"[ref={password_ref.ref}]" not in snapshot
            and f"[{password_ref.ref}]<" not in snapshot
        )
    )
    if url_changed and password_gone:
        return {"login_verified": True, "confidence": 0.5, "change_set": change_set}

    return {
        "status": "NEEDS_REVIEW",
        "confidence": 0.0,
        "error_message": "Login outcome could not be determined",
        "change_set": change_set,
    }


def _session_from_storage(payload: dict) -> SessionInfo:
    cookies = [
        cookie.strip()
        for cookie in str(payload.get("cookies") or "").split(";")
        if cookie.strip()
    ]
    local_storage = payload.get("local_storage") or {}
    session_storage = payload.get("session_storage") or {}

    access_token = None
    for storage in (local_storage, session_storage):
        for key, value in storage.items():
            if not TOKEN_KEY.search(key) or not value:
                continue
            parsed = loads_tool_json(value)
            if isinstance(parsed, dict):
                value = parsed.get("accessToken") or parsed.get("access_token") or value
            if isinstance(value, str):
                access_token = value
                break
        if access_token:
            break

    sources = [
        name
        for name, present in (
            ("jwt", bool(access_token)),
            ("cookie", bool(cookies)),
            ("session", bool(session_storage) and not access_token),
        )
        if present
    ]
    if len(sources) > 1:
        session_type = "mixed"
    elif sources:
        session_type = sources[0]
    else:
        session_type = None

    return SessionInfo(
        type=session_type,
        access_token=access_token,
        cookies=cookies or None,
        local_storage=local_storage or None,
        session_storage=session_storage or None,
    )


async def extract_session(state: LoginState, ctx: RunContext) -> dict:
    result = await ctx.tools.evaluate(READ_SESSION_JS)
    payload = loads_tool_json(result.text)
    if result.is_error or not isinstance(payload, dict):
        logger.warning(f"Could not read session storage: {result.text[:200]}")
        session = SessionInfo()
    else:
        session = _session_from_storage(payload)

    logger.info(f"Login succeeded, session type {session.type}")
    return {"status": "SUCCESS", "session": session}
