import json
import logging
import re
from typing import Awaitable, Callable

from pydantic import BaseModel

from vendorwatch.inference.agents.runner import run_agent
from vendorwatch.inference.agents.visual_locator.visual_locator import (
    VisualLocatorAgent,
)
from vendorwatch.inference.core.locator.snapshot import (
    SnapshotElement,
    find_by_label,
    parse_snapshot,
    refs_in,
)
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.inference.infra.tool_client import ToolClient, ToolName
from vendorwatch.schema.elements import ElementRef, LocateResult
from vendorwatch.schema.spec import REQUIRED_ROLES, FormKind, VendorSpec
from vendorwatch.utils.utils import is_valid_base64_image, loads_tool_json

logger = logging.getLogger(__name__)

ROLE_PATTERNS: dict[str, re.Pattern] = {
    "username": re.compile(
        r"user|login.?id|userid|\bid\b|e-?mail|account|아이디|사용자", re.IGNORECASE
    ),
    "password": re.compile(r"pass|pwd|비밀번호|암호", re.IGNORECASE),
    "login_button": re.compile(
        r"log\s*-?\s*in|sign\s*-?\s*in|submit|로그인|확인", re.IGNORECASE
    ),
    "search_input": re.compile(
        r"search|query|keyword|car.?n|vehicle|plate|검색|차량|조회", re.IGNORECASE
    ),
    "search_button": re.compile(r"search|find|submit|검색|조회|찾기", re.IGNORECASE),
}


class LocateRequest(BaseModel):
    kind: FormKind
    spec: VendorSpec | None = None
    snapshot: str | None = None

    @property
    def roles(self) -> tuple[str, ...]:
        return REQUIRED_ROLES[self.kind]


Strategy = Callable[[LocateRequest, RunContext], Awaitable[LocateResult]]


async def selectors_resolving(
    tools: ToolClient, selectors: dict[str, str]
) -> dict[str, bool]:
    """Which of ``selectors`` match an element on the live page."""
    if not selectors:
        return {}
    script = (
        "() => { const selectors = %s; const out = {};"
        " for (const [role, selector] of Object.entries(selectors)) {"
        " try { out[role] = !!document.querySelector(selector); }"
        " catch (e) { out[role] = false; } }"
        " return out; }"
    ) % json.dumps(selectors)
    result = await tools.call_tool(ToolName.EVALUATE, {"function": script})
    resolved = loads_tool_json(result.text)
    if result.is_error or not isinstance(resolved, dict):
        logger.warning(f"Could not check selectors on page: {result.text[:200]}")
        return {role: False for role in selectors}
    return {role: bool(resolved.get(role)) for role in selectors}


def _pick(
    elements: list[SnapshotElement],
    accept: Callable[[SnapshotElement], bool],
    pattern: re.Pattern,
    taken: set[str],
) -> SnapshotElement | None:
    for element in elements:
        if element.ref in taken or not accept(element):
            continue
        if pattern.search(element.search_text):
            return element
    return None


def _heuristic_match(
    kind: FormKind, elements: list[SnapshotElement]
) -> dict[str, SnapshotElement]:
    found: dict[str, SnapshotElement] = {}
    taken: set[str] = set()

    def claim(role: str, element: SnapshotElement | None):
        if element is not None:
            found[role] = element
            taken.add(element.ref)

    if kind == "login":
        password = next(
            (e for e in elements if e.is_password and e.ref not in taken), None
        ) or _pick(elements, lambda e: e.is_text_input, ROLE_PATTERNS["password"], taken)
        claim("password", password)
        claim(
            "username",
            _pick(
                elements,
                lambda e: e.is_text_input and not e.is_password,
                ROLE_PATTERNS["username"],
                taken,
            ),
        )
        claim(
            "login_button",
            _pick(elements, lambda e: e.is_button, ROLE_PATTERNS["login_button"], taken),
        )
    else:
        text_inputs = [e for e in elements if e.is_text_input and not e.is_password]
        search_input = _pick(
            text_inputs, lambda e: True, ROLE_PATTERNS["search_input"], taken
        )
        if search_input is None and len(text_inputs) == 1:
            search_input = text_inputs[0]
        claim("search_input", search_input)
        claim(
            "search_button",
            _pick(elements, lambda e: e.is_button, ROLE_PATTERNS["search_button"], taken),
        )
    return found


async def _snapshot(request: LocateRequest, ctx: RunContext) -> str:
    if request.snapshot is None:
        request.snapshot = await ctx.tools.snapshot()
    return request.snapshot


async def structural_strategy(request: LocateRequest, ctx: RunContext) -> LocateResult:
    elements = parse_snapshot(await _snapshot(request, ctx))
    if not elements:
        return LocateResult.not_found("structural", "snapshot has no elements")

    matched = _heuristic_match(request.kind, elements)
    if not matched:
        return LocateResult.not_found("structural", "no element matched heuristics")

    refs = {
        role: ElementRef(ref=element.ref, selector=element.selector)
        for role, element in matched.items()
    }
    return LocateResult(
        outcome="found",
        refs=refs,
        confidence=0.9 if len(refs) == len(request.roles) else 0.5,
        source="structural",
    )


async def visual_strategy(request: LocateRequest, ctx: RunContext) -> LocateResult:
    if ctx.llm is None:
        return LocateResult.not_found("visual", "no reasoning service configured")

    snapshot = await _snapshot(request, ctx)
    screenshot = await ctx.tools.screenshot()
    if screenshot is not None and not is_valid_base64_image(screenshot):
        logger.warning("Screenshot does not decode as an image, sending snapshot only")
        screenshot = None
    response = await run_agent(
        ctx,
        VisualLocatorAgent(ctx.llm).locate_elements,
        request.kind,
        request.roles,
        snapshot,
        screenshot,
    )
    if response is None:
        return LocateResult.not_found("visual", "no usable answer from reasoning service")

    elements = parse_snapshot(snapshot)
    known_refs = refs_in(elements)
    by_ref = {element.ref: element for element in elements}

    refs: dict[str, ElementRef] = {}
    unverified_selectors: dict[str, str] = {}
    for located in response.elements:
        if located.role not in request.roles:
            continue
        if located.ref and located.ref in known_refs:
            refs[located.role] = ElementRef(
                ref=located.ref, selector=by_ref[located.ref].selector
            )
            continue

        element = find_by_label(elements, located.label) if located.label else None
        if element is not None:
            refs[located.role] = ElementRef(ref=element.ref, selector=element.selector)
        elif located.selector:
            unverified_selectors[located.role] = located.selector
        elif located.ref:
            logger.info(f"Discarding ref {located.ref} for {located.role}: not in snapshot")

    resolving = await selectors_resolving(ctx.tools, unverified_selectors)
    for role, selector in unverified_selectors.items():
        if resolving.get(role):
            refs[role] = ElementRef(selector=selector)

    if not refs:
        return LocateResult.not_found("visual", "no located element verified")
    return LocateResult(
        outcome="found", refs=refs, confidence=response.confidence, source="visual"
    )


async def _selector_strategy(
    source: str, selectors: dict[str, str], ctx: RunContext
) -> LocateResult:
    if not selectors:
        return LocateResult.not_found(source, "no selectors recorded")
    resolving = await selectors_resolving(ctx.tools, selectors)
    refs = {
        role: ElementRef(selector=selector)
        for role, selector in selectors.items()
        if resolving.get(role)
    }
    if not refs:
        return LocateResult.not_found(source, "no recorded selector matches the page")
    return LocateResult(outcome="found", refs=refs, confidence=0.7, source=source)


async def hinted_strategy(request: LocateRequest, ctx: RunContext) -> LocateResult:
    hints = request.spec.hints.get(request.kind) if request.spec else None
    if hints is None:
        return LocateResult.not_found("hinted", "no hints recorded")
    selectors = {
        role: selector
        for role, selector in hints.selectors.items()
        if role in request.roles
    }
    return await _selector_strategy("hinted", selectors, ctx)


async def spec_fallback_strategy(
    request: LocateRequest, ctx: RunContext
) -> LocateResult:
    spec = request.spec
    if spec is None:
        return LocateResult.not_found("spec_fallback", "no stored spec")

    if request.kind == "search" and spec.mode == "api" and spec.api is not None:
        return LocateResult(
            outcome="found",
            confidence=0.8,
            source="spec_fallback",
            method="api",
        )

    selectors = spec.form.roles_for(request.kind) if spec.form else {}
    return await _selector_strategy("spec_fallback", selectors, ctx)
