import logging

from vendorwatch.inference.core.locator.strategies import (
    LocateRequest,
    Strategy,
    hinted_strategy,
    selectors_resolving,
    spec_fallback_strategy,
    structural_strategy,
    visual_strategy,
)
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.schema.elements import LocateResult

logger = logging.getLogger(__name__)

MISSING_SELECTOR = "<missing>"

DEFAULT_STRATEGIES: list[Strategy] = [
    structural_strategy,
    visual_strategy,
    hinted_strategy,
    spec_fallback_strategy,
]


def is_complete(result: LocateResult, request: LocateRequest) -> bool:
    if result.outcome != "found":
        return False
    if result.method == "api":
        return True
    return not result.missing_roles(request.roles)


async def reconcile_selectors(
    result: LocateResult, request: LocateRequest, ctx: RunContext
) -> dict[str, str]:
    """Selector per role as observed on the live page.

    A stored selector that still matches the page is reported unchanged, so a
    vendor that kept its markup shows no drift even when the element was found
    through a different selector. A stored selector that no longer matches is
    reported as the selector actually found, or ``<missing>``.
    """
    stored = (
        request.spec.form.roles_for(request.kind)
        if request.spec is not None and request.spec.form is not None
        else {}
    )
    resolving = await selectors_resolving(ctx.tools, stored)

    observed: dict[str, str] = {}
    for role in request.roles:
        found = result.refs.get(role)
        if role in stored and resolving.get(role):
            observed[role] = stored[role]
        elif found is not None and found.selector:
            observed[role] = found.selector
        elif role in stored:
            observed[role] = MISSING_SELECTOR
    return observed


async def locate(
    request: LocateRequest,
    ctx: RunContext,
    strategies: list[Strategy] | None = None,
) -> LocateResult:
    """Run the strategies in order until one resolves every required role.

    Results of different strategies are never merged. When all strategies
    fall short the returned result is ``not_found``.
    """
    attempts = []
    for strategy in strategies or DEFAULT_STRATEGIES:
        result = await strategy(request, ctx)
        if is_complete(result, request):
            logger.info(
                f"Located {request.kind} form via {result.source} "
                f"(confidence {result.confidence})"
            )
            if result.method == "dom":
                result.observed_selectors = await reconcile_selectors(
                    result, request, ctx
                )
            return result

        reason = result.reason or f"missing {result.missing_roles(request.roles)}"
        logger.info(f"{strategy.__name__} fell short: {reason}")
        attempts.append(f"{result.source or strategy.__name__}: {reason}")

    return LocateResult(
        outcome="not_found",
        reason="all locator strategies exhausted; " + "; ".join(attempts),
    )
