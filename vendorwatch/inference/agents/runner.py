import asyncio
import logging
from typing import Callable, TypeVar

from pydantic import BaseModel

from vendorwatch.exceptions import ReasoningBudgetExceeded
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.schema.token_usage import TokenUsage

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)


async def run_agent(
    ctx: RunContext,
    agent_call: Callable[..., tuple[str, OutputT, TokenUsage]],
    *args,
    **kwargs,
) -> OutputT | None:
    """Run a blocking agent call off the event loop.

    Returns None when the budget is spent or the reasoning service failed or
    answered with nothing parseable; callers treat that as low confidence.
    """
    try:
        ctx.budget.consume()
    except ReasoningBudgetExceeded as e:
        logger.warning(f"Skipping {agent_call.__qualname__}: {e.message}")
        return None

    try:
        final_prompt, response, token_usage = await asyncio.to_thread(
            agent_call, *args, **kwargs
        )
    except Exception as e:
        logger.error(f"Error in {agent_call.__qualname__}: {e}")
        return None

    ctx.add_token_usage(token_usage)
    logger.debug(f"{agent_call.__qualname__} prompt: {final_prompt[:500]}")
    return response
