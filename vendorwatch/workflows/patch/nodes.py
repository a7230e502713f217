import logging
import time

from vendorwatch.inference.agents.fix_generator.fix_generator import (
    FixGeneratorAgent,
)
from vendorwatch.inference.agents.runner import run_agent
from vendorwatch.inference.graph.context import RunContext
from vendorwatch.workflows.patch.state import PatchState

logger = logging.getLogger(__name__)


async def load_code(state: PatchState, ctx: RunContext) -> dict:
    if ctx.source_control is None:
        return {"status": "FAILED", "error_message": "No source control configured"}

    file_path = ctx.settings.PATCH_TARGET_TEMPLATE.format(
        system_code=state.system_code
    )
    try:
        source_file = await ctx.source_control.get_file(file_path)
    except ValueError as e:
        logger.error(f"Could not load {file_path}: {e}")
        return {"status": "FAILED", "file_path": file_path, "error_message": str(e)}

    if source_file is None:
        return {
            "status": "FAILED",
            "file_path": file_path,
            "error_message": f"{file_path} does not exist",
        }
    return {"file_path": file_path, "source_file": source_file}


async def generate_fix(state: PatchState, ctx: RunContext) -> dict:
    if ctx.llm is None:
        return {"status": "FAILED", "error_message": "No reasoning model configured"}

    fix = await run_agent(
        ctx,
        FixGeneratorAgent(ctx.llm).generate_fix,
        state.file_path,
        state.source_file.content,
        state.change_set,
    )
    if fix is None or not fix.fixed_code.strip():
        return {"status": "FAILED", "error_message": "Fix generator gave no usable fix"}

    if fix.fixed_code.strip() == state.source_file.content.strip():
        return {
            "status": "NEEDS_REVIEW",
            "fix": fix,
            "error_message": "Fix generator left the code unchanged",
        }
    return {"fix": fix}


async def open_pr(state: PatchState, ctx: RunContext) -> dict:
    branch_name = f"fix/{state.system_code}-drift-{int(time.time())}"
    try:
        pull_request = await ctx.source_control.open_pull_request(
            branch_name=branch_name,
            file=state.source_file,
            new_content=state.fix.fixed_code,
            commit_message=state.fix.commit_message,
            title=state.fix.pr_title,
            body=state.fix.pr_body,
        )
    except ValueError as e:
        logger.error(f"Could not open pull request for {state.system_code}: {e}")
        return {
            "status": "FAILED",
            "branch_name": branch_name,
            "error_message": str(e),
        }

    return {
        "status": "SUCCESS",
        "confidence": 1.0,
        "branch_name": pull_request.branch_name,
        "pr_url": pull_request.url,
        "pr_number": pull_request.number,
    }
