import json
import logging
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import BaseModel

from vendorwatch.inference.graph.context import RunContext
from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)

# Page captures and session material stay out of the per-step artifacts.
EXCLUDED_STATE_FIELDS = {"snapshot", "screenshot", "session"}


def run_directory(run_id: str, runs_directory: Path | None = None) -> Path:
    return Path(runs_directory or settings.RUNS_DIRECTORY) / run_id


def attach_run_log_handler(
    run_id: str, runs_directory: Path | None = None
) -> logging.FileHandler:
    directory = run_directory(run_id, runs_directory)
    directory.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(str(directory / "run.log"))
    file_handler.setLevel(logging.DEBUG)

    current_module = __name__.split(".")[0]  # top-level module/package
    logging.getLogger(current_module).addHandler(file_handler)
    logging.getLogger("browser_use").setLevel(logging.INFO)
    return file_handler


def detach_run_log_handler(file_handler: logging.FileHandler):
    current_module = __name__.split(".")[0]
    logging.getLogger(current_module).removeHandler(file_handler)
    file_handler.close()


async def save_step_state(step: str, state: BaseModel, ctx: RunContext):
    if not ctx.settings.SAVE_RUN_ARTIFACTS or ctx.run_id is None:
        return

    ctx.step_index += 1
    step_directory = (
        run_directory(ctx.run_id, ctx.settings.RUNS_DIRECTORY)
        / type(state).__name__
        / f"step_{ctx.step_index}_{step.lower()}"
    )
    await aiofiles.os.makedirs(step_directory, exist_ok=True)

    state_dict = state.model_dump(mode="json", exclude=EXCLUDED_STATE_FIELDS)
    state_dict["reasoning_calls"] = ctx.budget.used
    state_dict["token_usage"] = ctx.token_usage.model_dump()

    async with aiofiles.open(step_directory / "state.json", "w") as f:
        await f.write(json.dumps(state_dict, indent=4, default=str))

    snapshot = getattr(state, "snapshot", None)
    if snapshot:
        async with aiofiles.open(step_directory / "snapshot.txt", "w") as f:
            await f.write(snapshot)
