import logging
import os
from pathlib import Path

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

env_path = os.getenv("ENV_PATH")
if not env_path:
    logger.warning("ENV_PATH is not set, using default values")


class Settings(BaseSettings):
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_RETRY_DELAY_SECONDS: float = 5.0

    SPEC_STORE_DIRECTORY: Path = Path("/tmp/vendorwatch/specs")
    RUNS_DIRECTORY: Path = Path("/tmp/vendorwatch/runs")
    SAVE_RUN_ARTIFACTS: bool = True

    HEADLESS: bool = True

    # Empirical, vendor specific. There is no reliable cross-vendor
    # "network idle" signal, so this is a tunable and not a guarantee.
    SETTLE_DELAY_SECONDS: float = 3.0
    DIALOG_DISMISS_DELAY_SECONDS: float = 0.2
    MAX_ACTION_ATTEMPTS: int = 3

    MAX_WORKFLOW_STEPS: int = 25
    MAX_REASONING_CALLS: int = 12

    ENDPOINT_MATCH_THRESHOLD: float = 0.6
    CAPTURE_BODY_PREVIEW_CHARS: int = 500

    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: str | None = None
    GITHUB_REPOSITORY: str | None = None
    GITHUB_BASE_BRANCH: str = "main"
    PATCH_TARGET_TEMPLATE: str = "src/vendors/{system_code}/search.py"

    SLACK_WEBHOOK_URL: str | None = None

    class Config:
        env_file = env_path if env_path else None
        extra = "allow"


settings = Settings()
