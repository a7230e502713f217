"""
Webhook receiver for upstream failure alerts.

A scraper that fails on a vendor posts a FailureAlert; the receiver looks the
vendor up in the registry and runs a full drift analysis for it.
"""

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from uvicorn import run

from vendorwatch.inference.models import GeminiModels, get_llm_model
from vendorwatch.integrations.notifier import SlackNotifier
from vendorwatch.integrations.source_control import GitHubSourceControl
from vendorwatch.orchestrator import AnalysisOrchestrator
from vendorwatch.schema.results import AnalysisInput
from vendorwatch.stores.credential_store import EnvCredentialStore
from vendorwatch.stores.spec_store import SpecStore
from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)


class FailureAlert(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vendor_id: str = Field(alias="vendorId", min_length=1)
    vehicle_number: str | None = Field(default=None, alias="vehicleNumber")
    failed_step: Literal["login", "search", "apply", "verify"] = Field(
        alias="failedStep"
    )
    error_message: str = Field(alias="errorMessage")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VendorTarget(BaseModel):
    system_code: str
    url: str
    search_query: str | None = None
    path_params: dict[str, str] = Field(default_factory=dict)


def load_vendors(path: Path) -> dict[str, VendorTarget]:
    with open(path) as f:
        raw = json.load(f)
    return {
        vendor_id: VendorTarget.model_validate(target)
        for vendor_id, target in raw.items()
    }


def describe_validation_error(e: ValidationError) -> str:
    problems = []
    for error in e.errors():
        location = ".".join(str(part) for part in error["loc"]) or "body"
        problems.append(f"{location}: {error['msg']}")
    return "Invalid alert: " + "; ".join(problems)


def create_app(
    orchestrator: AnalysisOrchestrator, vendors: dict[str, VendorTarget]
) -> FastAPI:
    app = FastAPI(title="Vendorwatch Alert Receiver")

    @app.get("/health", tags=["info"])
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "vendors_count": len(vendors),
        }

    @app.post("/webhook/alert", tags=["alerts"])
    async def receive_alert(payload: dict = Body(...)):
        try:
            alert = FailureAlert.model_validate(payload)
        except ValidationError as e:
            return JSONResponse(
                status_code=400, content={"error": describe_validation_error(e)}
            )

        target = vendors.get(alert.vendor_id)
        if target is None:
            return JSONResponse(
                status_code=404,
                content={"error": f"Unknown vendor: {alert.vendor_id}"},
            )

        logger.info(
            f"Processing {alert.failed_step} alert for vendor {alert.vendor_id}: "
            f"{alert.error_message}"
        )
        try:
            result = await orchestrator.run(
                AnalysisInput(
                    vendor_id=alert.vendor_id,
                    system_code=target.system_code,
                    url=target.url,
                    search_query=alert.vehicle_number or target.search_query,
                    path_params=target.path_params,
                )
            )
        except Exception as e:
            logger.error(f"Analysis for vendor {alert.vendor_id} failed: {e}")
            return JSONResponse(status_code=500, content={"error": str(e)})

        return {
            "success": True,
            "vendorId": alert.vendor_id,
            "result": result.model_dump(mode="json", exclude_none=True),
        }

    return app


def main():
    parser = argparse.ArgumentParser(description="Receive failure alerts over HTTP")
    parser.add_argument(
        "--vendors",
        type=Path,
        required=True,
        help="JSON file mapping vendor id to system_code and url",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=9001)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    source_control = None
    if settings.GITHUB_TOKEN and settings.GITHUB_REPOSITORY:
        source_control = GitHubSourceControl()

    orchestrator = AnalysisOrchestrator(
        spec_store=SpecStore(),
        credential_store=EnvCredentialStore(),
        llm=get_llm_model(GeminiModels(settings.LLM_MODEL), True),
        source_control=source_control,
        notifier=SlackNotifier(),
    )
    app = create_app(orchestrator, load_vendors(args.vendors))
    run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
