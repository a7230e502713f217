import argparse
import asyncio
import json
import logging
import os

from vendorwatch.inference.models import GeminiModels, get_llm_model
from vendorwatch.integrations.notifier import SlackNotifier
from vendorwatch.integrations.source_control import GitHubSourceControl
from vendorwatch.orchestrator import AnalysisOrchestrator
from vendorwatch.schema.results import AnalysisInput
from vendorwatch.stores.credential_store import InMemoryCredentialStore
from vendorwatch.stores.spec_store import SpecStore
from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check one vendor for drift")
    parser.add_argument("--vendor-id", required=True)
    parser.add_argument("--system-code", required=True)
    parser.add_argument("--url", required=True)
    parser.add_argument("--query", default=None)
    parser.add_argument(
        "--path-param",
        action="append",
        default=[],
        help="templated path value as name=value, repeatable",
    )
    return parser.parse_args()


async def main():
    args = parse_args()

    # credentials come from the environment, never from the command line
    credential_store = InMemoryCredentialStore()
    for field_name in ("username", "password"):
        value = os.getenv(f"VENDORWATCH_{field_name.upper()}")
        if value:
            credential_store.set_field(args.vendor_id, field_name, value)

    source_control = None
    if settings.GITHUB_TOKEN and settings.GITHUB_REPOSITORY:
        source_control = GitHubSourceControl()

    orchestrator = AnalysisOrchestrator(
        spec_store=SpecStore(),
        credential_store=credential_store,
        llm=get_llm_model(GeminiModels(settings.LLM_MODEL), True),
        source_control=source_control,
        notifier=SlackNotifier(),
    )
    result = await orchestrator.run(
        AnalysisInput(
            vendor_id=args.vendor_id,
            system_code=args.system_code,
            url=args.url,
            search_query=args.query,
            path_params=dict(param.split("=", 1) for param in args.path_param),
        )
    )
    print(json.dumps(result.model_dump(mode="json", exclude_none=True), indent=2))


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
