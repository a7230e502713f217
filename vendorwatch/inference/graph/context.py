import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vendorwatch.exceptions import ReasoningBudgetExceeded
from vendorwatch.inference.infra.tool_client import ToolClient
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.schema.token_usage import TokenUsage
from vendorwatch.stores.credential_store import CredentialStore
from vendorwatch.stores.spec_store import SpecStore
from vendorwatch.utils.settings import Settings, settings

if TYPE_CHECKING:
    from vendorwatch.integrations.source_control import SourceControl

logger = logging.getLogger(__name__)


class ReasoningBudget:
    def __init__(self, max_calls: int):
        self.max_calls = max_calls
        self.used = 0
        self.overrun = False

    @property
    def exhausted(self) -> bool:
        return self.used >= self.max_calls

    def consume(self) -> None:
        if self.exhausted:
            self.overrun = True
            raise ReasoningBudgetExceeded(
                f"Reasoning budget of {self.max_calls} calls exhausted",
                self.used,
                self.max_calls,
            )
        self.used += 1


@dataclass
class RunContext:
    """Collaborators handed to every step of a workflow run."""

    vendor_id: str
    llm: LLMModel | None
    spec_store: SpecStore
    tools: ToolClient | None = None
    credential_store: CredentialStore | None = None
    source_control: "SourceControl | None" = None
    settings: Settings = field(default_factory=lambda: settings)
    run_id: str | None = None
    step_index: int = 0
    budget: ReasoningBudget | None = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    def __post_init__(self):
        if self.budget is None:
            self.budget = ReasoningBudget(self.settings.MAX_REASONING_CALLS)

    def add_token_usage(self, token_usage: TokenUsage | None) -> None:
        if token_usage is not None:
            self.token_usage += token_usage
