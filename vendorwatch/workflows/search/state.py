from enum import Enum, unique
from typing import Literal

from pydantic import Field

from vendorwatch.inference.graph.engine import WorkflowState
from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.elements import ElementRef
from vendorwatch.schema.errors import ConnectionErrorInfo
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.session import SessionInfo
from vendorwatch.schema.spec import VendorSpec

SearchOutcome = Literal["SUCCESS", "NOT_FOUND", "API_CHANGED", "NEEDS_REVIEW"]


@unique
class SearchStep(Enum):
    LOAD_SPEC = "load_spec"
    LOCATE = "locate"
    EXECUTE_DOM = "execute_dom"
    EXECUTE_API = "execute_api"
    CAPTURE_RESULTS = "capture_results"
    COMPARE_SPEC = "compare_spec"


class SearchState(WorkflowState):
    system_code: str
    url: str
    query: str
    path_params: dict[str, str] = Field(default_factory=dict)
    session: SessionInfo | None = None

    spec: VendorSpec | None = None
    snapshot: str | None = None

    form_elements: dict[str, ElementRef] = Field(default_factory=dict)
    locate_source: str | None = None
    search_method: Literal["dom", "api"] | None = None
    observed_selectors: dict[str, str] = Field(default_factory=dict)

    capture_since: float | None = None
    captured_requests: list[CapturedRequest] = Field(default_factory=list)
    api_response_status: int | None = None

    # result of the search itself; becomes ``status`` in compare_spec
    outcome: SearchOutcome | None = None
    outcome_message: str | None = None
    outcome_confidence: float = 0.0
    result_data: list[dict] = Field(default_factory=list)

    connection_error: ConnectionErrorInfo | None = None
    change_set: ChangeSet | None = None
