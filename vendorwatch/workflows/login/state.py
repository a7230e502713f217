from enum import Enum, unique

from pydantic import Field

from vendorwatch.inference.graph.engine import WorkflowState
from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.elements import ElementRef
from vendorwatch.schema.errors import ConnectionErrorInfo
from vendorwatch.schema.network import CapturedRequest
from vendorwatch.schema.session import SessionInfo
from vendorwatch.schema.spec import VendorSpec


@unique
class LoginStep(Enum):
    LOAD_SPEC = "load_spec"
    NAVIGATE = "navigate"
    LOCATE = "locate"
    FILL = "fill"
    SUBMIT = "submit"
    VERIFY = "verify"
    EXTRACT_SESSION = "extract_session"


class LoginState(WorkflowState):
    system_code: str
    url: str

    spec: VendorSpec | None = None
    snapshot: str | None = None
    current_url: str | None = None
    url_before_submit: str | None = None

    form_elements: dict[str, ElementRef] = Field(default_factory=dict)
    locate_source: str | None = None
    observed_selectors: dict[str, str] = Field(default_factory=dict)

    capture_installed: bool = False
    capture_since: float | None = None
    captured_requests: list[CapturedRequest] = Field(default_factory=list)

    credentials_filled: bool = False
    login_clicked: bool = False
    submit_message: str | None = None
    login_verified: bool = False

    connection_error: ConnectionErrorInfo | None = None
    change_set: ChangeSet | None = None
    session: SessionInfo | None = None
