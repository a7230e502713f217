from typing import Literal

from pydantic import BaseModel, Field

from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.session import SessionInfo
from vendorwatch.schema.token_usage import TokenUsage

SearchStatus = Literal[
    "SUCCESS",
    "NOT_FOUND",
    "FORM_NOT_FOUND",
    "FORM_CHANGED",
    "CONNECTION_ERROR",
    "SESSION_EXPIRED",
    "TIMEOUT_ERROR",
    "API_CHANGED",
    "UNKNOWN_ERROR",
    "NEEDS_REVIEW",
]

LoginStatus = Literal[
    "SUCCESS",
    "INVALID_CREDENTIALS",
    "FORM_NOT_FOUND",
    "FORM_CHANGED",
    "CONNECTION_ERROR",
    "SESSION_EXPIRED",
    "TIMEOUT_ERROR",
    "API_CHANGED",
    "UNKNOWN_ERROR",
    "NEEDS_REVIEW",
]

PatchStatus = Literal["SUCCESS", "FAILED", "NEEDS_REVIEW"]


class LoginResult(BaseModel):
    status: LoginStatus
    confidence: float = 0.0
    message: str | None = None
    session: SessionInfo | None = None
    change_set: ChangeSet | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class SearchResult(BaseModel):
    status: SearchStatus
    confidence: float = 0.0
    message: str | None = None
    data: list[dict] = Field(default_factory=list)
    change_set: ChangeSet | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class PatchResult(BaseModel):
    status: PatchStatus
    message: str | None = None
    pr_url: str | None = None
    pr_number: int | None = None
    branch_name: str | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class AnalysisInput(BaseModel):
    vendor_id: str
    system_code: str
    url: str
    search_query: str | None = None
    # values for templated path segments, e.g. {"siteId": "9981"}
    path_params: dict[str, str] = Field(default_factory=dict)


class AnalysisResult(BaseModel):
    action: Literal["completed", "pr_created", "notified", "needs_review"]
    message: str
    pr_url: str | None = None
    login: LoginResult | None = None
    search: SearchResult | None = None
    patch: PatchResult | None = None
    spec_version: int | None = None
