from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator

FormKind = Literal["login", "search"]
SpecMode = Literal["dom", "api", "hybrid"]

LOGIN_ROLES: tuple[str, ...] = ("username", "password", "login_button")
SEARCH_ROLES: tuple[str, ...] = ("search_input", "search_button")

REQUIRED_ROLES: dict[str, tuple[str, ...]] = {
    "login": LOGIN_ROLES,
    "search": SEARCH_ROLES,
}

SUBMIT_ROLES: dict[str, str] = {
    "login": "login_button",
    "search": "search_button",
}


class FormSpec(BaseModel):
    # role -> selector, e.g. {"username": "input[name='userId']"}
    selectors: dict[str, str] = Field(default_factory=dict)
    result_table_selector: str | None = None
    result_row_selector: str | None = None

    def roles_for(self, kind: FormKind) -> dict[str, str]:
        return {
            role: selector
            for role, selector in self.selectors.items()
            if role in REQUIRED_ROLES[kind]
        }


class ApiSpec(BaseModel):
    endpoint: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    content_type: str | None = None
    params: list[str] | None = None
    # request field name -> input name it is filled from, e.g. {"carNo": "query"}
    request_fields: dict[str, str] | None = None
    response_fields: list[str] = Field(default_factory=list)


class SuccessIndicators(BaseModel):
    url_pattern: str | None = None
    element_selector: str | None = None
    cookie_name: str | None = None
    no_result_text: str | None = None


class LocatorHints(BaseModel):
    """Vendor specific selectors recorded by an operator or a previous run."""

    selectors: dict[str, str] = Field(default_factory=dict)
    submit_text: str | None = None


class VendorSpec(BaseModel):
    system_code: str
    url: str
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 1
    mode: SpecMode = "dom"
    form: FormSpec | None = None
    api: ApiSpec | None = None
    success_indicators: SuccessIndicators = Field(default_factory=SuccessIndicators)
    hints: dict[FormKind, LocatorHints] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_mode(self):
        if self.mode == "api" and self.api is None:
            raise ValueError("api must be provided when mode is 'api'")
        if self.version < 1:
            raise ValueError("version must be >= 1")
        return self
