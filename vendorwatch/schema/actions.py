from typing import Any, Literal

from pydantic import BaseModel, Field


class ApiCall(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    params: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | None = None
    content_type: str | None = None


class ActionResult(BaseModel):
    success: bool
    message: str = ""
    attempts: int = 0
    response_status: int | None = None
    response_body: Any = None
