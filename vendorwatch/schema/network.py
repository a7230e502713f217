from typing import Any

from pydantic import BaseModel, Field


class CapturedRequest(BaseModel):
    url: str = Field(...)
    method: str = Field(default="GET")
    request_body: dict | str | None | Any = Field(default=None)
    response_status: int = Field(default=0)
    response_body: dict | list | str | None | Any = Field(default=None)
    timestamp: float = Field(default=0)
    source: str | None = Field(default=None)
