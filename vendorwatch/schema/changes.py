from typing import Any, Literal

from pydantic import BaseModel, Field

from vendorwatch.schema.network import CapturedRequest

ChangeType = Literal["dom", "api", "both"]


class ResponseSchema(BaseModel):
    type: Literal["object", "array", "primitive", "empty"]
    fields: list[str] = Field(default_factory=list)
    sample: Any = None


class CapturedApiSchema(BaseModel):
    """Best-effort description of the request a vendor page actually made.

    Advisory only: handed to the fix generator as context, never compared.
    """

    endpoint: str
    method: str
    query_params: dict[str, str] = Field(default_factory=dict)
    request_fields: dict[str, str] = Field(default_factory=dict)
    response: ResponseSchema | None = None


class ChangeSet(BaseModel):
    has_changes: bool = False
    change_type: ChangeType | None = None
    changes: list[str] = Field(default_factory=list)
    breaking: bool = False
    warnings: list[str] = Field(default_factory=list)
    captured_api_schema: CapturedApiSchema | None = None


class ObservedContract(BaseModel):
    # role -> selector observed on the live page
    selectors: dict[str, str] = Field(default_factory=dict)
    requests: list[CapturedRequest] = Field(default_factory=list)


class DiffConfig(BaseModel):
    endpoint_match_threshold: float = 0.6
    ignored_methods: tuple[str, ...] = ("OPTIONS", "HEAD")
    sample_items: int = 1

    @classmethod
    def from_settings(cls) -> "DiffConfig":
        from vendorwatch.utils.settings import settings

        return cls(endpoint_match_threshold=settings.ENDPOINT_MATCH_THRESHOLD)
