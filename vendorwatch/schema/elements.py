from typing import Literal

from pydantic import BaseModel, Field

LocateOutcome = Literal["found", "not_found"]
LocateSource = Literal["structural", "visual", "hinted", "spec_fallback"]


class ElementRef(BaseModel):
    ref: str | None = None
    selector: str | None = None

    @property
    def resolved(self) -> bool:
        return bool(self.ref or self.selector)


class LocateResult(BaseModel):
    outcome: LocateOutcome
    refs: dict[str, ElementRef] = Field(default_factory=dict)
    confidence: float = 0.0
    source: LocateSource | None = None
    method: Literal["dom", "api"] = "dom"
    # role -> selector as seen on the live page, used for drift comparison
    observed_selectors: dict[str, str] = Field(default_factory=dict)
    reason: str | None = None

    def missing_roles(self, roles: tuple[str, ...]) -> list[str]:
        return [
            role for role in roles if role not in self.refs or not self.refs[role].resolved
        ]

    @classmethod
    def not_found(cls, source: LocateSource, reason: str) -> "LocateResult":
        return cls(outcome="not_found", source=source, reason=reason)
