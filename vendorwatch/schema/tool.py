from typing import Literal

from pydantic import BaseModel, Field


class ToolContent(BaseModel):
    type: Literal["text", "image"] = "text"
    text: str | None = None
    data: str | None = None  # base64 payload for images
    mime_type: str | None = None


class ToolResult(BaseModel):
    content: list[ToolContent] = Field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        return "\n".join(c.text or "" for c in self.content if c.type == "text")

    @property
    def image(self) -> str | None:
        for c in self.content:
            if c.type == "image" and c.data:
                return c.data
        return None

    @classmethod
    def from_text(cls, text: str, is_error: bool = False) -> "ToolResult":
        return cls(content=[ToolContent(type="text", text=text)], is_error=is_error)
