import logging
from typing import Optional

from pydantic import BaseModel, Field

from vendorwatch.inference.agents.visual_locator.prompt import system_prompt
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.schema.token_usage import TokenUsage

logger = logging.getLogger(__name__)


class LocatedElement(BaseModel):
    role: str
    ref: str | None = None
    selector: str | None = None
    label: str | None = Field(
        default=None,
        description="Visible label or placeholder when no snapshot reference fits.",
    )


class VisualLocatorOutput(BaseModel):
    elements: list[LocatedElement] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class VisualLocatorAgent:
    def __init__(self, model: LLMModel):
        self.model = model

    def locate_elements(
        self,
        form_kind: str,
        roles: tuple[str, ...],
        snapshot: str,
        screenshot: Optional[str] = None,
    ) -> tuple[str, VisualLocatorOutput, TokenUsage]:

        final_prompt = f"""
        [INPUT]
        Form: {form_kind}
        Roles: {", ".join(roles)}

        [SNAPSHOT]
        {snapshot}
        [/SNAPSHOT]

        [/INPUT]
        """

        response, token_usage = self.model.get_model_response_with_structured_output(
            prompt=final_prompt,
            response_schema=VisualLocatorOutput,
            screenshot=screenshot,
            system_instruction=system_prompt,
        )

        return final_prompt, response, token_usage
