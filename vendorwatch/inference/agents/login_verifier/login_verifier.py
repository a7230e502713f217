import logging

from pydantic import BaseModel, Field

from vendorwatch.inference.agents.login_verifier.prompt import system_prompt
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.schema.token_usage import TokenUsage

logger = logging.getLogger(__name__)


class LoginVerifierOutput(BaseModel):
    logged_in: bool
    invalid_credentials: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str = ""


class LoginVerifierAgent:
    def __init__(self, model: LLMModel):
        self.model = model

    def verify_login(
        self, url_before: str, url_after: str, snapshot: str
    ) -> tuple[str, LoginVerifierOutput, TokenUsage]:

        final_prompt = f"""
        [INPUT]
        URL before submit: {url_before}
        URL after submit: {url_after}

        [SNAPSHOT]
        {snapshot}
        [/SNAPSHOT]

        [/INPUT]
        """

        response, token_usage = self.model.get_model_response_with_structured_output(
            prompt=final_prompt,
            response_schema=LoginVerifierOutput,
            system_instruction=system_prompt,
        )

        return final_prompt, response, token_usage
