import logging

from pydantic import BaseModel, Field

from vendorwatch.inference.agents.result_analyzer.prompt import system_prompt
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.schema.token_usage import TokenUsage

logger = logging.getLogger(__name__)


class ResultAnalyzerOutput(BaseModel):
    found: bool
    rows: list[dict[str, str]] = Field(default_factory=list)
    no_result_message: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ResultAnalyzerAgent:
    def __init__(self, model: LLMModel):
        self.model = model

    def analyze_results(
        self, query: str, snapshot: str
    ) -> tuple[str, ResultAnalyzerOutput, TokenUsage]:

        final_prompt = f"""
        [INPUT]
        Query: {query}

        [SNAPSHOT]
        {snapshot}
        [/SNAPSHOT]

        [/INPUT]
        """

        response, token_usage = self.model.get_model_response_with_structured_output(
            prompt=final_prompt,
            response_schema=ResultAnalyzerOutput,
            system_instruction=system_prompt,
        )

        return final_prompt, response, token_usage
