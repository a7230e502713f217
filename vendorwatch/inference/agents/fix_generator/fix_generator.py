import json
import logging

from pydantic import BaseModel

from vendorwatch.inference.agents.fix_generator.prompt import system_prompt
from vendorwatch.inference.models.llm_model import LLMModel
from vendorwatch.schema.changes import ChangeSet
from vendorwatch.schema.token_usage import TokenUsage

logger = logging.getLogger(__name__)


class FixGeneratorOutput(BaseModel):
    fixed_code: str
    commit_message: str
    pr_title: str
    pr_body: str


class FixGeneratorAgent:
    def __init__(self, model: LLMModel):
        self.model = model

    def generate_fix(
        self, file_path: str, source: str, change_set: ChangeSet
    ) -> tuple[str, FixGeneratorOutput, TokenUsage]:

        captured_schema = (
            json.dumps(
                change_set.captured_api_schema.model_dump(mode="json"),
                indent=2,
                default=str,
            )
            if change_set.captured_api_schema
            else "none"
        )
        changes = "\n".join(f"- {change}" for change in change_set.changes)

        final_prompt = f"""
        [INPUT]
        File: {file_path}

        [CHANGES]
        {changes}
        [/CHANGES]

        [CAPTURED_API_SCHEMA]
        {captured_schema}
        [/CAPTURED_API_SCHEMA]

        [SOURCE]
        {source}
        [/SOURCE]

        [/INPUT]
        """

        response, token_usage = self.model.get_model_response_with_structured_output(
            prompt=final_prompt,
            response_schema=FixGeneratorOutput,
            system_instruction=system_prompt,
        )

        return final_prompt, response, token_usage
