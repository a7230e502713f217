import base64
import logging
import os
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel

from .llm_model import GeminiModels, LLMModel, TokenUsage

logger = logging.getLogger(__name__)


class Gemini(LLMModel):

    def __init__(self, model_name: GeminiModels, use_structured_output: bool):
        super().__init__(model_name, use_structured_output)

        self.api_key = os.environ["GOOGLE_API_KEY"]
        try:
            self.client = genai.Client(api_key=self.api_key)
            self.client.models.list()
        except Exception as e:
            raise ValueError("Invalid GOOGLE_API_KEY") from e

    def _usage(self, response) -> TokenUsage:
        return self.get_token_usage(
            input_tokens=response.usage_metadata.prompt_token_count,
            output_tokens=response.usage_metadata.candidates_token_count,
            tool_use_tokens=response.usage_metadata.tool_use_prompt_token_count,
            thoughts_tokens=response.usage_metadata.thoughts_token_count,
            total_tokens=response.usage_metadata.total_token_count,
        )

    def _get_model_response_with_structured_output(
        self,
        prompt: str,
        response_schema: type[BaseModel],
        screenshot: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ) -> tuple[BaseModel | None, TokenUsage]:

        contents = prompt
        if screenshot is not None:
            contents = [
                types.Part.from_bytes(
                    data=base64.b64decode(screenshot),
                    mime_type="image/png",
                ),
                prompt,
            ]

        if self.use_structured_output:
            response = self.client.models.generate_content(
                model=self.model_name.value,
                contents=contents,
                config={
                    "response_mime_type": "application/json",
                    "system_instruction": system_instruction,
                    "response_json_schema": response_schema.model_json_schema(),
                },
            )
            if isinstance(response.parsed, BaseModel):
                parsed_response = response.parsed
            else:
                parsed_response = response_schema.model_validate(response.parsed)
        else:
            response = self.client.models.generate_content(
                model=self.model_name.value,
                contents=contents,
                config={"system_instruction": system_instruction},
            )
            try:
                parsed_response = self.parse_from_completion(
                    response.candidates[0].content.parts[0].text, response_schema
                )
            except ValueError as e:
                logger.warning(f"Unparseable completion: {e}")
                parsed_response = None

        return parsed_response, self._usage(response)

    def _get_model_response(
        self, prompt: str, system_instruction: Optional[str] = None
    ) -> tuple[str, TokenUsage]:

        response = self.client.models.generate_content(
            model=self.model_name.value,
            contents=prompt,
            config={"system_instruction": system_instruction},
        )
        return response.candidates[0].content.parts[0].text, self._usage(response)
