import ast
import logging
import re
import time
from enum import Enum, unique
from typing import Optional

import tokencost.costs
from pydantic import BaseModel

from vendorwatch.exceptions import ReasoningServiceException
from vendorwatch.schema.token_usage import TokenUsage
from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)


@unique
class GeminiModels(Enum):
    GEMINI_2_0_FLASH = "gemini-2.0-flash"
    GEMINI_2_5_FLASH = "gemini-2.5-flash"
    GEMINI_2_5_FLASH_LITE = "gemini-2.5-flash-lite"
    GEMINI_2_5_PRO = "gemini-2.5-pro"


class LLMModel:
    max_retries = 3

    def __init__(self, model_name: GeminiModels, use_structured_output: bool):

        self.model_name = model_name
        self.use_structured_output = use_structured_output

    def _get_model_response(
        self, prompt: str, system_instruction: Optional[str] = None
    ) -> tuple[str, TokenUsage]:
        raise NotImplementedError("This method should be implemented by subclasses.")

    def _get_model_response_with_structured_output(
        self,
        prompt: str,
        response_schema: type[BaseModel],
        screenshot: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ) -> tuple[BaseModel | None, TokenUsage]:
        raise NotImplementedError("This method should be implemented by subclasses.")

    def _backoff(self, attempt: int):
        if attempt < self.max_retries - 1:
            logger.info(f"Retrying... {attempt + 1}/{self.max_retries}")
            time.sleep(settings.LLM_RETRY_DELAY_SECONDS)

    def get_model_response(
        self, prompt: str, system_instruction: Optional[str] = None
    ) -> tuple[str, TokenUsage]:

        last_error = ""
        for attempt in range(self.max_retries):
            try:
                return self._get_model_response(prompt, system_instruction)
            except Exception as e:
                logger.error(f"Reasoning service error: {e}")
                last_error = str(e)
            self._backoff(attempt)
        raise ReasoningServiceException(
            f"Max retries exceeded for {self.model_name.value}: {last_error}",
            self.max_retries,
        )

    def get_model_response_with_structured_output(
        self,
        prompt: str,
        response_schema: type[BaseModel],
        screenshot: Optional[str] = None,
        system_instruction: Optional[str] = None,
    ) -> tuple[BaseModel, TokenUsage]:
        """Ask for one ``response_schema`` answer, retrying empty or failed calls."""

        total_token_usage = TokenUsage()
        last_error = "no parseable answer"
        for attempt in range(self.max_retries):
            try:
                parsed_response, token_usage = (
                    self._get_model_response_with_structured_output(
                        prompt=prompt,
                        response_schema=response_schema,
                        screenshot=screenshot,
                        system_instruction=system_instruction,
                    )
                )
                total_token_usage += token_usage
                if parsed_response is not None:
                    return parsed_response, total_token_usage
            except Exception as e:
                logger.error(f"Reasoning service error for {response_schema.__name__}: {e}")
                last_error = str(e)
            self._backoff(attempt)

        raise ReasoningServiceException(
            f"Max retries exceeded for {response_schema.__name__}: {last_error}",
            self.max_retries,
        )

    def extract_json_objects(self, text: str) -> list[str]:
        stack = []
        json_candidates = []

        # outermost objects close last, so they are appended after their children
        for i, char in enumerate(text):
            if char == "{":
                stack.append(i)
            elif char == "}" and stack:
                start = stack.pop()
                json_candidates.append(text[start : i + 1])

        return json_candidates

    def parse_from_completion(
        self, content: str, response_schema: type[BaseModel]
    ) -> BaseModel:
        json_blocks = re.findall(r"```(?:json)?\s*\n(.*?)\n\s*```", content, re.DOTALL)
        json_blocks += self.extract_json_objects(content)
        for block in json_blocks:
            block = block.strip()
            try:
                return response_schema.model_validate_json(block)
            except Exception:
                try:
                    block_dict = ast.literal_eval(block)
                    return response_schema.model_validate(block_dict)
                except Exception:
                    continue

        raise ValueError("Could not parse response from completion.")

    def get_token_usage(
        self,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        tool_use_tokens: int | None = None,
        thoughts_tokens: int | None = None,
        total_tokens: Optional[int] = None,
    ) -> TokenUsage:
        input_tokens = input_tokens or 0
        output_tokens = output_tokens or 0
        tool_use_tokens = tool_use_tokens or 0
        thoughts_tokens = thoughts_tokens or 0
        total_tokens = total_tokens or 0

        def cost(num_tokens: int, token_type: str) -> float:
            return float(
                tokencost.costs.calculate_cost_by_tokens(
                    model=self.model_name.value,
                    num_tokens=num_tokens,
                    token_type=token_type,
                )
            )

        input_cost = cost(input_tokens, "input")
        output_cost = cost(output_tokens, "output")
        tool_use_cost = cost(tool_use_tokens, "output")
        thoughts_cost = cost(thoughts_tokens, "output")
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            tool_use_tokens=tool_use_tokens,
            thoughts_tokens=thoughts_tokens,
            total_tokens=total_tokens,
            calculated_total_tokens=input_tokens
            + output_tokens
            + tool_use_tokens
            + thoughts_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
            tool_use_cost=tool_use_cost,
            thoughts_cost=thoughts_cost,
            total_cost=input_cost + output_cost + tool_use_cost + thoughts_cost,
        )
