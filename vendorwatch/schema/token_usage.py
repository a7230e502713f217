from pydantic import BaseModel


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    tool_use_tokens: int = 0
    thoughts_tokens: int = 0
    total_tokens: int = 0
    calculated_total_tokens: int = 0

    input_cost: float = 0.0
    output_cost: float = 0.0
    tool_use_cost: float = 0.0
    thoughts_cost: float = 0.0
    total_cost: float = 0.0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            **{
                field: getattr(self, field) + getattr(other, field)
                for field in TokenUsage.model_fields
            }
        )
