from .llm_model import GeminiModels, LLMModel


def get_llm_model(model_name: GeminiModels, use_structured_output: bool) -> LLMModel:
    if isinstance(model_name, GeminiModels):
        from .gemini import Gemini

        return Gemini(model_name, use_structured_output)

    raise ValueError(f"Invalid model type: {model_name}")
