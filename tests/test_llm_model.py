import pytest
from pydantic import BaseModel

from tests.conftest import ScriptedLLM
from vendorwatch.exceptions import ReasoningServiceException
from vendorwatch.inference.agents.login_verifier.login_verifier import (
    LoginVerifierAgent,
    LoginVerifierOutput,
)
from vendorwatch.inference.agents.runner import run_agent


class Answer(BaseModel):
    found: bool
    confidence: float


@pytest.fixture
def llm():
    return ScriptedLLM()


def test_parses_fenced_block(llm):
    content = 'Sure.\n```json\n{"found": true, "confidence": 0.8}\n```\nDone.'
    assert llm.parse_from_completion(content, Answer) == Answer(found=True, confidence=0.8)


def test_parses_bare_object_inside_prose(llm):
    content = 'I think {"found": false, "confidence": 0.4} is right.'
    assert llm.parse_from_completion(content, Answer).found is False


def test_parses_python_literal(llm):
    content = "{'found': True, 'confidence': 1.0}"
    assert llm.parse_from_completion(content, Answer).confidence == 1.0


def test_skips_blocks_that_do_not_validate(llm):
    content = '{"unrelated": 1}\n{"found": true, "confidence": 0.5}'
    assert llm.parse_from_completion(content, Answer).confidence == 0.5


def test_unparseable_completion_raises(llm):
    with pytest.raises(ValueError):
        llm.parse_from_completion("no structure here", Answer)


def test_structured_output_retries_then_raises(llm):
    with pytest.raises(ReasoningServiceException, match="Max retries exceeded"):
        llm.get_model_response_with_structured_output("prompt", LoginVerifierOutput)
    assert len(llm.prompts) == llm.max_retries


async def test_agent_failure_is_low_confidence(make_context, llm):
    ctx = make_context(llm=llm)
    response = await run_agent(
        ctx, LoginVerifierAgent(llm).verify_login, "/login", "/login", "snapshot"
    )
    assert response is None
    assert ctx.budget.used == 1


async def test_agent_skipped_when_budget_spent(make_context):
    llm = ScriptedLLM([LoginVerifierOutput(logged_in=True, confidence=0.9)])
    ctx = make_context(llm=llm)
    ctx.budget.max_calls = 0

    response = await run_agent(
        ctx, LoginVerifierAgent(llm).verify_login, "/login", "/home", "snapshot"
    )
    assert response is None
    assert ctx.budget.overrun
    assert llm.prompts == []
