"""Reply parsing, contract validation and the OpenRouter client."""

import asyncio
import json

import httpx
import pytest

from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import ContractResult, MessageResult
from dappgen.services.ai_service import (
    INVALID_CONTRACT_MESSAGE,
    AIService,
    extract_contract,
    parse_ai_response,
    validate_contract,
)

from fakes import MARKDOWN_REPLY, VOTING_CONTRACT, XML_REPLY


def test_xml_reply_is_a_contract():
    result = parse_ai_response(XML_REPLY, tokens_used=321)

    assert isinstance(result, ContractResult)
    assert result.code == VOTING_CONTRACT
    assert result.explanation == "Added an emergency pause."
    assert result.tokens_used == 321


def test_markdown_reply_is_a_contract():
    result = parse_ai_response(MARKDOWN_REPLY)

    assert isinstance(result, ContractResult)
    assert result.code == VOTING_CONTRACT
    assert result.explanation.startswith("A private voting contract.")


def test_prose_reply_is_a_message():
    result = parse_ai_response("  I can only help with smart contracts.  ", tokens_used=12)

    assert isinstance(result, MessageResult)
    assert result.content == "I can only help with smart contracts."
    assert result.tokens_used == 12


def test_contract_without_explanation_is_not_extracted():
    assert extract_contract(f"<CONTRACT>{VOTING_CONTRACT}</CONTRACT>") is None


@pytest.mark.parametrize(
    "marker",
    ["SPDX-License-Identifier", "contract ", "transferOwnership"],
)
def test_validator_rejects_missing_marker(marker):
    broken = VOTING_CONTRACT.replace(marker, "")
    assert not validate_contract(broken)


def test_validator_rejects_missing_owner():
    # "transferOwnership" does not contain the lowercase marker
    no_owner = "// SPDX-License-Identifier: MIT\ncontract Counter { function transferOwnership() public {} }"
    assert not validate_contract(no_owner)
    assert validate_contract(VOTING_CONTRACT)


def test_invalid_contract_becomes_message():
    reply = XML_REPLY.replace("transferOwnership", "handOver")
    result = parse_ai_response(reply, tokens_used=5)

    assert isinstance(result, MessageResult)
    assert result.content == INVALID_CONTRACT_MESSAGE


def _completion(content, total_tokens=1500):
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {"total_tokens": total_tokens},
        },
    )


def _service(settings, handler):
    return AIService(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_generate_contract_request(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return _completion(MARKDOWN_REPLY, total_tokens=4321)

    result = asyncio.run(_service(settings, handler).generate_contract("a voting contract"))

    assert isinstance(result, ContractResult)
    assert result.tokens_used == 4321

    request = seen[0]
    body = json.loads(request.content)
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"
    assert body["model"] == "anthropic/claude-3-sonnet"
    assert body["max_tokens"] == 6000
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1]["content"].endswith("a voting contract")


def test_optimize_and_retry_use_their_own_budgets(settings):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return _completion(XML_REPLY)

    service = _service(settings, handler)
    asyncio.run(service.optimize_contract(VOTING_CONTRACT, "add a pause", "SECURITY"))
    asyncio.run(service.retry_generation("a voting contract", "missing owner"))

    assert bodies[0]["max_tokens"] == 2000
    assert "Optimization request (security): add a pause" in bodies[0]["messages"][1]["content"]
    assert bodies[1]["max_tokens"] == 2000
    assert "missing owner" in bodies[1]["messages"][1]["content"]


def test_upstream_error_message_is_surfaced(settings):
    service = _service(settings, lambda request: httpx.Response(401, json={"error": {"message": "No auth credentials found"}}))

    with pytest.raises(AppException) as exc_info:
        asyncio.run(service.generate_contract("a voting contract"))

    assert exc_info.value.error_code == "AI_SERVICE_ERROR"
    assert exc_info.value.message == "No auth credentials found"


def test_missing_choices_is_a_parse_error(settings):
    service = _service(settings, lambda request: httpx.Response(200, json={"id": "gen-1"}))

    with pytest.raises(AppException) as exc_info:
        asyncio.run(service.generate_contract("a voting contract"))

    assert exc_info.value.error_code == "AI_PARSE_ERROR"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>Bad gateway</html>"),
        httpx.Response(200, json=["not", "a", "completion"]),
    ],
)
def test_unreadable_completion_is_a_parse_error(settings, response):
    service = _service(settings, lambda request: response)

    with pytest.raises(AppException) as exc_info:
        asyncio.run(service.generate_contract("a voting contract"))

    assert exc_info.value.status_code == 502
    assert exc_info.value.error_code == "AI_PARSE_ERROR"


def test_timeout(settings):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(AppException) as exc_info:
        asyncio.run(_service(settings, handler).generate_contract("a voting contract"))

    assert exc_info.value.status_code == 504
