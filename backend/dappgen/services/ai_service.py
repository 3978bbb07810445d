"""
AI contract generation service.

Talks to the OpenRouter chat-completion API over httpx. Replies are parsed
for a contract and an explanation, then validated; anything that is not a
well-formed contract carrying the required ownership scaffolding comes back
as a plain MessageResult instead of a deployable ContractResult.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

import httpx

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException, upstream_message
from dappgen.models.schemas import AIResult, ContractResult, MessageResult, OptimizationCategory
from dappgen.services.token_budget import BUDGETS, RequestClass
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

# Generation of a full contract can take a while on the larger models
_AI_TIMEOUT = httpx.Timeout(connect=15.0, read=180.0, write=15.0, pool=15.0)

# ── Prompts ───────────────────────────────────────────────────

GENERATION_SYSTEM_PROMPT = """\
You generate Solidity smart contracts for the TEN Network, an EVM chain whose
state is encrypted and only reachable through the functions a contract exposes.

PRIVACY
- Declare sensitive state variables `private`; TEN does not serve them through
  getStorageAt, so only your functions can reveal them.
- Guard every getter that returns private data with an explicit access check.
- Events with an indexed address parameter are only visible to that address;
  events without one are public. Use this to build private notifications.

SECURITY
- Validate every input and revert with a clear message.
- Keep function parameters and return values free of data the caller should
  not see.

OWNERSHIP (mandatory in EVERY contract)
- A private `owner` state variable initialised to msg.sender.
- `event OwnershipTransferred(address indexed previousOwner, address indexed newOwner);`
- `function owner() public view returns (address)`.
- `function transferOwnership(address newOwner) public` that requires
  msg.sender == owner and newOwner != address(0), emits OwnershipTransferred
  and updates owner.
- The constructor must take no arguments.

RANDOMNESS (only when the idea needs it)
- block.difficulty is secure on TEN; do not use oracles or VRF.

Start the file with `// SPDX-License-Identifier: MIT`.

Reply in exactly this format:

```solidity
// the complete contract
```

**Documentation:**
A short explanation of the contract, its functions and how ownership works.
"""

OPTIMIZATION_SYSTEM_PROMPT = """\
You optimise existing Solidity contracts for the TEN Network. Apply the
requested change while keeping every privacy and security property of the
original, including the private owner, owner() and transferOwnership(address).
The constructor must stay argument-free and the SPDX license line must stay.

Reply in exactly this format:

<CONTRACT>
the complete updated contract
</CONTRACT>
<EXPLANATION>
what changed and why
</EXPLANATION>
"""

RETRY_USER_TEMPLATE = """\
Generate a smart contract based on this description: {description}

A previous attempt was rejected: {reason}
Follow the required format and ownership rules exactly."""

INVALID_CONTRACT_MESSAGE = (
    "The generated contract was rejected because it is missing required elements "
    "(SPDX license identifier, a contract definition, an owner and a "
    "transferOwnership function). Please try again or rephrase your description."
)

# Literal markers every deployable contract must contain
REQUIRED_CONTRACT_MARKERS = (
    "SPDX-License-Identifier",
    "contract ",
    "owner",
    "transferOwnership",
)

OPTIMIZATION_CATEGORIES: list[OptimizationCategory] = [
    OptimizationCategory(
        id="PRIVACY",
        title="Privacy Enhancements",
        description="Improve data privacy and access control",
        examples=["Add private state variables", "Implement selective access", "Add private events"],
    ),
    OptimizationCategory(
        id="FUNCTIONALITY",
        title="Feature Updates",
        description="Enhance contract capabilities",
        examples=["Add new features", "Modify existing functions", "Add emergency controls"],
    ),
    OptimizationCategory(
        id="SECURITY",
        title="Security Improvements",
        description="Strengthen contract security",
        examples=["Add access controls", "Improve validation", "Add safety checks"],
    ),
]

# ── Response parsing ──────────────────────────────────────────

_XML_CONTRACT = re.compile(r"<CONTRACT>([\s\S]*?)</CONTRACT>")
_XML_EXPLANATION = re.compile(r"<EXPLANATION>([\s\S]*?)</EXPLANATION>")
_MD_CONTRACT = re.compile(r"```solidity\s*\n([\s\S]*?)```")
_MD_DOCUMENTATION = re.compile(r"\*\*Documentation:\*\*([\s\S]*)$")


def extract_contract(content: str) -> tuple[str, str] | None:
    """Return (code, explanation) from either accepted format, else None."""
    code = _XML_CONTRACT.search(content)
    explanation = _XML_EXPLANATION.search(content)
    if code and explanation:
        return code.group(1).strip(), explanation.group(1).strip()

    code = _MD_CONTRACT.search(content)
    explanation = _MD_DOCUMENTATION.search(content)
    if code and explanation:
        return code.group(1).strip(), explanation.group(1).strip()

    return None


def validate_contract(code: str) -> bool:
    return all(marker in code for marker in REQUIRED_CONTRACT_MARKERS)


def parse_ai_response(content: str, tokens_used: int = 0) -> AIResult:
    """Parse, then validate, then fall back to a plain message."""
    extracted = extract_contract(content)
    if extracted is None:
        return MessageResult(content=content.strip(), tokens_used=tokens_used)

    code, explanation = extracted
    if not validate_contract(code):
        missing = [m.strip() for m in REQUIRED_CONTRACT_MARKERS if m not in code]
        logger.warning("Generated contract failed validation  missing=%s", missing)
        return MessageResult(content=INVALID_CONTRACT_MESSAGE, tokens_used=tokens_used)

    return ContractResult(code=code, explanation=explanation, tokens_used=tokens_used)


class AIService:
    """OpenRouter chat-completion client."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.OPENROUTER_API_KEY
        self._model = settings.OPENROUTER_MODEL
        self._app_url = settings.APP_URL or "https://ten-dapp-generator.com"
        self._client = client or httpx.AsyncClient(timeout=_AI_TIMEOUT)
        logger.info("AIService initialised  model=%s", self._model)

    async def _complete(self, messages: list[dict[str, str]], request_class: RequestClass) -> tuple[str, int]:
        """POST a chat completion and return (content, total_tokens)."""
        body: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": BUDGETS[request_class].ai_output,
            "temperature": 0.1,
            "top_p": 0.2,
            "frequency_penalty": 0.3,
            "presence_penalty": 0.3,
            "repetition_penalty": 1.2,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": self._app_url,
            "X-Title": "TEN dApp Generator",
        }

        logger.debug("Calling OpenRouter  model=%s  class=%s", self._model, request_class.value)
        try:
            response = await self._client.post(_OPENROUTER_URL, json=body, headers=headers)
        except httpx.TimeoutException:
            logger.error("OpenRouter request timed out")
            raise AppException(
                status_code=504,
                error_code="AI_SERVICE_ERROR",
                message="AI request timed out. Please try again.",
            )
        except httpx.HTTPError as exc:
            logger.error("OpenRouter HTTP error: %s", str(exc)[:300])
            raise AppException(
                status_code=502,
                error_code="AI_SERVICE_ERROR",
                message="Failed to communicate with AI service",
            )

        if not response.is_success:
            message = upstream_message(response, f"API request failed: {response.reason_phrase}")
            logger.error("OpenRouter error %d: %s", response.status_code, message)
            raise AppException(
                status_code=502,
                error_code="AI_SERVICE_ERROR",
                message=message,
            )

        try:
            data = response.json()
        except ValueError:
            logger.error("OpenRouter returned a non-JSON body: %s", response.text[:200])
            raise AppException(
                status_code=502,
                error_code="AI_PARSE_ERROR",
                message="AI service returned an unreadable response.",
                details={"raw_preview": response.text[:500]},
            )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected OpenRouter response structure: %s", exc)
            raise AppException(
                status_code=502,
                error_code="AI_PARSE_ERROR",
                message="Unexpected response structure from AI service.",
                details={"raw_preview": str(data)[:500]},
            )

        tokens_used = int((data.get("usage") or {}).get("total_tokens") or 0)
        return content, tokens_used

    async def _run(self, messages: list[dict[str, str]], request_class: RequestClass) -> AIResult:
        content, tokens_used = await self._complete(messages, request_class)
        result = parse_ai_response(content, tokens_used)
        logger.info(
            "AI reply  class=%s  type=%s  tokens=%d",
            request_class.value,
            result.type,
            tokens_used,
        )
        return result

    async def generate_contract(self, description: str) -> AIResult:
        digest = hashlib.sha256(description.encode()).hexdigest()[:12]
        logger.info("Generation requested  hash=%s  size=%d", digest, len(description))
        messages = [
            {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
            {"role": "user", "content": f"Generate a smart contract based on this description: {description}"},
        ]
        return await self._run(messages, RequestClass.INITIAL)

    async def retry_generation(self, description: str, reason: str) -> AIResult:
        """Second attempt after a reply that was not a deployable contract."""
        messages = [
            {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
            {"role": "user", "content": RETRY_USER_TEMPLATE.format(description=description, reason=reason[:500])},
        ]
        return await self._run(messages, RequestClass.RETRY)

    async def optimize_contract(
        self, current_code: str, request: str, category: str | None = None
    ) -> AIResult:
        focus = f" ({category.lower()})" if category else ""
        messages = [
            {"role": "system", "content": OPTIMIZATION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Current contract:\n{current_code}\n\nOptimization request{focus}: {request}",
            },
        ]
        return await self._run(messages, RequestClass.OPTIMIZATION)
