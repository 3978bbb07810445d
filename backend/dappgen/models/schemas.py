"""
Pydantic models (schemas).

Wire format is camelCase to match the front end (``tokenUsage``,
``lastTokenReset``, ``sourceCode``...); Python attributes stay snake_case.
Timestamps are Unix epoch milliseconds throughout.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Shared ────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standardised error envelope."""
    error: bool = True
    error_code: str
    message: str
    details: dict | None = None


# ── Users & tokens ────────────────────────────────────────────

class DiscordUser(BaseModel):
    """Identity returned by Discord's /users/@me."""
    id: str
    username: str
    avatar: str | None = None


class UserData(CamelModel):
    """Persisted per-user record, keyed by Discord user id."""
    id: str
    username: str = ""
    avatar: str = ""
    token_usage: int = Field(default=0, ge=0)
    last_token_reset: int
    last_updated: int | None = None


class TokenStatus(CamelModel):
    """Derived quota view; never persisted."""
    can_use: bool
    remaining_tokens: int
    next_reset_time: int


class TokenUsageUpdate(CamelModel):
    """PUT /api/v1/users request body."""
    user_id: str = Field(..., min_length=1, max_length=128)
    token_usage: int = Field(..., ge=0)
    user_data: UserData | None = None


class UserLookupResponse(BaseModel):
    """GET /api/v1/users response body."""
    data: UserData | None = None


# ── Auth ──────────────────────────────────────────────────────

class DiscordAuthRequest(BaseModel):
    """POST /api/v1/auth/discord request body."""
    code: str = Field(..., min_length=1, max_length=512)


class AuthUrlResponse(BaseModel):
    url: str


# ── Compile ───────────────────────────────────────────────────

class CompileRequest(CamelModel):
    """POST /api/v1/compile request body."""
    source_code: str = Field(
        ...,
        min_length=1,
        max_length=60_000,
        description="Solidity source compiled as a single file named contract.sol.",
    )


class CompileResponse(BaseModel):
    """ABI and 0x-prefixed creation bytecode of the first contract."""
    abi: list[dict[str, Any]]
    bytecode: str


class CompileErrorResponse(BaseModel):
    """Compile failure body: the first compiler error as plain text."""
    error: str


# ── AI results ────────────────────────────────────────────────

class ContractResult(BaseModel):
    """LLM reply that parsed and validated as a deployable contract."""
    type: Literal["contract"] = "contract"
    code: str
    explanation: str
    tokens_used: int = 0


class MessageResult(BaseModel):
    """LLM reply surfaced as plain advice rather than a contract."""
    type: Literal["message"] = "message"
    content: str
    tokens_used: int = 0


AIResult = Annotated[Union[ContractResult, MessageResult], Field(discriminator="type")]


class OptimizationCategory(BaseModel):
    id: Literal["PRIVACY", "FUNCTIONALITY", "SECURITY"]
    title: str
    description: str
    examples: list[str] = Field(default_factory=list)


# ── Chain ─────────────────────────────────────────────────────

class DeploymentResult(CamelModel):
    address: str
    transaction_hash: str
    block_number: int
    abi: list[dict[str, Any]] = Field(default_factory=list)


class NetworkInfo(CamelModel):
    chain_id: int
    name: str


class ChainStatusResponse(CamelModel):
    """GET /api/v1/chain/status response body."""
    chain_id: int
    name: str
    deployer: str
    balance: str
    ready: bool


class EstimateRequest(CamelModel):
    source_code: str = Field(..., min_length=1, max_length=60_000)


class EstimateResponse(CamelModel):
    estimated_cost: str = Field(..., description="Deployment cost in ether.")


# ── Wizard state ──────────────────────────────────────────────

class FlowState(str, Enum):
    WELCOME = "WELCOME"
    DESCRIPTION = "DESCRIPTION"
    GENERATING = "GENERATING"
    OPTIMIZATION = "OPTIMIZATION"
    DEPLOYMENT = "DEPLOYMENT"
    WALLET = "WALLET"
    COMPLETE = "COMPLETE"


class MessageMetadata(CamelModel):
    tokens_used: int | None = None
    char_count: int | None = None
    contract_address: str | None = None
    optimization_attempt: int | None = None


class Message(CamelModel):
    """One chat-log entry."""
    id: str
    type: Literal["system", "user", "contract", "error"]
    content: str
    metadata: MessageMetadata | None = None


class DeploymentState(CamelModel):
    status: Literal["idle", "deploying", "deployed", "error"] = "idle"
    address: str | None = None
    error: str | None = None
    tx_hash: str | None = None
    abi: list[dict[str, Any]] | None = None


class OptimizationRecord(CamelModel):
    description: str
    result: str


class Optimizations(CamelModel):
    attempts: int = 0
    remaining: int = Field(default=3, ge=0)
    history: list[OptimizationRecord] = Field(default_factory=list)


class TokenUsage(CamelModel):
    total: int = 0


class AppState(CamelModel):
    """Session state of the generation wizard."""
    messages: list[Message] = Field(default_factory=list)
    current_state: FlowState = FlowState.DESCRIPTION
    contract: str | None = None
    deployment: DeploymentState | None = None
    user_address: str | None = None
    optimizations: Optimizations = Field(default_factory=Optimizations)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class TokenUsageSummary(CamelModel):
    total: int
    percentage: float
    remaining: int


# ── Sessions ──────────────────────────────────────────────────

class CreateSessionRequest(CamelModel):
    """POST /api/v1/sessions request body."""
    user_id: str | None = Field(default=None, max_length=128)


class SubmitMessageRequest(BaseModel):
    """POST /api/v1/sessions/{id}/messages request body."""
    content: str = Field(..., min_length=1, max_length=1_000)
    category: Literal["PRIVACY", "FUNCTIONALITY", "SECURITY"] | None = None


class ContractActionRequest(BaseModel):
    action: Literal["deploy", "optimize"]


class WalletDeployRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1, max_length=128)


class SessionResponse(CamelModel):
    """Session snapshot returned by every wizard endpoint."""
    session_id: str
    user_id: str | None = None
    state: AppState
    can_optimize: bool
    token_usage: TokenUsageSummary
