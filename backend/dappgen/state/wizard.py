"""
Wizard state machine.

A single pure reducer drives the linear flow

    DESCRIPTION -> OPTIMIZATION (while remaining > 0) -> WALLET -> COMPLETE

Errors are not a state of their own; they are appended to the message log.
reduce() never mutates its input and returns the same object for actions it
does not apply.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from dappgen.models.schemas import (
    AppState,
    DeploymentState,
    FlowState,
    Message,
    OptimizationRecord,
    Optimizations,
    TokenUsage,
    TokenUsageSummary,
)
from dappgen.services.token_budget import TOTAL_MAX

MAX_OPTIMIZATIONS = 3

WELCOME_MESSAGE = """\
👋 Welcome to TEN dApp Generator! I'll help you create a privacy-focused smart contract for the TEN Network.

Please describe your dApp idea in detail. For example:
- What's the main purpose?
- What features do you need?
- What kind of data needs to be private?

I'll generate a secure smart contract based on your requirements."""


def message_id() -> str:
    return uuid.uuid4().hex[:16]


def initial_state() -> AppState:
    return AppState(
        messages=[Message(id="welcome", type="system", content=WELCOME_MESSAGE)],
        current_state=FlowState.DESCRIPTION,
        optimizations=Optimizations(remaining=MAX_OPTIMIZATIONS),
    )


# ── Actions ───────────────────────────────────────────────────

class AddMessage(BaseModel):
    type: Literal["ADD_MESSAGE"] = "ADD_MESSAGE"
    payload: Message


class SetMessages(BaseModel):
    type: Literal["SET_MESSAGES"] = "SET_MESSAGES"
    payload: list[Message]


class SetState(BaseModel):
    type: Literal["SET_STATE"] = "SET_STATE"
    payload: FlowState


class SetContract(BaseModel):
    type: Literal["SET_CONTRACT"] = "SET_CONTRACT"
    payload: str | None


class SetUserAddress(BaseModel):
    type: Literal["SET_USER_ADDRESS"] = "SET_USER_ADDRESS"
    payload: str | None


class SetDeploymentStatus(BaseModel):
    type: Literal["SET_DEPLOYMENT_STATUS"] = "SET_DEPLOYMENT_STATUS"
    payload: DeploymentState | None


class AddOptimization(BaseModel):
    type: Literal["ADD_OPTIMIZATION"] = "ADD_OPTIMIZATION"
    payload: OptimizationRecord


class UpdateTokenUsage(BaseModel):
    type: Literal["UPDATE_TOKEN_USAGE"] = "UPDATE_TOKEN_USAGE"
    tokens_used: int = Field(ge=0)


class ResetState(BaseModel):
    type: Literal["RESET_STATE"] = "RESET_STATE"


Action = Annotated[
    Union[
        AddMessage,
        SetMessages,
        SetState,
        SetContract,
        SetUserAddress,
        SetDeploymentStatus,
        AddOptimization,
        UpdateTokenUsage,
        ResetState,
    ],
    Field(discriminator="type"),
]


def reduce(state: AppState, action: Action) -> AppState:
    if isinstance(action, AddMessage):
        return state.model_copy(update={"messages": [*state.messages, action.payload]})

    if isinstance(action, SetMessages):
        return state.model_copy(update={"messages": list(action.payload)})

    if isinstance(action, SetState):
        return state.model_copy(update={"current_state": action.payload})

    if isinstance(action, SetContract):
        return state.model_copy(update={"contract": action.payload})

    if isinstance(action, SetUserAddress):
        return state.model_copy(update={"user_address": action.payload})

    if isinstance(action, SetDeploymentStatus):
        return state.model_copy(update={"deployment": action.payload})

    if isinstance(action, AddOptimization):
        opts = state.optimizations
        if opts.remaining <= 0:
            return state
        return state.model_copy(
            update={
                "optimizations": Optimizations(
                    attempts=opts.attempts + 1,
                    remaining=opts.remaining - 1,
                    history=[*opts.history, action.payload],
                )
            }
        )

    if isinstance(action, UpdateTokenUsage):
        return state.model_copy(
            update={"token_usage": TokenUsage(total=state.token_usage.total + action.tokens_used)}
        )

    if isinstance(action, ResetState):
        fresh = initial_state()
        welcome = Message(id=message_id(), type="system", content=WELCOME_MESSAGE)
        return fresh.model_copy(update={"messages": [welcome]})

    return state


# ── Selectors ─────────────────────────────────────────────────

def can_optimize(state: AppState) -> bool:
    return state.optimizations.remaining > 0


def token_usage_summary(state: AppState) -> TokenUsageSummary:
    total = state.token_usage.total
    return TokenUsageSummary(
        total=total,
        percentage=total / TOTAL_MAX * 100,
        remaining=TOTAL_MAX - total,
    )
