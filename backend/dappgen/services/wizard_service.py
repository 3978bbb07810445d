"""
Wizard orchestration.

WizardController turns user intents (describe, optimise, deploy) into
service calls and reducer actions on a per-session AppState. Upstream
failures during a step become chat messages rather than HTTP errors; only
requests that make no sense in the current state are rejected outright.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Callable

from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import (
    AppState,
    ContractResult,
    DeploymentResult,
    DeploymentState,
    FlowState,
    Message,
    MessageMetadata,
    MessageResult,
    OptimizationRecord,
)
from dappgen.services.account_service import AccountService
from dappgen.services.ai_service import AIService
from dappgen.services.chain_service import ChainService
from dappgen.services.token_budget import (
    BUDGETS,
    RESET_WINDOW_MS,
    RequestClass,
    can_make_request,
    estimate_request_tokens,
    now_ms,
    time_until_reset,
)
from dappgen.state.wizard import (
    Action,
    AddMessage,
    AddOptimization,
    ResetState,
    SetContract,
    SetDeploymentStatus,
    SetState,
    SetUserAddress,
    UpdateTokenUsage,
    initial_state,
    message_id,
    reduce,
)
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

DESCRIPTION_MAX_CHARS = 1000
OPTIMIZATION_MAX_CHARS = 400

TOKEN_LIMIT_MESSAGE = "Token limit reached. Cannot generate more content."

DEPLOYED_MESSAGE = """\
✅ Contract deployed successfully!

Contract Address: {address}

🚀 To interact with this dApp on TEN Network:

1. Visit TEN Gateway at https://testnet.ten.xyz
2. Add TEN Network to your wallet
3. Import your contract using the ABI below."""


@dataclass
class Session:
    id: str
    user_id: str | None
    state: AppState
    created_at: int = field(default_factory=now_ms)
    # Reason the last generation attempt produced no contract; the next
    # description is then sent as a RETRY.
    last_rejection: str | None = None


class SessionStore:
    """In-memory sessions, lost on restart.

    Sessions expire ``ttl_ms`` after creation. Expired ones are swept on every
    create, and the oldest are dropped once ``max_sessions`` is reached.
    """

    def __init__(
        self,
        ttl_ms: int = RESET_WINDOW_MS,
        max_sessions: int = 10_000,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.ttl_ms = ttl_ms
        self.max_sessions = max_sessions
        self._clock = clock
        # Insertion order is creation order
        self._sessions: dict[str, Session] = {}

    def _expired(self, session: Session, now: int) -> bool:
        return now - session.created_at >= self.ttl_ms

    def sweep(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        now = self._clock()
        stale = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Expired %d session(s)", len(stale))
        return len(stale)

    def create(self, user_id: str | None = None) -> Session:
        self.sweep()
        while len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            del self._sessions[oldest]
            logger.warning("Session cap reached; evicted %s", oldest)

        session = Session(
            id=uuid.uuid4().hex, user_id=user_id, state=initial_state(), created_at=self._clock()
        )
        self._sessions[session.id] = session
        logger.info("Session created", extra=_ctx(session))
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is not None and self._expired(session, self._clock()):
            del self._sessions[session_id]
            session = None
        if session is None:
            raise AppException(
                status_code=404,
                error_code="SESSION_NOT_FOUND",
                message=f"Session '{session_id}' does not exist.",
            )
        return session

    def __len__(self) -> int:
        return len(self._sessions)


def _ctx(session: Session) -> dict[str, str | None]:
    return {"session_id": session.id, "user_id": session.user_id}


def _message(kind: str, content: str, metadata: MessageMetadata | None = None) -> AddMessage:
    return AddMessage(payload=Message(id=message_id(), type=kind, content=content, metadata=metadata))


class WizardController:
    """Drives one session through the generation wizard."""

    def __init__(self, ai: AIService, chain: ChainService, accounts: AccountService) -> None:
        self.ai = ai
        self.chain = chain
        self.accounts = accounts

    def dispatch(self, session: Session, action: Action) -> None:
        session.state = reduce(session.state, action)
        logger.debug(
            "action=%s  state=%s", action.type, session.state.current_state.value, extra=_ctx(session)
        )

    # ── Guards ────────────────────────────────────────────────

    @staticmethod
    def _invalid_state(session: Session, what: str) -> AppException:
        return AppException(
            status_code=409,
            error_code="INVALID_STATE",
            message=f"Cannot {what} while the wizard is in {session.state.current_state.value}.",
        )

    def _request_class(self, session: Session) -> RequestClass:
        if session.state.current_state == FlowState.OPTIMIZATION:
            return RequestClass.OPTIMIZATION
        if session.last_rejection:
            return RequestClass.RETRY
        return RequestClass.INITIAL

    async def _quota_error(self, session: Session, request_class: RequestClass) -> str | None:
        """Reason the request may not run, or None when it is admitted."""
        if not can_make_request(session.state.token_usage.total, request_class):
            return TOKEN_LIMIT_MESSAGE

        if session.user_id:
            status = await self.accounts.check_tokens(session.user_id, BUDGETS[request_class].total)
            if not status.can_use:
                wait = time_until_reset(status.next_reset_time - RESET_WINDOW_MS, now_ms())
                return f"{TOKEN_LIMIT_MESSAGE} Your daily quota resets in {wait}."
        return None

    async def _record_usage(self, session: Session, tokens_used: int) -> None:
        self.dispatch(session, UpdateTokenUsage(tokens_used=tokens_used))
        if session.user_id and tokens_used:
            try:
                await self.accounts.update_token_usage(session.user_id, tokens_used)
            except AppException as exc:
                # The generation already happened; report instead of discarding it
                logger.error("Failed to persist token usage: %s", exc.message, extra=_ctx(session))

    # ── Steps ─────────────────────────────────────────────────

    async def submit(self, session: Session, text: str, category: str | None = None) -> Session:
        """Send a description (or optimisation request) to the model."""
        text = text.strip()
        current = session.state.current_state
        if current not in (FlowState.DESCRIPTION, FlowState.OPTIMIZATION):
            raise self._invalid_state(session, "send a message")
        if current == FlowState.DESCRIPTION and session.state.contract:
            raise self._invalid_state(session, "send a message before choosing deploy or optimize")
        if not text:
            raise AppException(status_code=400, error_code="EMPTY_INPUT", message="Message must not be empty.")

        limit = DESCRIPTION_MAX_CHARS if current == FlowState.DESCRIPTION else OPTIMIZATION_MAX_CHARS
        if len(text) > limit:
            raise AppException(
                status_code=400,
                error_code="INPUT_TOO_LONG",
                message=f"Message exceeds {limit} characters.",
            )

        request_class = self._request_class(session)
        refusal = await self._quota_error(session, request_class)
        if refusal:
            self.dispatch(session, _message("error", refusal))
            return session

        logger.info(
            "%s request  size=%d  est_tokens=%d",
            request_class.value,
            len(text),
            estimate_request_tokens(text, request_class),
            extra=_ctx(session),
        )
        self.dispatch(session, _message("user", text, MessageMetadata(char_count=len(text))))

        try:
            if request_class == RequestClass.OPTIMIZATION:
                result = await self.ai.optimize_contract(session.state.contract or "", text, category)
            elif request_class == RequestClass.RETRY:
                result = await self.ai.retry_generation(text, session.last_rejection or "")
            else:
                result = await self.ai.generate_contract(text)
        except AppException as exc:
            self.dispatch(
                session,
                _message("error", f"Error: {exc.message}\n\nPlease try again or try rephrasing your request."),
            )
            return session

        await self._record_usage(session, result.tokens_used)

        if isinstance(result, ContractResult):
            self._apply_contract(session, text, result)
        else:
            self._apply_message(session, result)
        return session

    def _apply_contract(self, session: Session, request: str, result: ContractResult) -> None:
        if session.state.current_state == FlowState.DESCRIPTION:
            session.last_rejection = None
            self.dispatch(
                session,
                _message(
                    "system",
                    "✅ Contract generated successfully! Here are the key features:\n\n"
                    f"{result.explanation}\n\n"
                    "Please review the contract below and choose whether to deploy it or optimize it further.",
                    MessageMetadata(tokens_used=result.tokens_used),
                ),
            )
            self.dispatch(session, SetContract(payload=result.code))
            return

        was_last = session.state.optimizations.remaining == 1
        self.dispatch(session, AddOptimization(payload=OptimizationRecord(description=request, result=result.code)))
        self.dispatch(
            session,
            _message(
                "system",
                f"✅ Contract optimized successfully!\n\n{result.explanation}",
                MessageMetadata(
                    tokens_used=result.tokens_used,
                    optimization_attempt=session.state.optimizations.attempts,
                ),
            ),
        )
        self.dispatch(session, SetContract(payload=result.code))
        if was_last:
            self.dispatch(session, SetState(payload=FlowState.WALLET))

    def _apply_message(self, session: Session, result: MessageResult) -> None:
        if session.state.current_state == FlowState.DESCRIPTION:
            session.last_rejection = result.content
        self.dispatch(
            session,
            _message("system", result.content, MessageMetadata(tokens_used=result.tokens_used)),
        )

    def choose_action(self, session: Session, action: str) -> Session:
        """Branch after a generated contract: deploy now or optimise."""
        if session.state.current_state != FlowState.DESCRIPTION or not session.state.contract:
            raise self._invalid_state(session, f"{action} the contract")

        if action == "deploy":
            self.dispatch(session, SetState(payload=FlowState.WALLET))
            return session

        if session.state.optimizations.remaining <= 0:
            raise AppException(
                status_code=409,
                error_code="NO_OPTIMIZATIONS_LEFT",
                message="You've used all available optimization attempts.",
            )
        self.dispatch(
            session,
            _message(
                "system",
                "Please select an optimization category and describe the changes you would like to make to the contract.",
            ),
        )
        self.dispatch(session, SetState(payload=FlowState.OPTIMIZATION))
        return session

    def exit_optimization(self, session: Session) -> Session:
        if session.state.current_state != FlowState.OPTIMIZATION:
            raise self._invalid_state(session, "exit optimization")
        self.dispatch(session, SetState(payload=FlowState.DESCRIPTION))
        self.dispatch(session, _message("system", "What would you like to do with your contract?"))
        return session

    async def deploy(self, session: Session, wallet_address: str) -> Session:
        """Deploy the current contract and hand ownership to *wallet_address*."""
        if session.state.current_state != FlowState.WALLET or not session.state.contract:
            raise self._invalid_state(session, "deploy")
        if session.state.deployment and session.state.deployment.status == "deploying":
            raise self._invalid_state(session, "start a second deployment")

        wallet_address = wallet_address.strip()
        if not self.chain.validate_address(wallet_address):
            self.dispatch(session, _message("error", "Deployment failed: Invalid wallet address format."))
            return session

        self.dispatch(session, SetUserAddress(payload=wallet_address))
        self.dispatch(session, SetDeploymentStatus(payload=DeploymentState(status="deploying")))

        deployed = None
        try:
            deployed = await self.chain.deploy_contract(session.state.contract)
            self.dispatch(
                session,
                _message(
                    "system",
                    DEPLOYED_MESSAGE.format(address=deployed.address),
                    MessageMetadata(contract_address=deployed.address),
                ),
            )
            if deployed.abi:
                self.dispatch(session, _message("contract", json.dumps(deployed.abi, indent=2)))
            self.dispatch(
                session,
                SetDeploymentStatus(
                    payload=DeploymentState(
                        status="deployed",
                        address=deployed.address,
                        tx_hash=deployed.transaction_hash,
                        abi=deployed.abi,
                    )
                ),
            )

            await self.chain.transfer_ownership(deployed.address, wallet_address)
        except AppException as exc:
            logger.warning("Deployment flow failed: %s", exc.message, extra=_ctx(session))
            self._deployment_failed(session, deployed, exc.message)
            return session
        except Exception as exc:
            # A deployment must never be left in "deploying"
            logger.exception("Unexpected deployment failure: %s", exc, extra=_ctx(session))
            self._deployment_failed(session, deployed, "Unexpected error during deployment.")
            return session

        self.dispatch(session, _message("system", f"🔑 Ownership transferred to {wallet_address}."))
        self.dispatch(session, SetState(payload=FlowState.COMPLETE))
        return session

    def _deployment_failed(self, session: Session, deployed: DeploymentResult | None, reason: str) -> None:
        self.dispatch(session, _message("error", f"Deployment failed: {reason}"))
        self.dispatch(
            session,
            SetDeploymentStatus(
                payload=DeploymentState(
                    status="error",
                    address=deployed.address if deployed else None,
                    tx_hash=deployed.transaction_hash if deployed else None,
                    error=reason,
                )
            ),
        )

    def reset(self, session: Session) -> Session:
        session.last_rejection = None
        self.dispatch(session, ResetState())
        return session


