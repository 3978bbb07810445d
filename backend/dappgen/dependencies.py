"""
Service container.

Every service is built once in create_app() and kept on app.state; routes
receive them through the FastAPI dependencies below. Tests pass their own
Services with fakes swapped in.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from dappgen.config import Settings
from dappgen.services.account_service import AccountService
from dappgen.services.ai_service import AIService
from dappgen.services.chain_service import ChainService
from dappgen.services.compiler_service import Compiler, SolcCompiler, build_compiler
from dappgen.services.discord_service import DiscordAuthService
from dappgen.services.user_store import build_user_store
from dappgen.services.wizard_service import SessionStore, WizardController


@dataclass
class Services:
    settings: Settings
    accounts: AccountService
    discord: DiscordAuthService
    solc: SolcCompiler
    compiler: Compiler
    ai: AIService
    chain: ChainService
    sessions: SessionStore
    wizard: WizardController


def build_services(settings: Settings) -> Services:
    accounts = AccountService(build_user_store(settings))
    solc = SolcCompiler(settings.SOLC_VERSION)
    compiler = build_compiler(settings)
    ai = AIService(settings)
    chain = ChainService(settings, compiler)
    return Services(
        settings=settings,
        accounts=accounts,
        discord=DiscordAuthService(settings, accounts),
        solc=solc,
        compiler=compiler,
        ai=ai,
        chain=chain,
        sessions=SessionStore(
            ttl_ms=settings.SESSION_TTL_HOURS * 60 * 60 * 1000,
            max_sessions=settings.MAX_SESSIONS,
        ),
        wizard=WizardController(ai, chain, accounts),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
