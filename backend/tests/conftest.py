import httpx
import pytest

from dappgen.config import Settings
from dappgen.dependencies import Services
from dappgen.services.account_service import AccountService
from dappgen.services.discord_service import DiscordAuthService
from dappgen.services.user_store import MemoryUserStore
from dappgen.services.wizard_service import SessionStore, WizardController

from fakes import Clock, FakeAI, FakeChain, FakeCompiler


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="development",
        USER_STORE_BACKEND="memory",
        RATE_LIMIT_ENABLED=False,
        OPENROUTER_API_KEY="test-key",
        DISCORD_CLIENT_ID="client-id",
        DISCORD_CLIENT_SECRET="client-secret",
        DEPLOYER_PRIVATE_KEY="",
        COMPILER_URL="",
        MAX_REQUEST_BYTES=10_000,
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def accounts(clock):
    return AccountService(MemoryUserStore(), clock=clock)


@pytest.fixture
def make_services(settings, accounts):
    """Services with every upstream replaced by a fake."""

    def _make(ai=None, chain=None, solc=None, discord_handler=None):
        ai = ai or FakeAI()
        chain = chain or FakeChain()
        solc = solc or FakeCompiler()
        handler = discord_handler or (lambda request: httpx.Response(500))
        discord = DiscordAuthService(
            settings, accounts, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        return Services(
            settings=settings,
            accounts=accounts,
            discord=discord,
            solc=solc,
            compiler=solc,
            ai=ai,
            chain=chain,
            sessions=SessionStore(),
            wizard=WizardController(ai, chain, accounts),
        )

    return _make
