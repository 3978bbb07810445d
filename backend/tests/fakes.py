"""Test doubles and sample payloads shared by the test modules."""

from types import SimpleNamespace

from dappgen.models.schemas import CompileResponse, DeploymentResult, NetworkInfo
from dappgen.services.chain_service import ChainService

USER_WALLET = "0x" + "12" * 20
DEPLOYER_ADDRESS = "0x" + "34" * 20
CONTRACT_ADDRESS = "0x" + "56" * 20

VOTING_CONTRACT = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.19;

contract PrivateVoting {
    address private _owner;
    mapping(address => bool) private hasVoted;

    event OwnershipTransferred(address indexed previousOwner, address indexed newOwner);

    constructor() {
        _owner = msg.sender;
    }

    function owner() public view returns (address) {
        return _owner;
    }

    function transferOwnership(address newOwner) public {
        require(msg.sender == _owner, "Not owner");
        require(newOwner != address(0), "Zero address");
        emit OwnershipTransferred(_owner, newOwner);
        _owner = newOwner;
    }
}"""

MARKDOWN_REPLY = f"""\
```solidity
{VOTING_CONTRACT}
```

**Documentation:**
A private voting contract. Votes are stored privately and only the owner can tally them.
"""

XML_REPLY = f"""\
<CONTRACT>
{VOTING_CONTRACT}
</CONTRACT>
<EXPLANATION>
Added an emergency pause.
</EXPLANATION>
"""

SAMPLE_ABI = [
    {"inputs": [], "name": "owner", "outputs": [{"type": "address"}], "stateMutability": "view", "type": "function"},
]


NOW = 1_700_000_000_000


class Clock:
    """Settable millisecond clock."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class FakeAI:
    """Replays canned replies; an exception in the queue is raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def _next(self, kind, *args):
        self.calls.append((kind, *args))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_contract(self, description):
        return await self._next("generate", description)

    async def retry_generation(self, description, reason):
        return await self._next("retry", description, reason)

    async def optimize_contract(self, current_code, request, category=None):
        return await self._next("optimize", request, category)


class FakeCompiler:
    solc_version = "0.8.19"

    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    def ensure_installed(self):
        pass

    async def compile(self, source_code):
        self.calls.append(source_code)
        if self.error:
            raise self.error
        return CompileResponse(abi=SAMPLE_ABI, bytecode="0x6080604052")


class FakeChain:
    expected_chain_id = 443
    validate_address = staticmethod(ChainService.validate_address)

    def __init__(self, deploy_error=None, transfer_error=None):
        self.deployer = SimpleNamespace(address=DEPLOYER_ADDRESS)
        self.deploy_error = deploy_error
        self.transfer_error = transfer_error
        self.deployed = []
        self.transfers = []

    async def deploy_contract(self, source_code):
        self.deployed.append(source_code)
        if self.deploy_error:
            raise self.deploy_error
        return DeploymentResult(
            address=CONTRACT_ADDRESS,
            transaction_hash="0x" + "ab" * 32,
            block_number=12,
            abi=SAMPLE_ABI,
        )

    async def transfer_ownership(self, contract_address, new_owner):
        self.transfers.append((contract_address, new_owner))
        if self.transfer_error:
            raise self.transfer_error
        return "0x" + "cd" * 32

    async def get_network_info(self):
        return NetworkInfo(chain_id=443, name="TEN Testnet")

    async def check_balance(self):
        return "1.5"

    async def estimate_deployment_cost(self, source_code):
        return "0.0021"

    async def is_wallet_ready(self):
        return True
