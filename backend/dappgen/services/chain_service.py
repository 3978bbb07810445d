"""
TEN network deployment service.

Wraps a web3.py HTTP provider and the deployer account: compiles and deploys
generated contracts, then hands ownership to the user's wallet. web3.py is
blocking, so every node call runs on a small thread pool.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from eth_account import Account
from web3 import Web3

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException
from dappgen.models.schemas import DeploymentResult, NetworkInfo
from dappgen.services.compiler_service import Compiler
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Timeout for a single node round trip (seconds)
_NODE_TIMEOUT = 30

# Waiting for one confirmation
_RECEIPT_TIMEOUT = 180

_executor = ThreadPoolExecutor(max_workers=4)

OWNERSHIP_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "address", "name": "newOwner", "type": "address"}],
        "name": "transferOwnership",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

_NETWORK_NAMES = {443: "TEN Testnet"}


class ChainService:
    """Deploys contracts and transfers ownership on the TEN network."""

    def __init__(
        self,
        settings: Settings,
        compiler: Compiler,
        w3: Web3 | None = None,
    ) -> None:
        self.compiler = compiler
        self.expected_chain_id = settings.TEN_NETWORK_ID
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(settings.TEN_RPC_URL, request_kwargs={"timeout": _NODE_TIMEOUT}))
        self.w3 = w3
        self._private_key = settings.DEPLOYER_PRIVATE_KEY.strip()
        self.deployer = Account.from_key(self._private_key) if self._private_key else None
        logger.info(
            "ChainService initialised  rpc=%s  deployer=%s",
            settings.TEN_RPC_URL,
            self.deployer.address if self.deployer else "<none>",
        )

    # ── Helpers ───────────────────────────────────────────────

    @staticmethod
    def validate_address(address: str) -> bool:
        try:
            return bool(address) and Web3.is_address(address)
        except (TypeError, ValueError):
            return False

    def _require_deployer(self):
        if self.deployer is None:
            raise AppException(
                status_code=503,
                error_code="CHAIN_NOT_CONFIGURED",
                message="No deployer key configured on the server.",
            )
        return self.deployer

    async def _call(self, fn: Callable[..., T], *args: Any, timeout: float = _NODE_TIMEOUT, **kwargs: Any) -> T:
        """Run a blocking web3 call on the executor."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(_executor, functools.partial(fn, *args, **kwargs)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Node call %s timed out after %ss", getattr(fn, "__name__", fn), timeout)
            raise AppException(
                status_code=504,
                error_code="CHAIN_ERROR",
                message=f"TEN node timed out after {timeout}s.",
            )

    def _sign_and_send(self, tx: dict[str, Any]) -> Any:
        """Sign with the deployer key, broadcast, and wait for one receipt."""
        signed = self.w3.eth.account.sign_transaction(tx, self._private_key)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Transaction sent  hash=%s", Web3.to_hex(tx_hash))
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=_RECEIPT_TIMEOUT)
        if receipt["status"] != 1:
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message=f"Transaction {Web3.to_hex(tx_hash)} reverted.",
            )
        return receipt

    def _tx_params(self, sender: str) -> dict[str, Any]:
        return {
            "from": sender,
            "nonce": self.w3.eth.get_transaction_count(sender),
            "chainId": self.w3.eth.chain_id,
            "gasPrice": self.w3.eth.gas_price,
        }

    # ── Deployment ────────────────────────────────────────────

    def _deploy_sync(self, abi: list[dict[str, Any]], bytecode: str) -> DeploymentResult:
        deployer = self._require_deployer()
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        tx = factory.constructor().build_transaction(self._tx_params(deployer.address))
        receipt = self._sign_and_send(tx)
        return DeploymentResult(
            address=receipt["contractAddress"],
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
            abi=abi,
        )

    async def deploy_contract(self, source_code: str) -> DeploymentResult:
        """Compile, deploy with no constructor args, wait for one confirmation."""
        self._require_deployer()
        try:
            logger.info("Compiling contract...")
            compiled = await self.compiler.compile(source_code)

            logger.info("Deploying contract...")
            result = await self._call(
                self._deploy_sync, compiled.abi, compiled.bytecode, timeout=_RECEIPT_TIMEOUT + _NODE_TIMEOUT
            )
        except AppException:
            raise
        except Exception as exc:
            logger.error("Deployment failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message=f"Deployment failed: {str(exc)[:300]}",
            )

        logger.info("Contract deployed  address=%s  block=%d", result.address, result.block_number)
        return result

    def _transfer_sync(self, contract_address: str, new_owner: str) -> str:
        deployer = self._require_deployer()
        contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=OWNERSHIP_ABI
        )

        current_owner = contract.functions.owner().call()
        if current_owner.lower() != deployer.address.lower():
            raise AppException(
                status_code=400,
                error_code="OWNERSHIP_MISMATCH",
                message="Transfer failed: Current wallet is not the contract owner",
                details={"owner": current_owner},
            )

        logger.info("Transferring ownership  contract=%s  to=%s", contract_address, new_owner)
        tx = contract.functions.transferOwnership(
            Web3.to_checksum_address(new_owner)
        ).build_transaction(self._tx_params(deployer.address))
        receipt = self._sign_and_send(tx)
        return Web3.to_hex(receipt["transactionHash"])

    async def transfer_ownership(self, contract_address: str, new_owner: str) -> str:
        """Hand the deployed contract to *new_owner*; returns the tx hash."""
        if not self.validate_address(new_owner):
            raise AppException(
                status_code=400,
                error_code="INVALID_ADDRESS",
                message="Transfer failed: Invalid address format",
            )

        try:
            tx_hash = await self._call(
                self._transfer_sync, contract_address, new_owner, timeout=_RECEIPT_TIMEOUT + _NODE_TIMEOUT
            )
        except AppException:
            raise
        except Exception as exc:
            logger.error("Ownership transfer failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message=f"Transfer failed: {str(exc)[:300]}",
            )

        logger.info("Ownership transferred  contract=%s  tx=%s", contract_address, tx_hash)
        return tx_hash

    # ── Wallet / network info ─────────────────────────────────

    def _estimate_sync(self, abi: list[dict[str, Any]], bytecode: str) -> str:
        deployer = self._require_deployer()
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        gas = factory.constructor().estimate_gas({"from": deployer.address})
        cost = gas * self.w3.eth.gas_price
        return str(Web3.from_wei(cost, "ether"))

    async def estimate_deployment_cost(self, source_code: str) -> str:
        try:
            compiled = await self.compiler.compile(source_code)
            return await self._call(self._estimate_sync, compiled.abi, compiled.bytecode)
        except AppException:
            raise
        except Exception as exc:
            logger.error("Gas estimation failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message="Failed to estimate deployment cost",
            )

    async def check_balance(self) -> str:
        deployer = self._require_deployer()
        try:
            wei = await self._call(self.w3.eth.get_balance, deployer.address)
        except AppException:
            raise
        except Exception as exc:
            logger.error("Balance check failed: %s", exc)
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message="Failed to check wallet balance",
            )
        return str(Web3.from_wei(wei, "ether"))

    async def get_network_info(self) -> NetworkInfo:
        try:
            chain_id = await self._call(lambda: self.w3.eth.chain_id)
        except AppException:
            raise
        except Exception as exc:
            logger.error("Failed to get network info: %s", exc)
            raise AppException(
                status_code=502,
                error_code="CHAIN_ERROR",
                message="Failed to get network information",
            )
        return NetworkInfo(chain_id=chain_id, name=_NETWORK_NAMES.get(chain_id, f"chain-{chain_id}"))

    async def is_wallet_ready(self) -> bool:
        """Deployer has funds and the node is on the expected network."""
        try:
            balance = await self.check_balance()
            network = await self.get_network_info()
        except AppException as exc:
            logger.warning("Wallet readiness check failed: %s", exc.message)
            return False
        return float(balance) > 0 and network.chain_id == self.expected_chain_id
