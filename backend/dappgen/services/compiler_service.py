"""
Solidity compilation.

Two interchangeable compilers share one contract, ``compile(source) ->
CompileResponse``:

* SolcCompiler   – runs solc in-process through py-solc-x standard JSON
  (single file ``contract.sol``, optimizer on, 200 runs). This is also what
  backs POST /api/v1/compile.
* CompilerClient – POSTs ``{sourceCode}`` to a hosted endpoint speaking the
  same wire format.

A source that fails to compile raises AppException(400, COMPILATION_ERROR)
carrying the first compiler error message.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

import httpx
import solcx
from solcx.exceptions import SolcError, SolcNotInstalled

from dappgen.config import Settings
from dappgen.middleware.error_handler import AppException, upstream_message
from dappgen.models.schemas import CompileResponse
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

SOURCE_FILE = "contract.sol"

_COMPILE_TIMEOUT = 60

_REMOTE_TIMEOUT = httpx.Timeout(connect=10.0, read=90.0, write=10.0, pool=10.0)

# solc is CPU bound and blocking
_executor = ThreadPoolExecutor(max_workers=2)


class Compiler(Protocol):
    async def compile(self, source_code: str) -> CompileResponse: ...


def build_standard_input(source_code: str) -> dict[str, Any]:
    return {
        "language": "Solidity",
        "sources": {SOURCE_FILE: {"content": source_code}},
        "settings": {
            "outputSelection": {"*": {"*": ["*"]}},
            "optimizer": {"enabled": True, "runs": 200},
        },
    }


def extract_artifact(output: dict[str, Any]) -> CompileResponse:
    """Pick ABI + bytecode out of solc standard-JSON output.

    Errors are reported by their first message; warnings are ignored. Among the
    compiled contracts the first one with creation bytecode wins, so interfaces
    and abstract bases declared ahead of the main contract are skipped.
    """
    errors = [e for e in output.get("errors", []) if e.get("severity") == "error"]
    if errors:
        raise AppException(
            status_code=400,
            error_code="COMPILATION_ERROR",
            message=errors[0].get("message", "Compilation failed"),
            details={"error_count": len(errors)},
        )

    contracts = output.get("contracts", {}).get(SOURCE_FILE, {})
    for name, contract in contracts.items():
        bytecode = contract.get("evm", {}).get("bytecode", {}).get("object", "")
        if bytecode:
            logger.debug("Selected contract  name=%s  bytecode=%d chars", name, len(bytecode))
            return CompileResponse(abi=contract.get("abi", []), bytecode="0x" + bytecode)

    raise AppException(
        status_code=400,
        error_code="COMPILE_OUTPUT_INVALID",
        message="No contract found in compilation output",
    )


class SolcCompiler:
    """Compile with a locally installed solc binary."""

    def __init__(self, solc_version: str) -> None:
        self.solc_version = solc_version
        logger.info("SolcCompiler initialised  solc=%s", solc_version)

    def ensure_installed(self) -> None:
        """Download the pinned solc if it is not installed yet."""
        installed = {str(v) for v in solcx.get_installed_solc_versions()}
        if self.solc_version not in installed:
            logger.info("Installing solc %s", self.solc_version)
            solcx.install_solc(self.solc_version)

    def compile_sync(self, source_code: str) -> CompileResponse:
        if not source_code or not source_code.strip():
            raise AppException(
                status_code=400,
                error_code="EMPTY_SOURCE",
                message="Source code is required",
            )

        try:
            output = solcx.compile_standard(
                build_standard_input(source_code),
                solc_version=self.solc_version,
            )
        except SolcNotInstalled:
            logger.error("solc %s is not installed", self.solc_version)
            raise AppException(
                status_code=503,
                error_code="COMPILER_UNAVAILABLE",
                message=f"solc {self.solc_version} is not installed on the server.",
            )
        except SolcError as exc:
            # py-solc-x raises on error-severity diagnostics; keep solc's own output
            errors = getattr(exc, "error_dict", None)
            if not errors:
                first_line = (str(exc).strip().splitlines() or ["Compilation failed"])[0]
                errors = [{"severity": "error", "message": first_line}]
            return extract_artifact({"errors": errors})

        return extract_artifact(output)

    async def compile(self, source_code: str) -> CompileResponse:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(_executor, self.compile_sync, source_code),
                timeout=_COMPILE_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.error("Compilation timed out after %ds", _COMPILE_TIMEOUT)
            raise AppException(
                status_code=504,
                error_code="COMPILER_UNAVAILABLE",
                message=f"Compilation timed out after {_COMPILE_TIMEOUT}s.",
            )


class CompilerClient:
    """Client for a hosted compile endpoint."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=_REMOTE_TIMEOUT)
        logger.info("CompilerClient initialised  url=%s", url)

    async def compile(self, source_code: str) -> CompileResponse:
        logger.info("Sending compilation request  url=%s  size=%d", self.url, len(source_code))
        try:
            response = await self._client.post(self.url, json={"sourceCode": source_code})
        except httpx.HTTPError as exc:
            logger.error("Compiler endpoint unreachable: %s", exc)
            raise AppException(
                status_code=502,
                error_code="COMPILER_UNAVAILABLE",
                message="Unable to reach the compiler service.",
            )

        if not response.is_success:
            message = upstream_message(response, "Compilation failed")
            logger.error("Compilation failed with status %d: %s", response.status_code, message)
            status = 400 if response.status_code == 400 else 502
            raise AppException(
                status_code=status,
                error_code="COMPILATION_ERROR" if status == 400 else "COMPILER_UNAVAILABLE",
                message=message,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("abi") or not data.get("bytecode"):
            logger.error("Compiler returned an unusable body: %s", response.text[:200])
            raise AppException(
                status_code=502,
                error_code="COMPILE_OUTPUT_INVALID",
                message="Compiler response is missing abi or bytecode.",
            )
        return CompileResponse(abi=data["abi"], bytecode=data["bytecode"])


def build_compiler(settings: Settings) -> SolcCompiler | CompilerClient:
    if settings.COMPILER_URL:
        return CompilerClient(settings.COMPILER_URL)
    return SolcCompiler(settings.SOLC_VERSION)
