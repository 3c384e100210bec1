"""ContractUtility: Async Web3 initialization and contract ABI loading."""

import json
import os
from functools import cache
from pathlib import Path

from web3 import AsyncWeb3

ABI_DIR = Path(__file__).parent / "abi"


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar rpc_url: Ethereum JSON-RPC endpoint.
    :ivar w3: Async Web3 instance bound to ``rpc_url``.
    """

    def __init__(self, rpc_url: str | None = None) -> None:
        """Initialize the contract utility.

        :param rpc_url: RPC endpoint; the RPC_URL env var when omitted.
        :raises ValueError: If no endpoint is configured.
        """
        self.rpc_url = rpc_url or os.environ.get("RPC_URL")
        if not self.rpc_url:
            raise ValueError("No RPC endpoint configured (set RPC_URL)")
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))

    @staticmethod
    @cache
    def get_abi(contract_name: str) -> list:
        """Load a contract ABI from the bundled abi folder.

        :param contract_name: Name of the contract (e.g., "ERC20").
        :returns: ABI as a list of entries.
        """
        output_path = (ABI_DIR / f"{contract_name}.json").resolve()
        with open(output_path, "r") as file:
            return json.load(file)
