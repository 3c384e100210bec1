"""Web3DataSource: ChainDataSource backed by an Ethereum JSON-RPC node.

Contract handles are created once per (ABI, address) and reused. Every read
that depends on chain state accepts a block number and is pinned to it.

.. code-block:: python

    utility = ContractUtility("https://eth.example.org")
    source = Web3DataSource(utility.w3)
    block = await source.get_latest_block()
"""

from __future__ import annotations

import logging
from typing import Any

from web3 import AsyncWeb3
from web3.contract import AsyncContract

from ..ContractUtility import ContractUtility
from ..models import Block, CurvePoolCoins, LendingMarketState, RawEvent

logger = logging.getLogger(__name__)

# Curve's address provider is immutable.
CURVE_ADDRESS_PROVIDER = "0x0000000022D53366457F9d5E68Ec105046FC4383"
CURVE_POOL_INFO_ID = 1

BlockId = int | str


def _block_id(block_number: int | None) -> BlockId:
    return "latest" if block_number is None else block_number


class Web3DataSource:
    """Reads chain facts through an :class:`AsyncWeb3` instance.

    :ivar w3: Async Web3 client.
    """

    def __init__(self, w3: AsyncWeb3) -> None:
        self.w3 = w3
        self._contracts: dict[tuple[str, str], AsyncContract] = {}
        self._curve_registry: str | None = None
        self._curve_pool_info: str | None = None

    def contract(self, abi_name: str, address: str) -> AsyncContract:
        """Cached contract handle for ``address`` with the bundled ABI."""
        key = (abi_name, address.lower())
        if key not in self._contracts:
            self._contracts[key] = self.w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(address),
                abi=ContractUtility.get_abi(abi_name),
            )
        return self._contracts[key]

    # Blocks

    async def get_block(self, number: int) -> Block:
        block = await self.w3.eth.get_block(number)
        return Block(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def get_latest_block(self) -> Block:
        block = await self.w3.eth.get_block("latest")
        return Block(number=int(block["number"]), timestamp=int(block["timestamp"]))

    # ERC20

    async def get_token_decimals(self, token: str) -> int:
        return int(await self.contract("ERC20", token).functions.decimals().call())

    async def get_token_symbol(self, token: str) -> str:
        return str(await self.contract("ERC20", token).functions.symbol().call())

    async def get_total_supply(self, token: str, block_number: int | None = None) -> int:
        contract = self.contract("ERC20", token)
        return int(await contract.functions.totalSupply().call(block_identifier=_block_id(block_number)))

    # Weighted pools

    async def get_pool_balance(self, pool: str, token: str, block_number: int | None = None) -> int:
        contract = self.contract("BalancerPool", pool)
        token = AsyncWeb3.to_checksum_address(token)
        return int(await contract.functions.getBalance(token).call(block_identifier=_block_id(block_number)))

    async def get_pool_normalized_weight(self, pool: str, token: str, block_number: int | None = None) -> int:
        contract = self.contract("BalancerPool", pool)
        token = AsyncWeb3.to_checksum_address(token)
        return int(
            await contract.functions.getNormalizedWeight(token).call(block_identifier=_block_id(block_number))
        )

    # Constant-product pairs

    async def get_pair_tokens(self, pair: str) -> tuple[str, str]:
        contract = self.contract("UniswapPair", pair)
        token0 = await contract.functions.token0().call()
        token1 = await contract.functions.token1().call()
        return str(token0), str(token1)

    async def get_pair_reserves(self, pair: str, block_number: int | None = None) -> tuple[int, int]:
        contract = self.contract("UniswapPair", pair)
        reserve0, reserve1, _ = await contract.functions.getReserves().call(
            block_identifier=_block_id(block_number)
        )
        return int(reserve0), int(reserve1)

    # Lending markets

    async def get_lending_market_state(self, market: str, block_number: int | None = None) -> LendingMarketState:
        contract = self.contract("CToken", market)
        block_id = _block_id(block_number)
        return LendingMarketState(
            exchange_rate_stored=int(await contract.functions.exchangeRateStored().call(block_identifier=block_id)),
            supply_rate_per_block=int(await contract.functions.supplyRatePerBlock().call(block_identifier=block_id)),
            accrual_block_number=int(await contract.functions.accrualBlockNumber().call(block_identifier=block_id)),
        )

    async def get_lending_underlying(self, market: str) -> str:
        return str(await self.contract("CToken", market).functions.underlying().call())

    # Vaults

    async def get_vault_price_per_share(self, vault: str, block_number: int | None = None) -> int:
        contract = self.contract("Vault", vault)
        return int(await contract.functions.getPricePerFullShare().call(block_identifier=_block_id(block_number)))

    async def get_vault_token(self, vault: str) -> str:
        return str(await self.contract("Vault", vault).functions.token().call())

    async def get_vault_underlying(self, vault: str) -> str:
        return str(await self.contract("Vault", vault).functions.underlying().call())

    # Stable-swap pools

    async def _curve_registry_address(self) -> str:
        if self._curve_registry is None:
            provider = self.contract("CurveAddressProvider", CURVE_ADDRESS_PROVIDER)
            self._curve_registry = str(await provider.functions.get_registry().call())
        return self._curve_registry

    async def _curve_pool_info_address(self) -> str:
        if self._curve_pool_info is None:
            provider = self.contract("CurveAddressProvider", CURVE_ADDRESS_PROVIDER)
            self._curve_pool_info = str(await provider.functions.get_address(CURVE_POOL_INFO_ID).call())
        return self._curve_pool_info

    async def get_curve_pool_from_lp(self, lp_token: str) -> str:
        registry = self.contract("CurveRegistry", await self._curve_registry_address())
        lp_token = AsyncWeb3.to_checksum_address(lp_token)
        return str(await registry.functions.get_pool_from_lp_token(lp_token).call())

    async def get_curve_pool_coins(self, pool: str) -> CurvePoolCoins:
        registry = self.contract("CurveRegistry", await self._curve_registry_address())
        pool_info = self.contract("CurvePoolInfo", await self._curve_pool_info_address())
        checksummed = AsyncWeb3.to_checksum_address(pool)
        n_coins = (await registry.functions.get_n_coins(checksummed).call())[1]
        coins, underlying_coins, decimals, underlying_decimals = await pool_info.functions.get_pool_coins(
            checksummed
        ).call()
        return CurvePoolCoins(
            coins=tuple(str(c) for c in coins[:n_coins]),
            underlying_coins=tuple(str(c) for c in underlying_coins[:n_coins]),
            decimals=tuple(int(d) for d in decimals[:n_coins]),
            underlying_decimals=tuple(int(d) for d in underlying_decimals[:n_coins]),
        )

    async def _curve_balance(self, contract: AsyncContract, i: int, block_id: BlockId) -> int:
        try:
            fn = contract.get_function_by_signature("balances(uint256)")
            return int(await fn(i).call(block_identifier=block_id))
        except Exception as e:
            # Older pools index coins with int128.
            logger.debug(f"balances(uint256) failed on {contract.address}, trying int128: {e}")
            fn = contract.get_function_by_signature("balances(int128)")
            return int(await fn(i).call(block_identifier=block_id))

    async def get_curve_balances(self, pool: str, block_number: int | None = None) -> list[int]:
        coins = await self.get_curve_pool_coins(pool)
        contract = self.contract("CurvePool", pool)
        block_id = _block_id(block_number)
        return [await self._curve_balance(contract, i, block_id) for i in range(coins.n_coins)]

    async def get_curve_amplification(self, pool: str, block_number: int | None = None) -> int:
        contract = self.contract("CurvePool", pool)
        return int(await contract.functions.A().call(block_identifier=_block_id(block_number)))

    async def get_curve_rate_method_id(self, pool: str) -> str | None:
        """Rate method id from the latest ``PoolAdded`` registration of ``pool``."""
        registry = self.contract("CurveRegistry", await self._curve_registry_address())
        logs = await registry.events.PoolAdded.get_logs(
            argument_filters={"pool": AsyncWeb3.to_checksum_address(pool)},
            from_block=0,
            to_block="latest",
        )
        if not logs:
            return None
        latest = max(logs, key=lambda log: (log["blockNumber"], log["transactionIndex"], log["logIndex"]))
        rate_method_id = latest["args"]["rate_method_id"]
        return "0x" + bytes(rate_method_id).hex()

    # Converters

    async def get_converter_reserve_tokens(self, converter: str) -> tuple[str, str]:
        tokens = await self.contract("BancorConverter", converter).functions.reserveTokens().call()
        if len(tokens) != 2:
            raise ValueError(f"Converter {converter} has {len(tokens)} reserves, expected 2")
        return str(tokens[0]), str(tokens[1])

    async def get_converter_reserve_weight(self, converter: str, token: str) -> int:
        contract = self.contract("BancorConverter", converter)
        return int(await contract.functions.reserveWeight(AsyncWeb3.to_checksum_address(token)).call())

    # Logs

    _EVENT_ABIS = {"Sync": "UniswapPair", "TokenRateUpdate": "BancorConverter", "PoolAdded": "CurveRegistry"}

    async def get_events(
        self,
        address: str,
        event_name: str,
        from_block: int,
        to_block: int | None = None,
        argument_filters: dict[str, Any] | None = None,
    ) -> list[RawEvent]:
        abi_name = self._EVENT_ABIS.get(event_name)
        if abi_name is None:
            raise ValueError(f"Unsupported event '{event_name}'")
        event = getattr(self.contract(abi_name, address).events, event_name)
        if argument_filters:
            argument_filters = {
                name: [AsyncWeb3.to_checksum_address(v) for v in values] if isinstance(values, list) else values
                for name, values in argument_filters.items()
            }
        logs = await event.get_logs(
            argument_filters=argument_filters,
            from_block=from_block,
            to_block=_block_id(to_block),
        )
        logger.debug(f"{event_name}@{address}: {len(logs)} logs in blocks {from_block}..{to_block}")
        return [
            RawEvent(
                block_number=int(log["blockNumber"]),
                transaction_index=int(log["transactionIndex"]),
                log_index=int(log["logIndex"]),
                args=dict(log["args"]),
            )
            for log in logs
        ]
