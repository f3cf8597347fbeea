"""Reader/writer for the ZkElection voting contract."""

from typing import List, Optional

from eth_utils import event_abi_to_log_topic
from web3.exceptions import TimeExhausted

from zkvote_toolkit.shared.constants import RegistryConstants
from zkvote_toolkit.shared.exceptions import TransactionError
from zkvote_toolkit.shared.logging import get_logger
from zkvote_toolkit.shared.retry import RPC_RETRY_CONFIG, RetryConfig
from zkvote_toolkit.shared.services.resource_manager import (
    resource_manager,
)
from zkvote_toolkit.shared.services.web3_service import Web3Service
from zkvote_toolkit.shared.types import ProofArtifact
from zkvote_toolkit.utils.formatters import to_0x_hex

_logger = get_logger(__name__)


class ElectionContract:
    """
    Thin async wrapper around the election contract.

    View calls go through RPC_RETRY_CONFIG; transactions are sent once.
    """

    def __init__(
        self,
        web3_service: Web3Service,
        address: str,
        abi_name: str = RegistryConstants.ELECTION_ABI,
        retry_config: RetryConfig = RPC_RETRY_CONFIG,
    ):
        self.web3_service = web3_service
        self.address = address
        self.abi_name = abi_name
        self.retry_config = retry_config
        self.contract = web3_service.get_contract(address, abi_name)

    def registered_topic(self) -> str:
        """topic0 of the `Registered` event."""
        event_abi = resource_manager.load_event_abi(
            self.abi_name, RegistryConstants.REGISTERED_EVENT
        )
        return to_0x_hex(event_abi_to_log_topic(event_abi))

    async def get_root(self) -> int:
        return int(
            await self.retry_config.run(
                self.contract.functions.getRoot().call,
                operation_name="getRoot",
            )
        )

    async def root_at(self, slot: int) -> int:
        return int(
            await self.retry_config.run(
                self.contract.functions.roots(slot).call,
                operation_name=f"roots({slot})",
            )
        )

    async def accepted_roots(
        self, history_size: int = RegistryConstants.DEFAULT_ROOT_HISTORY_SIZE
    ) -> List[int]:
        """
        Current root followed by the contract's root history window.

        Empty (zero) history slots are skipped; order is kept, duplicates
        dropped.
        """
        roots = [await self.get_root()]
        for slot in range(history_size):
            roots.append(await self.root_at(slot))

        accepted: List[int] = []
        for root in roots:
            if root != 0 and root not in accepted:
                accepted.append(root)
        _logger.debug(f"Accepted roots: {accepted}")
        return accepted

    async def is_known_root(
        self,
        root: int,
        history_size: int = RegistryConstants.DEFAULT_ROOT_HISTORY_SIZE,
    ) -> bool:
        return root in await self.accepted_roots(history_size)

    async def is_nullifier_spent(self, nullifier_hash: int) -> bool:
        """True if a ballot with this nullifier hash was already cast."""
        return bool(
            await self.retry_config.run(
                self.contract.functions.nullifierHashes(nullifier_hash).call,
                operation_name="nullifierHashes",
            )
        )

    async def cast_vote(
        self,
        contestant_id: int,
        artifact: ProofArtifact,
        private_key: str,
        gas: Optional[int] = None,
    ) -> str:
        """
        Sign and send `vote(contestantId, a, b, c, input)`.

        Returns:
            Transaction hash as a 0x-prefixed hex string

        Raises:
            TransactionError: the transaction could not be sent or reverted
        """
        w3 = self.web3_service.w3
        account = w3.eth.account.from_key(private_key)
        a, b, c, inputs = artifact.as_uint_args()

        tx_params = {
            "from": account.address,
            "nonce": await w3.eth.get_transaction_count(account.address),
            "chainId": self.web3_service.chain_id,
        }
        if gas is not None:
            tx_params["gas"] = gas

        try:
            tx = await self.contract.functions.vote(
                contestant_id, a, b, c, inputs
            ).build_transaction(tx_params)
            signed = account.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise TransactionError(f"Failed to send vote transaction: {e}") from e

        tx_hex = to_0x_hex(tx_hash)
        _logger.info(f"Vote submitted: {tx_hex}")

        try:
            receipt = await w3.eth.wait_for_transaction_receipt(tx_hash)
        except TimeExhausted as e:
            raise TransactionError(
                f"No receipt for vote transaction {tx_hex}: {e}", tx_hash=tx_hex
            ) from e
        if receipt.get("status") != 1:
            raise TransactionError("Vote transaction reverted", tx_hash=tx_hex)
        return tx_hex
