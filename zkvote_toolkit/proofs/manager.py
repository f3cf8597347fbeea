import asyncio
from typing import List, Optional, Tuple

from zkvote_toolkit.contracts.election import ElectionContract
from zkvote_toolkit.merkle.hashing import FieldLike, Hasher, get_hasher
from zkvote_toolkit.merkle.tree import IncrementalMerkleTree, build, locate
from zkvote_toolkit.proofs.engine import ProofEngine, SnarkjsBackend
from zkvote_toolkit.proofs.witness import (
    WitnessAssembler,
    compute_commitment,
)
from zkvote_toolkit.registry.decoder import LeafDecoder
from zkvote_toolkit.registry.log_retriever import LogRetriever, LogSource
from zkvote_toolkit.shared.constants import ElectionConfig
from zkvote_toolkit.shared.exceptions import (
    ProvingError,
    StaleRegistryError,
    WitnessError,
)
from zkvote_toolkit.shared.logging import get_logger
from zkvote_toolkit.shared.services.web3_service import Web3Service
from zkvote_toolkit.shared.types import (
    BallotProof,
    CircuitArtifacts,
    EventRecord,
    MembershipWitness,
)

_logger = get_logger(__name__)


class BallotProofPipeline:
    """
    Builds ballot proofs for one election.

    Every call rebuilds the registry tree from the event log; nothing is
    cached between calls. Collaborators can be injected for testing, and
    otherwise are built from `config`.
    """

    def __init__(
        self,
        config: ElectionConfig,
        web3_service: Optional[Web3Service] = None,
        log_source: Optional[LogSource] = None,
        contract: Optional[ElectionContract] = None,
        hasher: Optional[Hasher] = None,
        proof_engine: Optional[ProofEngine] = None,
        decoder: Optional[LeafDecoder] = None,
        artifacts: Optional[CircuitArtifacts] = None,
    ):
        self.config = config
        if web3_service is None and (log_source is None or contract is None):
            config.validate()
            web3_service = Web3Service(
                config.chain_id, config.rpc_url, request_timeout=config.rpc_timeout
            )
        self.web3_service = web3_service

        self.log_source = log_source or web3_service
        self.contract = contract or ElectionContract(
            web3_service, config.contract_address
        )
        self._owns_hasher = hasher is None
        self.hasher = hasher or get_hasher(config.hash_function)
        self.decoder = decoder or LeafDecoder()
        self.proof_engine = proof_engine or ProofEngine(
            SnarkjsBackend(config.snarkjs_bin, timeout=config.pipeline_timeout),
            verify=config.verify_proofs,
        )
        self.artifacts = artifacts or CircuitArtifacts.from_directory(
            config.circuits_dir
        )
        self.assembler = WitnessAssembler(self.hasher)

    def _retriever(self) -> LogRetriever:
        return LogRetriever(
            self.log_source,
            self.config.contract_address,
            [self.decoder.topic_hex],
            rpc_timeout=self.config.rpc_timeout,
            split_backoff=self.config.split_backoff,
            min_block_span=self.config.min_block_span,
            max_split_depth=self.config.max_split_depth,
            max_concurrency=self.config.max_concurrency,
        )

    async def fetch_registrations(self) -> List[EventRecord]:
        """All registration events since the configured start block."""
        return await self._retriever().fetch_events(
            self.config.start_block, "latest", decoder=self.decoder
        )

    async def build_registry_tree(self) -> IncrementalMerkleTree:
        """Fetch the registry and rebuild the contract's tree locally."""
        records = await self.fetch_registrations()
        # Hashing may round-trip to the Poseidon helper; keep it off the loop
        tree = await asyncio.to_thread(
            build,
            [r.commitment for r in records],
            self.config.tree_depth,
            self.hasher,
            self.config.zero_value,
        )
        _logger.info(f"Rebuilt registry: {len(tree)} leaves, root {tree.root}")
        return tree

    async def prepare_witness(
        self, secret: FieldLike, nullifier: FieldLike
    ) -> Tuple[MembershipWitness, IncrementalMerkleTree, int, List[int]]:
        """
        Rebuild the tree, locate the voter and assemble the witness.

        When root verification is on, the local root must be one the contract
        currently accepts. A mismatch means the local view lags the chain, so
        the registry is fetched and rebuilt again, up to `stale_retries`
        times.

        Raises:
            NotFoundError: the commitment is not registered
            StaleRegistryError: the root never matched the accepted window
        """
        try:
            commitment = await asyncio.to_thread(
                compute_commitment, secret, nullifier, self.hasher
            )
        except ValueError as e:
            raise WitnessError(str(e)) from e

        attempts = max(1, self.config.stale_retries + 1)
        attempt = 0
        while True:
            attempt += 1
            tree = await self.build_registry_tree()
            index = locate(tree, commitment)

            accepted: List[int] = []
            if self.config.verify_root:
                accepted = await self.contract.accepted_roots(
                    self.config.root_history_size
                )
                if tree.root not in accepted:
                    _logger.warning(
                        f"Local root {tree.root} not accepted on-chain "
                        f"(attempt {attempt}/{attempts})"
                    )
                    if attempt == attempts:
                        raise StaleRegistryError(
                            f"Local registry root {tree.root} is not in the "
                            f"contract's accepted roots after {attempts} rebuilds",
                            local_root=tree.root,
                        )
                    continue

            witness = await asyncio.to_thread(
                self.assembler.assemble, secret, nullifier, tree, index
            )
            return witness, tree, index, accepted

    async def _generate(
        self, secret: FieldLike, nullifier: FieldLike
    ) -> BallotProof:
        witness, tree, index, accepted = await self.prepare_witness(
            secret, nullifier
        )
        artifact = await self.proof_engine.prove(witness, self.artifacts)

        # Circuit public signals are (root, nullifierHash)
        expected = {witness.root, witness.nullifier_hash}
        if not expected.issubset(set(artifact.public_inputs)):
            raise ProvingError(
                "Public signals do not contain the witness root and nullifier hash"
            )

        return BallotProof(
            artifact=artifact,
            witness=witness,
            leaf_index=index,
            leaf_count=len(tree),
            root=tree.root,
            accepted_roots=accepted,
        )

    async def generate_ballot_proof(
        self, secret: FieldLike, nullifier: FieldLike
    ) -> BallotProof:
        """
        Full pipeline: retrieve, decode, build, locate, assemble, prove.

        Raises:
            asyncio.TimeoutError: the pipeline exceeded `pipeline_timeout`
            Any pipeline error, unchanged
        """
        if self.config.pipeline_timeout is None:
            return await self._generate(secret, nullifier)
        return await asyncio.wait_for(
            self._generate(secret, nullifier),
            timeout=self.config.pipeline_timeout,
        )

    async def cast_vote(
        self,
        secret: FieldLike,
        nullifier: FieldLike,
        contestant_id: int,
    ) -> Tuple[str, BallotProof]:
        """Prove and submit a ballot. Returns (tx hash, proof)."""
        self.config.validate(require_wallet=True)
        ballot = await self.generate_ballot_proof(secret, nullifier)

        if await self.contract.is_nullifier_spent(int(ballot.nullifier_hash)):
            raise WitnessError("A ballot with this nullifier was already cast")

        tx_hash = await self.contract.cast_vote(
            contestant_id, ballot.artifact, self.config.wallet_private_key
        )
        return tx_hash, ballot

    def close(self) -> None:
        if self._owns_hasher and hasattr(self.hasher, "close"):
            self.hasher.close()

    async def __aenter__(self) -> "BallotProofPipeline":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()
