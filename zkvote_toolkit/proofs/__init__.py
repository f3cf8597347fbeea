from zkvote_toolkit.proofs.engine import ProofEngine, SnarkjsBackend
from zkvote_toolkit.proofs.manager import BallotProofPipeline
from zkvote_toolkit.proofs.witness import WitnessAssembler

__all__ = [
    "BallotProofPipeline",
    "ProofEngine",
    "SnarkjsBackend",
    "WitnessAssembler",
]
