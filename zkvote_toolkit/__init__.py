"""zkVote Toolkit - Python SDK for anonymous ballot proofs."""

__version__ = "0.3.0"

from .proofs import BallotProofPipeline
from .shared.constants import ElectionConfig

__all__ = ["BallotProofPipeline", "ElectionConfig"]
