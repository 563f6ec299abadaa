"""Resolution tracking and live proofs for published signals."""

from prescience.tracking.proofs import ProofGenerator
from prescience.tracking.resolution import ResolutionTracker

__all__ = ["ProofGenerator", "ResolutionTracker"]
