"""Analysis strategies for object detection in media."""

from .consensus import run_consensus, run_consensus_analysis
from .single import run_single

__all__ = ["run_consensus", "run_consensus_analysis", "run_single"]
