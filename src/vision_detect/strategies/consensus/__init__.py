"""Consensus strategy: N attempts per input, "any positive" final detection.

Trades precision for recall - one positive attempt is enough to report a
detection; the detection rate sets the confidence level.

Usage:
    uv run python -m vision_detect.strategies.consensus "https://example.com/clip.mp4" --runs 5
"""

from .consensus import (
    ANALYSIS_FAILED,
    CONSISTENT_NEGATIVE,
    HIGH_DETECTION_RATE,
    LOW_DETECTION_RATE,
    MAX_RUNS,
    MIN_RUNS,
    MODERATE_DETECTION_RATE,
    NEGATIVE_CONSENSUS_MESSAGE,
    ConsensusMetrics,
    ConsensusVerdict,
    failed_verdict,
    reduce_attempts,
    run_consensus,
    run_consensus_analysis,
)

__all__ = [
    "ANALYSIS_FAILED",
    "CONSISTENT_NEGATIVE",
    "HIGH_DETECTION_RATE",
    "LOW_DETECTION_RATE",
    "MAX_RUNS",
    "MIN_RUNS",
    "MODERATE_DETECTION_RATE",
    "NEGATIVE_CONSENSUS_MESSAGE",
    "ConsensusMetrics",
    "ConsensusVerdict",
    "failed_verdict",
    "reduce_attempts",
    "run_consensus",
    "run_consensus_analysis",
]
