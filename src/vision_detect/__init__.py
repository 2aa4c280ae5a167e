"""Object detection in videos through a remote vision model.

Single attempts, any-positive consensus over several attempts, and CSV
batch processing over lists of video URLs or public Drive folders.
"""

from .api import InferenceClient, InferenceError
from .batch import AnalysisMode, BatchRecord, BatchResult, Status, run_batch, run_folder
from .classify import classify
from .config import ConfigurationError, InferenceConfig, load_config
from .detection import AttemptResult, Timings, analyze
from .strategies.consensus import ConsensusMetrics, ConsensusVerdict, run_consensus

__all__ = [
    "AnalysisMode",
    "AttemptResult",
    "BatchRecord",
    "BatchResult",
    "ConfigurationError",
    "ConsensusMetrics",
    "ConsensusVerdict",
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "Status",
    "Timings",
    "analyze",
    "classify",
    "load_config",
    "run_batch",
    "run_consensus",
    "run_folder",
]
