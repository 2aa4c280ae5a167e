"""Consensus detection: N paced attempts on one input, folded into one verdict.

Pipeline:
  1. Launch N attempts as concurrent tasks, pausing `launch_delay` between
     launches to respect endpoint rate limits
  2. Wait for every attempt (no early exit, no cross-attempt cancellation)
  3. Fold the attempts with the "any positive" policy

"Any positive" favors recall: a single positive attempt makes the final
detection positive. The detection rate only moves the confidence level.

    detection rate >= 0.6   -> 0.9  HIGH_DETECTION_RATE
    0.4 <= rate < 0.6       -> 0.7  MODERATE_DETECTION_RATE
    0 < rate < 0.4          -> 0.5  LOW_DETECTION_RATE
    no positives            -> 0.8  CONSISTENT_NEGATIVE

Usage:
    from vision_detect.strategies.consensus import run_consensus
    verdict = await run_consensus(client, url, prompt, model, 400, runs=3)
"""

import asyncio
import sys
import time
from dataclasses import dataclass, field
from typing import Sequence

from ...api import InferenceClient
from ...config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, load_config
from ...detection import AttemptResult, analyze, failed_attempt
from ...prompts import build_detection_prompt
from ...urls import to_direct_url

MIN_RUNS = 2
MAX_RUNS = 10
DEFAULT_RUNS = 3
DEFAULT_LAUNCH_DELAY = 0.5
SLOW_AVERAGE_MS = 8000

HIGH_DETECTION_RATE = "HIGH_DETECTION_RATE"
MODERATE_DETECTION_RATE = "MODERATE_DETECTION_RATE"
LOW_DETECTION_RATE = "LOW_DETECTION_RATE"
CONSISTENT_NEGATIVE = "CONSISTENT_NEGATIVE"
ANALYSIS_FAILED = "ANALYSIS_FAILED"

NEGATIVE_CONSENSUS_MESSAGE = "No object detected based on consensus analysis."


@dataclass(frozen=True)
class ConsensusMetrics:
    """Counts and quality flags over the attempts of one input."""

    total_runs: int = 0
    positive_detections: int = 0
    negative_detections: int = 0
    average_processing_time_ms: float = 0.0
    detection_consistency: float = 0.0
    quality_flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConsensusVerdict:
    """Aggregate decision for one input."""

    final_detection: bool
    confidence_level: float
    consensus_description: str
    metrics: ConsensusMetrics
    recommendation: str
    attempts: tuple[AttemptResult, ...] = field(default=())

    @property
    def failed(self) -> bool:
        return ANALYSIS_FAILED in self.metrics.quality_flags


def failed_verdict(message: str) -> ConsensusVerdict:
    """Verdict returned when the reduction itself could not complete."""
    return ConsensusVerdict(
        final_detection=False,
        confidence_level=0.0,
        consensus_description=f"Consensus analysis failed: {message}",
        metrics=ConsensusMetrics(quality_flags=(ANALYSIS_FAILED,)),
        recommendation=(
            f"Consensus analysis failed: {message}. "
            "Check the input reference and endpoint configuration, then rerun."
        ),
    )


def _confidence_for(positive: int, detection_rate: float) -> tuple[float, str]:
    if positive == 0:
        return 0.8, CONSISTENT_NEGATIVE
    if detection_rate >= 0.6:
        return 0.9, HIGH_DETECTION_RATE
    if detection_rate >= 0.4:
        return 0.7, MODERATE_DETECTION_RATE
    return 0.5, LOW_DETECTION_RATE


def build_recommendation(
    final_detection: bool,
    detection_rate: float,
    error_count: int,
    total_runs: int,
    average_processing_time_ms: float,
    confidence_level: float,
) -> str:
    """Advisory text for a verdict. Not used in any further computation."""
    notes = []

    if final_detection and detection_rate < 0.4:
        notes.append(
            "Low detection rate suggests challenging detection conditions "
            "or intermittent object presence."
        )
        notes.append(
            "Consider manual review or additional analysis runs for confirmation."
        )

    if not final_detection:
        notes.append(
            "No positive detections across all analysis runs - "
            "high confidence in negative result."
        )

    if error_count:
        notes.append(f"{error_count}/{total_runs} attempts encountered errors.")

    if average_processing_time_ms > SLOW_AVERAGE_MS:
        notes.append(
            "High processing times detected - consider optimizing the input "
            "(shorter or smaller media) for better performance."
        )

    if confidence_level >= 0.8:
        notes.append("High confidence result.")
    elif confidence_level >= 0.6:
        notes.append("Moderate confidence - consider additional verification.")
    else:
        notes.append("Low confidence result - manual verification strongly recommended.")

    return " ".join(notes)


def reduce_attempts(attempts: Sequence[AttemptResult]) -> ConsensusVerdict:
    """Fold attempts for one input into a verdict.

    Raises:
        ValueError: if `attempts` is empty (no detection rate to compute)
    """
    attempts = tuple(sorted(attempts, key=lambda a: a.attempt_number))
    total = len(attempts)
    if total == 0:
        raise ValueError("cannot reduce an empty set of attempts")

    positives = [a for a in attempts if a.detected]
    positive = len(positives)
    negative = total - positive

    timed = [a.timings.total_ms for a in attempts if a.timings.total_ms > 0]
    average_ms = sum(timed) / len(timed) if timed else 0.0

    detection_rate = positive / total
    final_detection = positive > 0
    confidence_level, flag = _confidence_for(positive, detection_rate)

    if final_detection:
        # max() keeps the first of equally long descriptions
        description = max(positives, key=lambda a: len(a.description)).description
    else:
        description = NEGATIVE_CONSENSUS_MESSAGE

    error_count = sum(1 for a in attempts if a.error_message)

    metrics = ConsensusMetrics(
        total_runs=total,
        positive_detections=positive,
        negative_detections=negative,
        average_processing_time_ms=average_ms,
        detection_consistency=max(positive, negative) / total,
        quality_flags=(flag,),
    )

    return ConsensusVerdict(
        final_detection=final_detection,
        confidence_level=confidence_level,
        consensus_description=description,
        metrics=metrics,
        recommendation=build_recommendation(
            final_detection,
            detection_rate,
            error_count,
            total,
            average_ms,
            confidence_level,
        ),
        attempts=attempts,
    )


async def _run_attempt(
    client: InferenceClient,
    input_ref: str,
    prompt: str,
    model: str,
    max_tokens: int,
    attempt_number: int,
) -> AttemptResult:
    try:
        return await analyze(
            client, input_ref, prompt, model, max_tokens, attempt_number
        )
    except Exception as e:
        print(f"  [attempt {attempt_number}] FAILED: {e}", file=sys.stderr)
        return failed_attempt(str(e) or type(e).__name__, attempt_number)


async def run_consensus(
    client: InferenceClient,
    input_ref: str,
    prompt: str,
    model: str,
    max_tokens: int,
    runs: int = DEFAULT_RUNS,
    launch_delay: float = DEFAULT_LAUNCH_DELAY,
) -> ConsensusVerdict:
    """Run `runs` attempts on one input and reduce them to a verdict.

    Args:
        client: Shared inference client
        input_ref: Direct URL of the media
        prompt: Detection prompt
        model: Model identifier
        max_tokens: Answer token limit
        runs: Number of attempts. Callers keep this within [MIN_RUNS, MAX_RUNS].
        launch_delay: Seconds between successive launches

    Returns:
        ConsensusVerdict. Never raises: a failed reduction comes back flagged
        ANALYSIS_FAILED.
    """
    start = time.time()
    tasks: list[asyncio.Task] = []
    print(f"Consensus: {runs} runs on {input_ref}", file=sys.stderr)

    try:
        for i in range(runs):
            tasks.append(
                asyncio.create_task(
                    _run_attempt(client, input_ref, prompt, model, max_tokens, i + 1),
                    name=f"attempt_{i + 1}",
                )
            )
            if i < runs - 1 and launch_delay > 0:
                await asyncio.sleep(launch_delay)

        # gather keeps launch order, so attempt numbers line up with results
        attempts = await asyncio.gather(*tasks)
        verdict = reduce_attempts(attempts)
    except Exception as e:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        print(f"Consensus FAILED after {time.time() - start:.1f}s: {e}", file=sys.stderr)
        return failed_verdict(str(e) or type(e).__name__)

    metrics = verdict.metrics
    print(
        f"Consensus complete in {time.time() - start:.1f}s: "
        f"{metrics.positive_detections}/{metrics.total_runs} positive, "
        f"final={verdict.final_detection}, confidence={verdict.confidence_level:.0%}",
        file=sys.stderr,
    )
    return verdict


async def run_consensus_analysis(
    client: InferenceClient,
    input_ref: str,
    object_name: str,
    model: str = DEFAULT_MODEL,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    runs: int = DEFAULT_RUNS,
    launch_delay: float = DEFAULT_LAUNCH_DELAY,
) -> ConsensusVerdict:
    """Convert a sharing link, build the prompt and run consensus on it."""
    if not MIN_RUNS <= runs <= MAX_RUNS:
        raise ValueError(
            f"Number of runs must be between {MIN_RUNS} and {MAX_RUNS}, got {runs}"
        )
    return await run_consensus(
        client,
        to_direct_url(input_ref),
        build_detection_prompt(object_name),
        model,
        max_tokens,
        runs=runs,
        launch_delay=launch_delay,
    )


async def main():
    import argparse

    from ...report import format_consensus_report

    parser = argparse.ArgumentParser(
        description="Consensus detection (N paced attempts, any-positive policy)"
    )
    parser.add_argument("url", help="Video URL (sharing links are converted)")
    parser.add_argument("--object", default="Bird", help="Object to detect")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL, help="Vision model")
    parser.add_argument(
        "-n",
        "--runs",
        type=int,
        default=DEFAULT_RUNS,
        help=f"Number of attempts ({MIN_RUNS}-{MAX_RUNS})",
    )
    args = parser.parse_args()

    if not MIN_RUNS <= args.runs <= MAX_RUNS:
        parser.error(f"--runs must be between {MIN_RUNS} and {MAX_RUNS}")

    async with InferenceClient(load_config()) as client:
        verdict = await run_consensus_analysis(
            client, args.url, args.object, args.model, runs=args.runs
        )

    print(format_consensus_report(verdict, args.object, to_direct_url(args.url), args.model))


if __name__ == "__main__":
    asyncio.run(main())
