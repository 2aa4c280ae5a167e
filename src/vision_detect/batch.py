"""Batch orchestration: one detection record per input, persisted as CSV.

Pipeline:
  1. For each input, convert the reference and run single or consensus analysis
  2. Sequential mode pauses `input_delay` between inputs; concurrent mode
     dispatches waves of `max_concurrency` inputs with the pause between waves
  3. Any exception while processing an input becomes a Failed record for that
     input - the batch itself never aborts
  4. Records are emitted in input order and counters computed once at the end
  5. The CSV is rendered in memory and written in one call

Usage:
    from vision_detect.batch import AnalysisMode, run_batch
    result = await run_batch(client, urls, "Bird", mode=AnalysisMode.with_consensus(3))
"""

import asyncio
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

import httpx

from .api import InferenceClient
from .config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL
from .detection import AttemptResult, analyze
from .drive import extract_folder_id, list_folder_files
from .prompts import build_detection_prompt
from .strategies.consensus import MAX_RUNS, MIN_RUNS, ConsensusVerdict, run_consensus
from .urls import to_direct_url

DEFAULT_INPUT_DELAY = 1.0
DEFAULT_LAUNCH_DELAY = 0.5

NO_INPUTS_ERROR = "No inputs found"
NO_INPUTS_MESSAGE = (
    "No valid input references were provided. Supply absolute http(s) URLs "
    "separated by newlines or commas."
)
FOLDER_EMPTY_MESSAGE = (
    "Could not automatically discover videos in folder. Please provide "
    "individual video URLs or ensure the folder is publicly accessible."
)


class Status(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnalysisMode:
    """Single attempt per input, or consensus over `runs` attempts."""

    consensus: bool = False
    runs: int = 1

    def __post_init__(self):
        if self.consensus and not MIN_RUNS <= self.runs <= MAX_RUNS:
            raise ValueError(
                f"Number of runs must be between {MIN_RUNS} and {MAX_RUNS} "
                f"for meaningful consensus analysis, got {self.runs}"
            )

    @classmethod
    def single(cls) -> "AnalysisMode":
        return cls()

    @classmethod
    def with_consensus(cls, runs: int = 3) -> "AnalysisMode":
        return cls(consensus=True, runs=runs)

    def describe(self) -> str:
        return f"consensus x{self.runs}" if self.consensus else "single"


@dataclass
class BatchRecord:
    """Output row for one input. Created when processing of the input begins."""

    input_ref: str
    has_detection: bool = False
    description: str = ""
    confidence_score: float = 0.0
    processing_time_ms: int = 0
    status: Status = Status.SUCCESS
    error_message: str | None = None
    processed_at: datetime = field(default_factory=_utcnow)

    def mark_failed(self, error_message: str, description: str) -> None:
        self.status = Status.FAILED
        self.has_detection = False
        self.error_message = error_message
        self.description = description


@dataclass
class BatchResult:
    """All records of one batch plus counters computed after collection."""

    records: list[BatchRecord]
    total_inputs: int
    processed_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    output_path: Path | None = None
    write_error: str | None = None

    @property
    def elapsed_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


def default_output_path(
    object_name: str,
    now: datetime | None = None,
    directory: Path | None = None,
) -> Path:
    """`<object>_detection_results_<YYYYmmdd_HHMMSS>.csv` in the working directory."""
    now = now or datetime.now()
    slug = "_".join(object_name.strip().lower().split()) or "object"
    file_name = f"{slug}_detection_results_{now:%Y%m%d_%H%M%S}.csv"
    return (directory or Path.cwd()) / file_name


def _apply_attempt(record: BatchRecord, attempt: AttemptResult) -> None:
    record.processing_time_ms = attempt.timings.total_ms
    if attempt.error_message:
        record.mark_failed(attempt.error_message, attempt.description)
        return
    record.has_detection = attempt.detected
    record.description = attempt.description
    record.confidence_score = attempt.confidence_score


def _apply_verdict(record: BatchRecord, verdict: ConsensusVerdict) -> None:
    if verdict.failed:
        record.mark_failed(verdict.recommendation, verdict.consensus_description)
        return
    record.has_detection = verdict.final_detection
    record.description = verdict.consensus_description
    record.confidence_score = verdict.confidence_level
    record.processing_time_ms = int(verdict.metrics.average_processing_time_ms)


async def _process_input(
    client: InferenceClient,
    input_ref: str,
    prompt: str,
    model: str,
    max_tokens: int,
    mode: AnalysisMode,
    launch_delay: float,
    url_converter: Callable[[str], str],
) -> BatchRecord:
    record = BatchRecord(input_ref=input_ref)
    start = time.perf_counter()

    try:
        direct_ref = url_converter(input_ref)
        if mode.consensus:
            verdict = await run_consensus(
                client,
                direct_ref,
                prompt,
                model,
                max_tokens,
                runs=mode.runs,
                launch_delay=launch_delay,
            )
            _apply_verdict(record, verdict)
        else:
            attempt = await analyze(client, direct_ref, prompt, model, max_tokens)
            _apply_attempt(record, attempt)
    except Exception as e:
        message = str(e) or type(e).__name__
        record.mark_failed(message, f"Processing error: {message}")
        record.processing_time_ms = int((time.perf_counter() - start) * 1000)
        print(f"  FAILED {input_ref}: {message}", file=sys.stderr)

    return record


def _finalize(result: BatchResult, output_path: Path | None) -> BatchResult:
    from .report import write_records_csv

    result.end_time = _utcnow()
    if output_path is None:
        return result

    try:
        write_records_csv(result.records, output_path)
        result.output_path = output_path
        print(f"Output: {output_path}", file=sys.stderr)
    except OSError as e:
        result.write_error = f"{type(e).__name__}: {e}"
        print(f"Could not write {output_path}: {e}", file=sys.stderr)
    return result


async def run_batch(
    client: InferenceClient,
    inputs: Sequence[str],
    object_name: str,
    model: str = DEFAULT_MODEL,
    mode: AnalysisMode | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    max_concurrency: int = 1,
    input_delay: float = DEFAULT_INPUT_DELAY,
    launch_delay: float = DEFAULT_LAUNCH_DELAY,
    output_path: Path | None = None,
    url_converter: Callable[[str], str] = to_direct_url,
    empty_message: str = NO_INPUTS_MESSAGE,
) -> BatchResult:
    """Analyze every input and collect one record per input.

    Args:
        client: Shared inference client
        inputs: Input references in the order records should be emitted
        object_name: Object to detect; used for the prompt and labels
        model: Vision model
        mode: AnalysisMode (default: single)
        max_tokens: Answer token limit
        max_concurrency: Inputs in flight at once (1 = sequential)
        input_delay: Seconds between inputs (sequential) or waves (concurrent)
        launch_delay: Seconds between consensus attempt launches
        output_path: CSV destination; nothing is written when None
        url_converter: Sharing-link converter applied to each input
        empty_message: Description of the synthetic record for an empty input set

    Returns:
        BatchResult with records in input order
    """
    mode = mode or AnalysisMode.single()
    inputs = list(inputs)
    start_time = _utcnow()
    total = len(inputs)

    if not inputs:
        print("No inputs to process", file=sys.stderr)
        record = BatchRecord(input_ref="")
        record.mark_failed(NO_INPUTS_ERROR, empty_message)
        result = BatchResult(records=[record], total_inputs=0, start_time=start_time)
        return _finalize(result, output_path)

    print(
        f"Batch: {total} inputs, object={object_name}, mode={mode.describe()}, "
        f"concurrency={max_concurrency}",
        file=sys.stderr,
    )

    prompt = build_detection_prompt(object_name)
    records: dict[int, BatchRecord] = {}

    def process(input_ref: str):
        return _process_input(
            client,
            input_ref,
            prompt,
            model,
            max_tokens,
            mode,
            launch_delay,
            url_converter,
        )

    if max_concurrency <= 1:
        for index, input_ref in enumerate(inputs):
            if index > 0 and input_delay > 0:
                await asyncio.sleep(input_delay)
            print(f"[{index + 1}/{total}] {input_ref}", file=sys.stderr)
            records[index] = await process(input_ref)
    else:
        indexed = list(enumerate(inputs))
        for wave_start in range(0, total, max_concurrency):
            if wave_start > 0 and input_delay > 0:
                await asyncio.sleep(input_delay)
            wave = indexed[wave_start : wave_start + max_concurrency]
            print(
                f"[{wave_start + 1}-{wave_start + len(wave)}/{total}] dispatching wave",
                file=sys.stderr,
            )
            wave_records = await asyncio.gather(*(process(ref) for _, ref in wave))
            for (index, _), record in zip(wave, wave_records):
                records[index] = record

    ordered = [records[index] for index in range(total)]
    success = sum(1 for r in ordered if r.status is Status.SUCCESS)
    result = BatchResult(
        records=ordered,
        total_inputs=total,
        processed_count=len(ordered),
        success_count=success,
        failure_count=len(ordered) - success,
        start_time=start_time,
    )

    print(
        f"Batch complete: {result.processed_count}/{total} processed "
        f"({result.success_count} successful, {result.failure_count} failed)",
        file=sys.stderr,
    )
    return _finalize(result, output_path)


async def discover_folder_inputs(
    http: httpx.AsyncClient, folder_url: str
) -> tuple[list[str], str]:
    """Input references of a Drive folder, plus the message to use if there are none."""
    try:
        folder_id = extract_folder_id(folder_url)
        refs = await list_folder_files(http, folder_id)
    except (ValueError, httpx.HTTPError) as e:
        print(f"Folder discovery failed for {folder_url}: {e}", file=sys.stderr)
        return [], f"{FOLDER_EMPTY_MESSAGE} Discovery error: {e}"

    print(f"Discovered {len(refs)} files in folder {folder_id}", file=sys.stderr)
    return refs, FOLDER_EMPTY_MESSAGE


async def run_folder(
    client: InferenceClient,
    folder_url: str,
    object_name: str,
    **batch_options,
) -> BatchResult:
    """Discover the videos of a public Drive folder and run the batch over them.

    Accepts the keyword options of run_batch.
    """
    refs, empty_message = await discover_folder_inputs(client.http, folder_url)
    batch_options.setdefault("empty_message", empty_message)
    return await run_batch(client, refs, object_name, **batch_options)
