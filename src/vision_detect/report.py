"""CSV output and human-readable reports.

Provides:
- write_records_csv: one row per BatchRecord, written in a single call
- format_attempt_report: one attempt with phase timings
- format_consensus_report: verdict, metrics, flags and recommendation
- format_batch_summary: totals, detections and failures of a batch

Reports always render: missing data is replaced by explanatory text.
"""

import csv
import io
import json
import re
from pathlib import Path
from typing import Iterable

from .batch import BatchRecord, BatchResult, Status
from .classify import unwrap_description
from .detection import AttemptResult
from .strategies.consensus import ConsensusVerdict
from .urls import display_name

CSV_COLUMNS = (
    "Has Detection",
    "Description",
    "Confidence Score",
    "Processing Time (ms)",
    "Input Reference",
    "Error Message",
    "Analysis Status",
    "Processed At",
)

MAX_URL_DISPLAY = 80


def record_row(record: BatchRecord) -> list:
    return [
        record.has_detection,
        unwrap_description(record.description),
        record.confidence_score,
        int(record.processing_time_ms),
        record.input_ref,
        record.error_message or "",
        record.status.value,
        record.processed_at.isoformat(),
    ]


def render_records_csv(records: Iterable[BatchRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for record in records:
        writer.writerow(record_row(record))
    return buffer.getvalue()


def write_records_csv(records: Iterable[BatchRecord], path: Path) -> Path:
    """Render all rows in memory, then write the file once."""
    content = render_records_csv(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8", newline="")
    return path


def _display_url(url: str) -> str:
    return url if len(url) <= MAX_URL_DISPLAY else url[: MAX_URL_DISPLAY - 3] + "..."


def _shorten(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _header(title: str, input_ref: str, object_name: str, model: str) -> list[str]:
    return [
        title,
        "=" * len(title),
        f"Input:  {_display_url(input_ref)}",
        f"Object: {object_name}",
        f"Model:  {model}",
        "",
    ]


def _parse_answer(content: str) -> dict | None:
    json_match = re.search(r"\{[\s\S]*\}", content)
    if not json_match:
        return None
    try:
        data = json.loads(json_match.group())
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def format_attempt_report(
    result: AttemptResult, object_name: str, input_ref: str, model: str
) -> str:
    """Format one attempt with its phase timings."""
    lines = _header("Video Analysis Results", input_ref, object_name, model)
    t = result.timings
    lines += [
        "Processing analytics:",
        f"  URL validation:   {t.validation_ms}ms",
        f"  API call:         {t.api_call_ms}ms",
        f"  Response parsing: {t.parsing_ms}ms",
        f"  Total:            {t.total_ms}ms",
        "",
    ]

    if not result.succeeded:
        lines.append("Analysis failed")
        lines.append(f"Error: {result.error_message}")
        return "\n".join(lines)

    raw = result.raw_content or result.description
    answer = _parse_answer(raw)
    if answer is not None and "detected" in answer:
        description = answer.get("description") or "No description provided"
        if answer.get("detected") is True:
            lines.append(f"{object_name} detected")
            lines.append(f"Activity: {description}")
        else:
            lines.append(f"No {object_name} detected")
            lines.append(f"Notes: {description}")
    else:
        lines.append("Raw response:")
        lines.append(raw)

    verdict = "detected" if result.detected else "not detected"
    lines.append("")
    lines.append(f"Classifier: {verdict} (confidence {result.confidence_score:.0%})")
    return "\n".join(lines)


def format_consensus_report(
    verdict: ConsensusVerdict, object_name: str, input_ref: str, model: str
) -> str:
    """Format a consensus verdict with metrics, flags and per-attempt lines."""
    lines = _header("Consensus Analysis Results", input_ref, object_name, model)
    m = verdict.metrics

    if verdict.failed:
        lines.append("Consensus analysis failed")
        lines.append(verdict.recommendation)
        return "\n".join(lines)

    status = f"{object_name} detected" if verdict.final_detection else f"No {object_name} detected"
    lines += [
        f"Result:      {status} (any-positive policy)",
        f"Confidence:  {verdict.confidence_level:.0%}",
        f"Detections:  {m.positive_detections}/{m.total_runs} positive, "
        f"{m.negative_detections} negative",
        f"Consistency: {m.detection_consistency:.0%}",
        f"Avg time:    {m.average_processing_time_ms:.0f}ms",
        f"Flags:       {', '.join(m.quality_flags) or 'none'}",
        "",
        "Description:",
        unwrap_description(verdict.consensus_description),
        "",
    ]

    if verdict.attempts:
        lines.append("Attempts:")
        for attempt in verdict.attempts:
            outcome = "positive" if attempt.detected else "negative"
            suffix = f" - error: {attempt.error_message}" if attempt.error_message else ""
            lines.append(
                f"  #{attempt.attempt_number}: {outcome} "
                f"({attempt.confidence_score:.0%}, {attempt.timings.total_ms}ms){suffix}"
            )
        lines.append("")

    lines.append(f"Recommendation: {verdict.recommendation}")
    return "\n".join(lines)


def format_batch_summary(result: BatchResult, object_name: str) -> str:
    """Summarize a batch. Renders even when every input failed."""
    records = result.records
    successful = [r for r in records if r.status is Status.SUCCESS]
    failed = [r for r in records if r.status is Status.FAILED]
    with_object = [r for r in successful if r.has_detection]

    lines = [
        "Batch Video Analysis Complete",
        "=============================",
        f"Total inputs:          {result.total_inputs}",
        f"Processed:             {result.processed_count}",
        f"Successfully analyzed: {result.success_count}",
        f"Failed:                {result.failure_count}",
        f"Processing time:       {result.elapsed_seconds:.1f}s",
    ]
    if result.output_path is not None:
        lines.append(f"CSV file:              {result.output_path}")
    elif result.write_error:
        lines.append(f"CSV file:              not written ({result.write_error})")
    lines.append("")

    lines.append(f"{object_name} detection results:")
    if successful:
        lines.append(f"  Videos with {object_name}:    {len(with_object)}")
        lines.append(f"  Videos without {object_name}: {len(successful) - len(with_object)}")
        rate = len(with_object) / len(successful)
        lines.append(f"  Detection rate: {rate:.1%}")
    else:
        lines.append("  No input was analyzed successfully, so there are no detections to report.")
    lines.append("")

    if with_object:
        lines.append(f"Sample {object_name} detections:")
        for record in with_object[:3]:
            description = _shorten(unwrap_description(record.description), 80)
            lines.append(f"  {display_name(record.input_ref)}: {record.confidence_score:.0%} confidence")
            lines.append(f'    "{description}"')
        lines.append("")

    if failed:
        lines.append(f"Issues ({len(failed)}):")
        for record in failed[:3]:
            label = display_name(record.input_ref) if record.input_ref else "(no input)"
            lines.append(f"  {label}: {record.error_message or record.description}")
        if len(failed) > 3:
            lines.append(f"  ... and {len(failed) - 3} more failures")
        lines.append("")

    lines.append("Columns: " + ", ".join(CSV_COLUMNS))
    return "\n".join(lines)
