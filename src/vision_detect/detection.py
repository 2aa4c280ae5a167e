"""Core detection module - one inference attempt for one input.

Provides:
- analyze(): validate, call the endpoint, classify the answer
- AttemptResult / Timings: the outcome of one attempt

Used by:
- strategies/single: single-mode analysis
- strategies/consensus: N parallel attempts per input

analyze() is total: every failure after configuration is loaded comes back
as an AttemptResult with error_message set, never as an exception.

Usage:
    from vision_detect.detection import analyze
    result = await analyze(client, url, prompt, model, max_tokens=400)
"""

import sys
import time
from dataclasses import dataclass, field

from .api import InferenceClient
from .classify import classify
from .urls import is_http_url

NO_RESPONSE_TEXT = "No response received"


@dataclass(frozen=True)
class Timings:
    """Phase durations of one attempt, in milliseconds."""

    validation_ms: int = 0
    api_call_ms: int = 0
    parsing_ms: int = 0
    total_ms: int = 0


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of one inference call for one input."""

    detected: bool
    description: str
    confidence_score: float
    timings: Timings = field(default_factory=Timings)
    error_message: str | None = None
    attempt_number: int = 1
    raw_content: str | None = None

    @property
    def succeeded(self) -> bool:
        return not self.error_message


def failed_attempt(
    error_message: str,
    attempt_number: int = 1,
    timings: Timings | None = None,
) -> AttemptResult:
    """Build the AttemptResult for an attempt that did not produce an answer."""
    return AttemptResult(
        detected=False,
        description=f"Analysis failed: {error_message}",
        confidence_score=0.0,
        timings=timings or Timings(),
        error_message=error_message,
        attempt_number=attempt_number,
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def analyze(
    client: InferenceClient,
    input_ref: str,
    prompt: str,
    model: str,
    max_tokens: int,
    attempt_number: int = 1,
) -> AttemptResult:
    """Run one validate -> call -> parse cycle.

    Args:
        client: Inference client (already configured)
        input_ref: Direct, fetchable URL of the media
        prompt: Detection prompt
        model: Model identifier
        max_tokens: Answer token limit
        attempt_number: Label of this attempt within a consensus run

    Returns:
        AttemptResult. On failure detected=False, error_message is set and
        phases that never ran report 0 ms.
    """
    label = f"[attempt {attempt_number}]"
    total_start = time.perf_counter()
    validation_ms = api_call_ms = parsing_ms = 0

    def timings() -> Timings:
        return Timings(validation_ms, api_call_ms, parsing_ms, _elapsed_ms(total_start))

    # Phase 1: validation
    validation_start = time.perf_counter()
    if not is_http_url(input_ref):
        validation_ms = _elapsed_ms(validation_start)
        message = f"Invalid input reference: {input_ref!r}"
        print(f"{label} {message}", file=sys.stderr)
        return failed_attempt(message, attempt_number, timings())

    try:
        accessible = await client.probe(input_ref)
    except Exception as e:
        print(f"{label} probe error: {e}", file=sys.stderr)
        accessible = False
    if not accessible:
        validation_ms = _elapsed_ms(validation_start)
        message = f"{input_ref} not accessible"
        print(f"{label} {message}", file=sys.stderr)
        return failed_attempt(message, attempt_number, timings())
    validation_ms = _elapsed_ms(validation_start)

    # Phase 2: inference call
    call_start = time.perf_counter()
    try:
        response = await client.chat(
            model=model, prompt=prompt, input_ref=input_ref, max_tokens=max_tokens
        )
    except Exception as e:
        api_call_ms = _elapsed_ms(call_start)
        print(f"{label} FAILED after {api_call_ms}ms: {e}", file=sys.stderr)
        return failed_attempt(str(e) or type(e).__name__, attempt_number, timings())
    api_call_ms = _elapsed_ms(call_start)

    # Phase 3: parse and classify
    parse_start = time.perf_counter()
    try:
        content = response.get("content")
        if content is not None and not isinstance(content, str):
            raise TypeError(f"message content is {type(content).__name__}, not text")
        detected, confidence = classify(content)
        description = content if content and content.strip() else NO_RESPONSE_TEXT
    except Exception as e:
        parsing_ms = _elapsed_ms(parse_start)
        print(f"{label} parse error: {e}", file=sys.stderr)
        return failed_attempt(
            f"Response parsing error: {e}", attempt_number, timings()
        )
    parsing_ms = _elapsed_ms(parse_start)

    result = AttemptResult(
        detected=detected,
        description=description,
        confidence_score=confidence,
        timings=timings(),
        error_message=None,
        attempt_number=attempt_number,
        raw_content=content,
    )
    print(
        f"{label} detected={detected} confidence={confidence:.2f} "
        f"({result.timings.total_ms}ms: validation {validation_ms}, "
        f"call {api_call_ms}, parse {parsing_ms})",
        file=sys.stderr,
    )
    return result
