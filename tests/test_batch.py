"""Tests for batch orchestration."""

import asyncio
import csv
from datetime import datetime

import httpx
import pytest

import vision_detect.batch as batch_module
from vision_detect.batch import (
    FOLDER_EMPTY_MESSAGE,
    NO_INPUTS_ERROR,
    NO_INPUTS_MESSAGE,
    AnalysisMode,
    Status,
    default_output_path,
    run_batch,
    run_folder,
)
from vision_detect.strategies.consensus import ANALYSIS_FAILED, failed_verdict, reduce_attempts

from .conftest import FakeEndpoint, make_attempt

A = "https://videos.test/a.mp4"
B = "https://videos.test/b.mp4"
C = "https://videos.test/c.mp4"

FAST = {"input_delay": 0, "launch_delay": 0}


def _batch(inputs, **kwargs):
    async def fn(client):
        return await run_batch(client, inputs, "Bird", **FAST, **kwargs)

    return fn


def _read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def test_empty_batch_writes_single_failed_record(run_with_endpoint, tmp_path):
    output = tmp_path / "out.csv"
    endpoint = FakeEndpoint()
    result = run_with_endpoint(endpoint, _batch([], output_path=output))

    assert result.total_inputs == 0
    assert result.processed_count == 0
    assert result.success_count == 0
    assert result.failure_count == 0
    assert len(result.records) == 1
    record = result.records[0]
    assert record.status is Status.FAILED
    assert record.error_message == NO_INPUTS_ERROR
    assert record.description == NO_INPUTS_MESSAGE
    assert endpoint.posts == []

    rows = _read_csv(output)
    assert len(rows) == 1
    assert rows[0]["Analysis Status"] == "Failed"
    assert rows[0]["Error Message"] == NO_INPUTS_ERROR


def test_single_mode_mixed_outcomes(run_with_endpoint, tmp_path):
    output = tmp_path / "nested" / "results.csv"
    endpoint = FakeEndpoint(["Bird detected", "No bird here"], inaccessible={B})
    result = run_with_endpoint(endpoint, _batch([A, B, C], output_path=output))

    assert [r.input_ref for r in result.records] == [A, B, C]
    assert result.total_inputs == 3
    assert result.processed_count == 3
    assert result.success_count == 2
    assert result.failure_count == 1
    assert result.output_path == output
    assert result.end_time is not None

    first, second, third = result.records
    assert first.has_detection is True and first.status is Status.SUCCESS
    assert first.confidence_score == pytest.approx(0.6)
    assert second.status is Status.FAILED
    assert second.has_detection is False
    assert second.error_message == f"{B} not accessible"
    assert third.has_detection is False and third.status is Status.SUCCESS

    rows = _read_csv(output)
    assert [row["Input Reference"] for row in rows] == [A, B, C]
    assert rows[0]["Has Detection"] == "True"
    assert rows[1]["Analysis Status"] == "Failed"
    assert rows[2]["Error Message"] == ""


def test_prompt_names_the_object(run_with_endpoint):
    endpoint = FakeEndpoint()

    async def fn(client):
        return await run_batch(client, [A], "Red Car", **FAST)

    run_with_endpoint(endpoint, fn)
    prompt = endpoint.post_bodies()[0]["messages"][0]["content"][0]["text"]
    assert "red car" in prompt


def test_sharing_links_are_converted(run_with_endpoint):
    endpoint = FakeEndpoint()
    link = "https://drive.google.com/file/d/abc123XYZ/view?usp=sharing"
    result = run_with_endpoint(endpoint, _batch([link]))

    assert result.records[0].input_ref == link
    media = endpoint.post_bodies()[0]["messages"][0]["content"][1]
    assert media["video_url"]["url"] == "https://drive.google.com/uc?export=download&id=abc123XYZ"


def test_exception_while_processing_fails_only_that_input(monkeypatch):
    async def fake_analyze(client, input_ref, prompt, model, max_tokens):
        if input_ref == B:
            raise RuntimeError("decoder crashed")
        return make_attempt(1, True, "Bird detected")

    monkeypatch.setattr(batch_module, "analyze", fake_analyze)
    result = asyncio.run(run_batch(None, [A, B, C], "Bird", **FAST))

    assert result.processed_count == 3
    assert result.failure_count == 1
    failed = result.records[1]
    assert failed.status is Status.FAILED
    assert failed.error_message == "decoder crashed"
    assert failed.description == "Processing error: decoder crashed"
    assert result.records[2].has_detection is True


def test_converter_failure_is_contained():
    def broken_converter(url):
        raise ValueError("bad link")

    result = asyncio.run(
        run_batch(None, [A], "Bird", url_converter=broken_converter, **FAST)
    )
    assert result.processed_count == 1
    assert result.records[0].status is Status.FAILED
    assert result.records[0].error_message == "bad link"


def test_consensus_mode(run_with_endpoint):
    endpoint = FakeEndpoint(["No bird here", "Bird detected and flying", "No bird here"])
    result = run_with_endpoint(
        endpoint, _batch([A], mode=AnalysisMode.with_consensus(3))
    )

    assert len(endpoint.posts) == 3
    record = result.records[0]
    assert record.status is Status.SUCCESS
    assert record.has_detection is True
    assert record.description == "Bird detected and flying"
    # one of three positive: LOW_DETECTION_RATE
    assert record.confidence_score == pytest.approx(0.5)


def test_consensus_records_average_time(monkeypatch):
    async def fake_consensus(client, input_ref, prompt, model, max_tokens, runs, launch_delay):
        attempts = [make_attempt(i + 1, i == 0, total_ms=1000 * (i + 1)) for i in range(runs)]
        return reduce_attempts(attempts)

    monkeypatch.setattr(batch_module, "run_consensus", fake_consensus)
    result = asyncio.run(
        run_batch(None, [A], "Bird", mode=AnalysisMode.with_consensus(3), **FAST)
    )
    assert result.records[0].processing_time_ms == 2000


def test_failed_verdict_becomes_failed_record(monkeypatch):
    async def fake_consensus(client, input_ref, prompt, model, max_tokens, runs, launch_delay):
        return failed_verdict("reduction exploded")

    monkeypatch.setattr(batch_module, "run_consensus", fake_consensus)
    result = asyncio.run(
        run_batch(None, [A], "Bird", mode=AnalysisMode.with_consensus(2), **FAST)
    )

    record = result.records[0]
    assert record.status is Status.FAILED
    assert record.has_detection is False
    assert "reduction exploded" in record.error_message
    assert result.failure_count == 1
    assert ANALYSIS_FAILED not in record.description


def test_concurrent_batch_keeps_input_order(monkeypatch):
    inputs = [f"https://videos.test/{i}.mp4" for i in range(7)]
    in_flight = 0
    peak = 0

    async def fake_analyze(client, input_ref, prompt, model, max_tokens):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        index = inputs.index(input_ref)
        # earlier inputs finish last
        await asyncio.sleep(0.005 * (len(inputs) - index))
        in_flight -= 1
        return make_attempt(1, index % 2 == 0, f"clip {index}")

    monkeypatch.setattr(batch_module, "analyze", fake_analyze)
    result = asyncio.run(run_batch(None, inputs, "Bird", max_concurrency=3, **FAST))

    assert [r.input_ref for r in result.records] == inputs
    assert [r.description for r in result.records] == [f"clip {i}" for i in range(7)]
    assert peak == 3
    assert result.processed_count == 7


def test_unwritable_output_is_reported(run_with_endpoint, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    result = run_with_endpoint(
        FakeEndpoint(), _batch([A], output_path=blocker / "out.csv")
    )

    assert result.processed_count == 1
    assert result.output_path is None
    assert result.write_error


@pytest.mark.parametrize("runs", [1, 11, 0])
def test_consensus_mode_rejects_runs_out_of_range(runs):
    with pytest.raises(ValueError):
        AnalysisMode.with_consensus(runs)


def test_analysis_mode_describe():
    assert AnalysisMode.single().describe() == "single"
    assert AnalysisMode.with_consensus(5).describe() == "consensus x5"


def test_default_output_path(tmp_path):
    path = default_output_path("Red Car", now=datetime(2024, 3, 9, 14, 5, 7), directory=tmp_path)
    assert path == tmp_path / "red_car_detection_results_20240309_140507.csv"


FOLDER_ID = "1FolderIdAAAAAAAAAAAAAAAAAAA"
FILE_ONE = "1FileOneBBBBBBBBBBBBBBBBBBBBB"
FILE_TWO = "1FileTwoCCCCCCCCCCCCCCCCCCCCC"


def _folder_handler(page: str, status: int = 200):
    endpoint = FakeEndpoint()

    def handler(request):
        if request.method == "GET" and "embeddedfolderview" in str(request.url):
            return httpx.Response(status, text=page)
        return endpoint(request)

    handler.endpoint = endpoint
    return handler


def test_run_folder_discovers_and_processes_files(run_with_endpoint):
    page = (
        f'<a href="https://drive.google.com/file/d/{FILE_ONE}/view">one</a>'
        f'<a href="https://drive.google.com/file/d/{FILE_TWO}/view">two</a>'
        f'<a href="https://drive.google.com/file/d/{FILE_ONE}/view">again</a>'
    )
    handler = _folder_handler(page)

    async def fn(client):
        url = f"https://drive.google.com/drive/folders/{FOLDER_ID}?usp=sharing"
        return await run_folder(client, url, "Bird", **FAST)

    result = run_with_endpoint(handler, fn)

    assert result.total_inputs == 2
    assert [r.input_ref for r in result.records] == [
        f"https://drive.google.com/file/d/{FILE_ONE}/view",
        f"https://drive.google.com/file/d/{FILE_TWO}/view",
    ]
    assert len(handler.endpoint.posts) == 2


def test_run_folder_with_nothing_found(run_with_endpoint):
    handler = _folder_handler("", status=404)

    async def fn(client):
        return await run_folder(
            client, f"https://drive.google.com/drive/folders/{FOLDER_ID}", "Bird", **FAST
        )

    result = run_with_endpoint(handler, fn)

    assert result.total_inputs == 0
    assert result.records[0].status is Status.FAILED
    assert result.records[0].description == FOLDER_EMPTY_MESSAGE


def test_run_folder_with_unparseable_url(run_with_endpoint):
    async def fn(client):
        return await run_folder(client, "https://example.test/not a folder", "Bird", **FAST)

    result = run_with_endpoint(FakeEndpoint(), fn)

    assert result.total_inputs == 0
    assert result.records[0].error_message == NO_INPUTS_ERROR
    assert result.records[0].description.startswith(FOLDER_EMPTY_MESSAGE)
    assert "Could not extract folder ID" in result.records[0].description


def _record_starts(monkeypatch):
    starts = []

    async def fake_analyze(client, input_ref, prompt, model, max_tokens):
        starts.append(asyncio.get_running_loop().time())
        return make_attempt(1, False)

    monkeypatch.setattr(batch_module, "analyze", fake_analyze)
    return starts


def test_sequential_inputs_are_paced(monkeypatch):
    starts = _record_starts(monkeypatch)
    asyncio.run(run_batch(None, [A, B, C], "Bird", input_delay=0.05, launch_delay=0))

    assert len(starts) == 3
    gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
    assert all(gap >= 0.045 for gap in gaps), gaps


def test_concurrent_waves_are_paced(monkeypatch):
    starts = _record_starts(monkeypatch)
    asyncio.run(
        run_batch(
            None, [A, B, C], "Bird", max_concurrency=2, input_delay=0.05, launch_delay=0
        )
    )

    assert len(starts) == 3
    # first wave starts together, second wave waits for the delay
    assert starts[1] - starts[0] < 0.04
    assert starts[2] - starts[1] >= 0.045
