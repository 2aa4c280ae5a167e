"""CLI entry point for video object detection."""

import asyncio
import sys
from pathlib import Path

import click

from .api import InferenceClient
from .batch import (
    DEFAULT_INPUT_DELAY,
    AnalysisMode,
    default_output_path,
    run_batch,
    run_folder,
)
from .config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, ConfigurationError, load_config
from .report import format_attempt_report, format_batch_summary, format_consensus_report
from .strategies.consensus import MAX_RUNS, MIN_RUNS, run_consensus_analysis
from .strategies.single import run_single
from .urls import parse_input_refs, to_direct_url

RUNS_RANGE = click.IntRange(MIN_RUNS, MAX_RUNS)


def _config_or_exit(env_file: Path | None):
    try:
        return load_config(env_file)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(2)


def model_options(func):
    func = click.option(
        "--max-tokens",
        type=click.IntRange(1),
        default=DEFAULT_MAX_TOKENS,
        show_default=True,
        help="Answer token limit",
    )(func)
    func = click.option(
        "--model", "-m", default=DEFAULT_MODEL, show_default=True, help="Vision model"
    )(func)
    func = click.option(
        "--object",
        "object_name",
        default="Bird",
        show_default=True,
        help="Object to detect (e.g. Bird, Car, Person)",
    )(func)
    return func


def batch_options(func):
    func = click.option(
        "--delay",
        type=click.FloatRange(0),
        default=DEFAULT_INPUT_DELAY,
        show_default=True,
        help="Seconds between inputs (or between waves when concurrent)",
    )(func)
    func = click.option(
        "--concurrency",
        "-c",
        type=click.IntRange(1),
        default=1,
        show_default=True,
        help="Inputs processed at once",
    )(func)
    func = click.option(
        "--runs",
        "-n",
        type=RUNS_RANGE,
        default=3,
        show_default=True,
        help="Attempts per input in consensus mode",
    )(func)
    func = click.option(
        "--consensus", is_flag=True, help="Use consensus analysis (any-positive policy)"
    )(func)
    func = click.option(
        "--output",
        "-o",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Output CSV file (default: <object>_detection_results_<timestamp>.csv)",
    )(func)
    return func


@click.group()
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="File holding API_KEY / API_URL (default: ./.env)",
)
@click.pass_context
def main(ctx: click.Context, env_file: Path | None):
    """Detect objects in videos with a remote vision model."""
    ctx.obj = {"env_file": env_file}


@main.command()
@click.argument("url")
@model_options
@click.pass_context
def analyze(ctx: click.Context, url: str, object_name: str, model: str, max_tokens: int):
    """Analyze one video with a single attempt."""
    config = _config_or_exit(ctx.obj["env_file"])

    async def _run():
        async with InferenceClient(config) as client:
            return await run_single(client, url, object_name, model, max_tokens)

    result = asyncio.run(_run())
    click.echo(format_attempt_report(result, object_name, to_direct_url(url), model))


@main.command()
@click.argument("url")
@model_options
@click.option(
    "--runs", "-n", type=RUNS_RANGE, default=3, show_default=True, help="Number of attempts"
)
@click.pass_context
def consensus(
    ctx: click.Context, url: str, object_name: str, model: str, max_tokens: int, runs: int
):
    """Analyze one video with several attempts and any-positive consensus."""
    config = _config_or_exit(ctx.obj["env_file"])
    click.echo(f"Plan: {runs}x {model.split('/')[-1]} on {object_name}", err=True)

    async def _run():
        async with InferenceClient(config) as client:
            return await run_consensus_analysis(
                client, url, object_name, model, max_tokens, runs=runs
            )

    verdict = asyncio.run(_run())
    click.echo(format_consensus_report(verdict, object_name, to_direct_url(url), model))


def _run_batch_command(config, object_name, output, options, runner, source):
    output = output or default_output_path(object_name)

    async def _run():
        async with InferenceClient(config) as client:
            return await runner(client, source, object_name, output_path=output, **options)

    result = asyncio.run(_run())
    click.echo(format_batch_summary(result, object_name))
    if result.write_error:
        sys.exit(1)


def _batch_options(model, max_tokens, consensus, runs, concurrency, delay) -> dict:
    mode = AnalysisMode.with_consensus(runs) if consensus else AnalysisMode.single()
    return {
        "model": model,
        "mode": mode,
        "max_tokens": max_tokens,
        "max_concurrency": concurrency,
        "input_delay": delay,
    }


@main.command()
@click.argument("urls", nargs=-1)
@click.option(
    "--file",
    "-f",
    "url_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Text file with URLs separated by newlines or commas",
)
@model_options
@batch_options
@click.pass_context
def batch(
    ctx: click.Context,
    urls: tuple[str, ...],
    url_file: Path | None,
    object_name: str,
    model: str,
    max_tokens: int,
    output: Path | None,
    consensus: bool,
    runs: int,
    concurrency: int,
    delay: float,
):
    """Analyze a list of videos and save one CSV row per video.

    URLS may also be given as one argument separated by newlines or commas.
    Tokens that are not http(s) URLs are ignored.
    """
    config = _config_or_exit(ctx.obj["env_file"])

    text = "\n".join(urls)
    if url_file is not None:
        text += "\n" + url_file.read_text(encoding="utf-8")
    refs = parse_input_refs(text)
    click.echo(f"Inputs: {len(refs)} | Mode: {'consensus' if consensus else 'single'}", err=True)

    options = _batch_options(model, max_tokens, consensus, runs, concurrency, delay)
    _run_batch_command(config, object_name, output, options, run_batch, refs)


@main.command()
@click.argument("folder_url")
@model_options
@batch_options
@click.pass_context
def folder(
    ctx: click.Context,
    folder_url: str,
    object_name: str,
    model: str,
    max_tokens: int,
    output: Path | None,
    consensus: bool,
    runs: int,
    concurrency: int,
    delay: float,
):
    """Analyze every video of a public Google Drive folder."""
    config = _config_or_exit(ctx.obj["env_file"])
    click.echo(f"Folder: {folder_url}", err=True)

    options = _batch_options(model, max_tokens, consensus, runs, concurrency, delay)
    _run_batch_command(config, object_name, output, options, run_folder, folder_url)


if __name__ == "__main__":
    main()
