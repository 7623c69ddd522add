"""nestdoctor CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from nestdoctor import __version__


@click.group()
@click.version_option(version=__version__, prog_name="nestdoctor")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (debug logging).")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """nestdoctor - health checks and scoring for NestJS applications."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument(
    "path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--min-score",
    "min_score_raw",
    default=None,
    help="Exit with code 1 when the score is below this value (0-100).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: discovered in PATH).",
)
@click.option("--score", "score_only", is_flag=True, help="Print only the numeric score.")
@click.pass_context
def scan(
    ctx: click.Context,
    *,
    path: Path,
    output_json: bool,
    min_score_raw: str | None,
    config_path: Path | None,
    score_only: bool,
) -> None:
    """Scan a NestJS project and report diagnostics with a health score.

    Exit codes: 0 = success, 1 = score below --min-score,
    2 = invalid input or configuration.
    """
    from rich.console import Console

    from nestdoctor.api import validate_target
    from nestdoctor.core.config import load_config
    from nestdoctor.core.scanner import scan as run_scan
    from nestdoctor.errors import NestDoctorError
    from nestdoctor.report import format_json, render_report
    from nestdoctor.scoring import check_min_score, validate_min_score

    try:
        min_score = validate_min_score(min_score_raw)
        target = validate_target(path)
        config = load_config(target, config_path)
        if min_score is None:
            min_score = config.min_score
        result = run_scan(target, config=config)
    except NestDoctorError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if score_only:
        click.echo(str(result.score.value))
    elif output_json:
        click.echo(format_json(result))
    elif not ctx.obj.get("quiet"):
        render_report(Console(), result, target)

    if not check_min_score(result.score, min_score):
        click.echo(
            f"Score {result.score.value} is below the minimum of {min_score}.",
            err=True,
        )
        sys.exit(1)


@main.command("rules")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def rules_cmd(*, output_json: bool) -> None:
    """List the built-in rules."""
    from rich.console import Console

    from nestdoctor.report import rules_json, rules_table
    from nestdoctor.rules import get_rules

    rules = get_rules()
    if output_json:
        click.echo(rules_json(rules))
        return
    Console().print(rules_table(rules))


@main.command("watch")
@click.argument(
    "path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("--debounce", default=200, type=int, help="Debounce delay in ms.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: discovered in PATH).",
)
def watch_cmd(*, path: Path, debounce: int, config_path: Path | None) -> None:
    """Watch TypeScript files and re-scan them incrementally on change.

    Scans run in a background worker process; results are printed as each
    batch of changes is processed.
    """
    from nestdoctor.watcher import watch

    watch(path.resolve(), debounce_ms=debounce, config_path=config_path)
