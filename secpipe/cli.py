"""Command-line front end.

Usage:
    secpipe run --profile quick-scan --app-name demo --src ./code --params "LOC=/opt/appsecpipeline/source"

Exit code behavior:
- 0 when the run completed.
- 1 when the run failed (missing dependency, catalog, validation, image sync,
  storage or container launch error).
- 2 for usage errors, including a missing --profile or --app-name.
"""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from loguru import logger
from rich.console import Console
from rich.table import Table

from secpipe import __version__
from secpipe.catalog.loader import load_catalogs
from secpipe.config import COMPILER, PATHS
from secpipe.errors import MissingRequiredField, SecPipeError
from secpipe.pipeline.context import RunContext
from secpipe.pipeline.request import RunRequest
from secpipe.pipeline.runner import run_pipeline
from secpipe.run_log import configure_logging
from secpipe.runtime.docker import ContainerRuntime
from secpipe.runtime.prereqs import check_dependencies


EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secpipe",
        description="Run container-based security tool pipelines",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run a named pipeline profile")
    run.add_argument("--profile", default="", help="Pipeline profile from the pipeline catalog (required)")
    run.add_argument("--app-name", default="", help="Name of the application under test (required)")
    run.add_argument("--target", default="", help="Target of the run, e.g. a repo URL or site URL")
    run.add_argument("--dry-run", action="store_true", help="Log every step without calling the container runtime")
    run.add_argument("--keep", action="store_true", help="Keep containers after they exit (no --rm)")
    run.add_argument(
        "--volume",
        default=None,
        help="Host path to use as run storage instead of an ephemeral volume",
    )
    run.add_argument("--src", dest="source_path", default=None, help="Host directory mounted as the source dir")
    run.add_argument("--report", dest="report_path", default=None, help="Host directory mounted as the reports dir")
    run.add_argument(
        "--tool-profile",
        dest="tool_profile_override",
        default=None,
        help="Tool profile to use instead of the catalog's, for tools that declare it",
    )
    run.add_argument("--params", default="", help='Space-separated NAME=value tokens, e.g. "LOC=/src DEPTH=3"')
    run.add_argument(
        "--strict-tokens",
        action="store_true",
        default=COMPILER.STRICT_TOKENS,
        help="Fail on unknown {token} placeholders instead of warning",
    )
    run.add_argument("--catalog-dir", default=PATHS.CATALOG_DIR, help="Directory holding the catalog files")
    run.add_argument("--log-dir", default=PATHS.LOG_DIR, help="Directory for logs and run summaries")
    run.add_argument("--log-level", default=None, help="Console log level (default: SECPIPE_LOG_LEVEL or INFO)")
    run.add_argument("--skip-image-sync", action="store_true", help="Do not list or pull tool images")
    return parser


def request_from_args(args: argparse.Namespace) -> RunRequest:
    return RunRequest(
        profile=(args.profile or "").strip(),
        app_name=(args.app_name or "").strip(),
        target=args.target or "",
        dry_run=bool(args.dry_run),
        keep=bool(args.keep),
        volume=args.volume or None,
        source_path=args.source_path or None,
        report_path=args.report_path or None,
        raw_parameters=args.params or "",
        tool_profile_override=args.tool_profile_override or None,
        strict_tokens=bool(args.strict_tokens),
    )


def print_run_summary(context: RunContext, console: Optional[Console] = None) -> None:
    """Print one row per launch, then the outcome."""
    console = console or Console(stderr=True)
    table = Table(title=f"Run {context.run_id}")
    table.add_column("Stage")
    table.add_column("Tool")
    table.add_column("Profile")
    table.add_column("Container")
    table.add_column("Exit", justify="right")

    for record in context.launches:
        if record.dry_run:
            status = "dry run"
        elif record.returncode is None:
            status = "-"
        else:
            status = str(record.returncode)
        table.add_row(record.stage, record.tool, record.tool_profile, record.container_name, status)

    console.print(table)
    if context.success:
        console.print(f"[green]{context.state.value}[/green]")
    else:
        console.print(f"[red]{context.state.value}[/red]")


def run_command(args: argparse.Namespace) -> int:
    configure_logging(args.log_dir, level=args.log_level)

    try:
        request = request_from_args(args).validate()
    except MissingRequiredField as e:
        logger.error("{} (see 'secpipe run --help')", e.message)
        return EXIT_USAGE

    try:
        check_dependencies(args.catalog_dir, require_runtime=not request.dry_run)
        pipelines, tools = load_catalogs(args.catalog_dir, app_name=request.app_name)
        context = run_pipeline(
            request,
            pipelines,
            tools,
            runtime=ContainerRuntime(),
            log_dir=args.log_dir,
            sync=not args.skip_image_sync,
        )
    except SecPipeError as e:
        logger.error("{}: {}", e.kind, e.message)
        return EXIT_RUN_FAILED

    print_run_summary(context)
    if not context.success:
        for err in context.errors:
            logger.error("{}: {}", err.get("kind"), err.get("message"))
        return EXIT_RUN_FAILED

    logger.info("Run {} finished: {} container(s) launched", context.run_id, len(context.launches))
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.command == "run":
        return run_command(args)

    parser.print_help()
    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
