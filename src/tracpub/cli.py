"""Command-line interface for tracpub.

Usage:
    tracpub [global options] {init,index,convert,sync,run,status} [options]

Exit codes:
    0  success
    1  at least one document failed (the rest were saved)
    2  fatal error (bad configuration, unreadable index, ...)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, apply_overrides, build_config
from .converters.renderers import RENDERER_NAMES
from .errors import BatchError, TracpubError
from .logger import setup_logging
from .publish.engine import PHASES, Publisher
from .publish.reporter import (
    format_index_report,
    format_stage_report,
    format_status,
    report_to_json,
)
from .remotes.base import REMOTE_TYPES, create_remote

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2

_VERBOSITY = {1: logging.INFO, 2: logging.DEBUG}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracpub",
        description="Publish a tree of Markdown documents to a Trac wiki.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write a starter config to .tracpub/config.yml
  tracpub init

  # Index, convert and publish everything under docs/
  tracpub run -p docs --url https://trac.example.com/project

  # Render to build/wiki without publishing
  tracpub run index convert -p docs -o build/wiki

  # Show what would be published
  tracpub status
        """,
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Config file (default: TRACPUB_CONFIG, ./.tracpub/config.yml, "
        "~/.config/tracpub/config.yml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="More output (-v info, -vv debug)",
    )
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version", action="version", version=f"tracpub {__version__}"
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-p",
        "--input",
        action="append",
        dest="search_paths",
        metavar="DIR",
        help="Directory to search for documents (repeatable)",
    )
    common.add_argument(
        "-i",
        "--include",
        action="append",
        metavar="GLOB",
        help="Only documents matching this glob (repeatable)",
    )
    common.add_argument(
        "-e",
        "--exclude",
        action="append",
        metavar="GLOB",
        help="Skip documents matching this glob (repeatable)",
    )
    common.add_argument(
        "-o", "--output", dest="output_path", help="Directory for converted files"
    )
    common.add_argument("--index", dest="index_path", help="Index file location")
    common.add_argument("--renderer", choices=RENDERER_NAMES)
    common.add_argument(
        "--no-footer",
        dest="footer_enabled",
        action="store_const",
        const=False,
        help="Do not append the generated-page disclaimer",
    )
    common.add_argument("--footer-path", help="File replacing the built-in disclaimer")
    common.add_argument(
        "--tag",
        action="append",
        dest="default_tags",
        metavar="TAG",
        help="Tag sent with every document (repeatable)",
    )
    common.add_argument(
        "-j", "--max-parallel", type=int, help="Documents processed concurrently"
    )
    common.add_argument(
        "--remote", dest="remote_type", choices=REMOTE_TYPES, help="Remote target"
    )
    common.add_argument("--url", help="Trac URL (overrides TRAC_URL and config)")
    common.add_argument("--username", help="Trac username")
    common.add_argument(
        "--password",
        help="Trac password (visible in process list -- prefer TRAC_PASSWORD)",
    )
    common.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (development only)",
    )
    common.add_argument(
        "-t", "--timeout", type=float, help="Remote request timeout in seconds"
    )
    common.add_argument(
        "--json", action="store_true", help="Print reports as JSON"
    )

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    sub.add_parser("init", help="Write a starter config file")
    sub.add_parser("index", parents=[common], help="Discover documents and update the index")
    sub.add_parser("convert", parents=[common], help="Render changed documents")
    sub.add_parser("sync", parents=[common], help="Publish changed documents")
    run_parser = sub.add_parser(
        "run", parents=[common], help="Run several phases (default: all)"
    )
    run_parser.add_argument(
        "phases",
        nargs="*",
        metavar="PHASE",
        help=f"Phases to run, in order (default: {' '.join(PHASES)})",
    )
    sub.add_parser("status", parents=[common], help="Show the state of every document")
    return parser


def load_unified_config(args: argparse.Namespace) -> UnifiedConfig:
    """Load config files and apply command-line overrides.

    Raises:
        ValueError / pydantic.ValidationError / OSError: On bad config.
    """
    paths = [Path(args.config)] if args.config else None
    if paths and not paths[0].exists():
        raise ValueError(f"Config file not found: {args.config}")
    unified = build_config(load_hierarchical_config(paths))

    overrides = {
        key: getattr(args, key, None)
        for key in (
            "search_paths",
            "include",
            "exclude",
            "output_path",
            "index_path",
            "renderer",
            "footer_enabled",
            "footer_path",
            "default_tags",
            "max_parallel",
            "timeout",
        )
    }
    overrides["type"] = getattr(args, "remote_type", None)
    return apply_overrides(unified, overrides)


def build_publisher(
    unified: UnifiedConfig, args: argparse.Namespace, base_dir: Path
) -> Publisher:
    def remote_factory():
        return create_remote(
            unified.remote,
            base_dir,
            url=args.url,
            username=args.username,
            password=args.password,
            insecure=args.insecure,
            timeout=args.timeout,
        )

    return Publisher(
        unified.publish,
        base_dir=base_dir,
        remote_factory=remote_factory,
        default_extra_properties=unified.remote.default_extra_properties,
    )


def _print_reports(publisher: Publisher, as_json: bool) -> None:
    if as_json:
        payload = {name: report_to_json(r) for name, r in publisher.reports.items()}
        print(json.dumps(payload, indent=2))
        return
    for name, report in publisher.reports.items():
        if name == "index":
            print(format_index_report(report, publisher.base_dir))
        else:
            print(format_stage_report(report, publisher.base_dir))
        print()


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        unified = load_unified_config(args)
    except (ValueError, ValidationError, OSError) as exc:
        setup_logging(log_file=args.log_file)
        print(f"tracpub: configuration error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    level = _VERBOSITY.get(min(args.verbose, 2), unified.logging.level)
    setup_logging(
        level=level,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
    )

    if args.command == "init":
        target = Path(args.config) if args.config else None
        path, created = ensure_config(target)
        print(f"{'Created' if created else 'Using existing'} config: {path}")
        return EXIT_OK

    base_dir = Path.cwd()
    try:
        publisher = build_publisher(unified, args, base_dir)
        if args.command == "status":
            entries = publisher.status()
            if args.json:
                print(
                    json.dumps(
                        [
                            {**r.model_dump(mode="json"), "state": s.value}
                            for r, s in entries
                        ],
                        indent=2,
                    )
                )
            else:
                print(format_status(entries, base_dir))
            return EXIT_OK

        if args.command == "run":
            phases = args.phases or list(PHASES)
        else:
            phases = [args.command]
        publisher.run(phases)
    except BatchError as exc:
        _print_reports(publisher, args.json)
        print(f"tracpub: {exc.describe()}", file=sys.stderr)
        return EXIT_FAILURES
    except (TracpubError, ValueError) as exc:
        print(f"tracpub: {exc}", file=sys.stderr)
        return EXIT_FATAL

    _print_reports(publisher, args.json)
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
