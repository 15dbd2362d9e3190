"""CLI entrypoints for kafkascan commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from .catalog import load_catalog
from .config import load_config
from .errors import CatalogError, ConfigError, ScanRootError
from .export import catalog_summary, report_to_dict
from .logging import configure_logging
from .models import ScanReport
from .orchestrator import Orchestrator
from .validation import build_validator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _add_format_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (defaults to text).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kafkascan",
        description="Find Kafka producers and consumers, infer their schemas and classify registry risk.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan a source tree for Kafka call sites.",
    )
    _add_verbose_option(scan_parser, suppress_default=True)
    _add_format_option(scan_parser)
    scan_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the source tree root (defaults to current directory).",
    )
    scan_parser.add_argument(
        "--scope",
        default=None,
        help="Restrict the scan to a subdirectory of the root.",
    )
    scan_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of files scanned in parallel (overrides scan.workers).",
    )
    scan_parser.add_argument(
        "--output",
        default=None,
        help="Write the report to this file instead of stdout.",
    )
    scan_parser.add_argument(
        "--validator-url",
        default=None,
        help="Schema Registry URL used to check compatibility of inferred schemas.",
    )

    catalog_parser = subparsers.add_parser(
        "catalog",
        help="Show the pattern catalog version and per-ecosystem rule counts.",
    )
    _add_verbose_option(catalog_parser, suppress_default=True)
    _add_format_option(catalog_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default 127.0.0.1).")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default 8000).")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for kafkascan commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    if args.command == "scan":
        try:
            report = _run_scan(args)
        except (ScanRootError, ConfigError, CatalogError) as exc:
            parser.exit(1, f"kafkascan scan failed: {exc}\nRun with --verbose for more details.\n")
        if args.format == "json":
            output = json.dumps(report_to_dict(report), indent=2)
        else:
            output = render_text(report)
        _emit(output, args.output)
    elif args.command == "catalog":
        try:
            catalog = load_catalog()
        except CatalogError as exc:
            parser.exit(1, f"{exc}\n")
        summary = catalog_summary(catalog)
        if args.format == "json":
            print(json.dumps(summary, indent=2))
        else:
            print(f"catalog {summary['version']}")
            for entry in summary["ecosystems"]:
                print(
                    f"  {entry['name']}: {entry['producer_patterns']} producer, "
                    f"{entry['consumer_patterns']} consumer, {entry['serializers']} serializer patterns"
                )
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_scan(args: argparse.Namespace) -> ScanReport:
    root = Path(args.path).expanduser().resolve()
    if not root.is_dir():
        raise ScanRootError(f"Scan root not found or not a directory: {args.path}")
    config = load_config(root)
    validator = None
    if args.validator_url:
        validator = build_validator(args.validator_url, timeout=config.validator.timeout)
    orchestrator = Orchestrator(config=config, validator=validator)
    return orchestrator.run_scan(root, scope=args.scope, workers=args.workers)


def render_text(report: ScanReport) -> str:
    """Plain-text summary of a report, one line per call site."""
    lines: List[str] = [f"kafkascan report for {report.root} (catalog {report.catalog_version})"]
    if report.cancelled:
        lines.append("scan was cancelled; results are partial")
    for scope in report.scopes:
        ecosystems = ", ".join(eco.value for eco in scope.ecosystems) or "no ecosystem"
        lines.append(f"scope {scope.label}: {ecosystems}")

    lines.append("")
    lines.append(f"producers ({len(report.classifications)}):")
    for result in report.classifications:
        site = result.call_site
        serializer = site.serializer or "unknown serializer"
        decisive = result.decisive
        reason = f" [{decisive.condition}]" if decisive else ""
        lines.append(f"  {result.category.value}  {site.topic}  {site.key}  {serializer}{reason}")
    consumers = report.consumers
    lines.append(f"consumers ({len(consumers)}):")
    for site in consumers:
        lines.append(f"  {site.topic}  {site.key}")

    if report.warnings:
        lines.append(f"warnings ({len(report.warnings)}):")
        for warning in report.warnings:
            where = warning.path or ""
            if where and warning.line:
                where = f"{where}:{warning.line}"
            lines.append(f"  {warning.kind.value}  {where}  {warning.message}".rstrip())
    return "\n".join(lines)


def _emit(output: str, destination: str | None) -> None:
    if destination is None:
        print(output)
        return
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(output + "\n", encoding="utf-8")
    print(f"Report written to {_relativize(path)}")


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
