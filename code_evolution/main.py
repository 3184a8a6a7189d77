#!/usr/bin/env python3
"""
Code Evolution - Main Entry Point

Detects N+1 queries, inefficient loops, memory leaks and large payloads in
JavaScript / TypeScript sources and proposes ranked fixes.

Usage:
    code-evolution analyze src/ --solutions
    code-evolution github --repo owner/repo --ref main --format sarif
    code-evolution init
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List

from .code_analyzer import (
    SOURCE_EXTENSIONS,
    CodeAnalyzer,
    collect_files,
    is_ignored,
    load_project_context,
    project_context_from_package_json,
)
from .config import AnalysisConfig, ConfigError, OUTPUT_FORMATS, SEVERITY_NAMES
from .models import FileResult, ProjectContext
from .tools import GitHubSource, format_report
from .utils import exceeds_fail_on, get_logger, setup_logging, summarize_results


def load_config(args) -> AnalysisConfig:
    """Resolve the rc file and apply command-line overrides."""
    config = AnalysisConfig.resolve(config_path=Path(args.config) if args.config else None)

    if args.solutions:
        config.generate_solutions = True
    if args.evolve:
        config.generate_solutions = True
        config.evolution.enabled = True
    if args.format:
        config.output_format = args.format
    if args.output:
        config.output_file = args.output
    if args.min_severity:
        config.min_severity = args.min_severity
    if args.fail_on:
        config.fail_on = args.fail_on
    if args.concurrency:
        config.concurrency = args.concurrency
    return config.validate()


def write_report(results: List[FileResult], config: AnalysisConfig, started: float) -> int:
    """
    Render and write the report.

    Returns:
        Exit code: 1 when a file failed or an issue meets the fail-on severity
    """
    logger = get_logger()
    summary = summarize_results(results, duration_ms=int((time.monotonic() - started) * 1000))
    report = format_report(results, config.output_format, summary)

    if config.output_file:
        Path(config.output_file).write_text(report + "\n", encoding="utf-8")
        logger.info(f"Report written to {config.output_file}")
    else:
        print(report)

    logger.info(
        f"Analyzed {summary.files_analyzed} file(s): {summary.total_issues} issue(s), "
        f"{summary.files_failed} failure(s)"
    )
    if summary.files_failed:
        return 1
    if exceeds_fail_on(results, config.fail_on):
        logger.info(f"Issues at or above '{config.fail_on}' found")
        return 1
    return 0


def cmd_init(args):
    """Handle 'init' subcommand."""
    from .cli import init_repository

    target = Path(args.path) if args.path else Path.cwd()
    success = init_repository(target, with_workflow=args.workflow)
    sys.exit(0 if success else 1)


def cmd_analyze(args):
    """Handle 'analyze' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger()

    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    paths = collect_files(args.paths, config.ignore)
    if not paths:
        logger.warning("No JavaScript/TypeScript files found")

    project = load_project_context(Path.cwd())
    analyzer = CodeAnalyzer(config, project)

    started = time.monotonic()
    try:
        results = asyncio.run(analyzer.analyze_files(paths))
    except Exception as e:
        logger.exception(f"Analysis failed: {e}")
        sys.exit(1)

    sys.exit(write_report(results, config, started))


def cmd_github(args):
    """Handle 'github' subcommand."""
    setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
    logger = get_logger()

    try:
        config = load_config(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    started = time.monotonic()
    try:
        source = GitHubSource(repo=args.repo, ref=args.ref)
        logger.info(f"Listing sources of {args.repo}@{source.ref}...")
        files = source.list_source_files(
            SOURCE_EXTENSIONS,
            is_ignored=lambda p: is_ignored(Path(p), config.ignore),
        )
        logger.info(f"Fetching {len(files)} file(s)...")
        sources, errors = source.fetch_all(files)

        project = ProjectContext()
        try:
            project = project_context_from_package_json(source.fetch("package.json"))
        except Exception as e:
            logger.debug(f"No usable package.json: {e}")

        analyzer = CodeAnalyzer(config, project)
        results = asyncio.run(analyzer.analyze_files([Path(p) for p in sources], sources=sources))
    except Exception as e:
        logger.exception(f"GitHub analysis failed: {e}")
        sys.exit(1)

    results.extend(FileResult(file_path=path, error=message) for path, message in errors.items())
    sys.exit(write_report(results, config, started))


def add_analysis_options(parser: argparse.ArgumentParser) -> None:
    """Options shared by 'analyze' and 'github'."""
    parser.add_argument(
        "--solutions",
        action="store_true",
        help="Attach ranked template solutions to every issue"
    )
    parser.add_argument(
        "--evolve",
        action="store_true",
        help="Refine solutions with the evolutionary optimizer (implies --solutions)"
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=OUTPUT_FORMATS,
        help="Output format (default: text, or the config file setting)"
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Write the report to a file instead of stdout"
    )
    parser.add_argument(
        "--min-severity",
        type=str,
        choices=SEVERITY_NAMES,
        help="Lowest severity to report"
    )
    parser.add_argument(
        "--fail-on",
        type=str,
        choices=SEVERITY_NAMES,
        help="Exit with status 1 when an issue at or above this severity is found"
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Files analyzed in parallel (default: 4)"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Config file (default: nearest .codeevolutionrc.json)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Detect performance defects in JS/TS code and synthesize ranked fixes"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create a default config file")
    init_parser.add_argument(
        "path",
        nargs="?",
        help="Target project path (default: current directory)"
    )
    init_parser.add_argument(
        "--workflow",
        action="store_true",
        help="Also add a GitHub Actions workflow"
    )

    # analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Analyze local files")
    analyze_parser.add_argument(
        "paths",
        nargs="*",
        default=["."],
        help="Files, directories or glob patterns (default: current directory)"
    )
    add_analysis_options(analyze_parser)

    # github command
    github_parser = subparsers.add_parser("github", help="Analyze a GitHub repository without cloning")
    github_parser.add_argument(
        "--repo",
        type=str,
        required=True,
        help="Repository in format owner/repo"
    )
    github_parser.add_argument(
        "--ref",
        type=str,
        help="Branch, tag or commit (default: the default branch)"
    )
    add_analysis_options(github_parser)

    args = parser.parse_args()

    # Route to subcommand
    if args.command == "init":
        cmd_init(args)
    elif args.command == "analyze":
        cmd_analyze(args)
    elif args.command == "github":
        cmd_github(args)
    else:
        # No subcommand - show help
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
