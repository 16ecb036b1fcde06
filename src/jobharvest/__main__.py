"""CLI entry point for jobharvest."""

from __future__ import annotations

import argparse
import json
import sys

from jobharvest.config import DEFAULT_SETTINGS_PATH
from jobharvest.errors import ActionableError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobharvest",
        description="Polite, rate-limited, robots.txt-aware job listing scraper",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_SETTINGS_PATH),
        help=f"Settings file (default: {DEFAULT_SETTINGS_PATH})",
    )
    parser.add_argument("--log-dir", type=str, default=None, help="Also write logs to this directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    # -- targets -------------------------------------------------------------
    sub.add_parser("targets", help="List configured scrape targets")

    # -- check ---------------------------------------------------------------
    check_p = sub.add_parser("check", help="Check robots.txt and rate-limit readiness of a target")
    check_p.add_argument("--target", type=str, required=True, help="Target id from settings.toml")

    # -- robots --------------------------------------------------------------
    robots_p = sub.add_parser("robots", help="Ask robots.txt whether a URL may be fetched")
    robots_p.add_argument("url", type=str, help="Absolute URL to check")
    robots_p.add_argument("--agent", type=str, default=None, help="User-Agent (default: configured bot agent)")

    # -- scrape --------------------------------------------------------------
    scrape_p = sub.add_parser("scrape", help="Run one scrape job to completion")
    scrape_p.add_argument("--target", type=str, required=True, help="Target id from settings.toml")
    scrape_p.add_argument("--keywords", nargs="+", required=True, help="Search keywords")
    scrape_p.add_argument("--location", type=str, default=None, help="Location filter")
    scrape_p.add_argument(
        "--max-listings",
        type=int,
        default=None,
        metavar="N",
        help="Stop paging once N listings are collected",
    )
    scrape_p.add_argument("--ignore-robots", action="store_true", help="Skip the robots.txt check")
    scrape_p.add_argument("--use-proxy", action="store_true", help="Route requests through the configured proxy")
    scrape_p.add_argument("--json", action="store_true", help="Print the final job as JSON")

    # -- similar -------------------------------------------------------------
    similar_p = sub.add_parser("similar", help="Find stored listings similar to some text")
    similar_p.add_argument("text", type=str, help="Free-text query")
    similar_p.add_argument("-n", type=int, default=5, help="Number of results (default: 5)")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    from jobharvest import cli
    from jobharvest.logging import set_verbose

    set_verbose(args.verbose)
    try:
        settings = cli.load_cli_settings(args)
        if args.command == "targets":
            code = cli.handle_targets(settings)
        elif args.command == "check":
            code = cli.handle_check(settings, args)
        elif args.command == "robots":
            code = cli.handle_robots(settings, args)
        elif args.command == "scrape":
            code = cli.handle_scrape(settings, args)
        else:
            code = cli.handle_similar(settings, args)
    except ActionableError as exc:
        if getattr(args, "json", False):
            print(json.dumps(exc.to_dict(), indent=2))
            sys.exit(1)
        print(f"Error: {exc.error}", file=sys.stderr)
        if exc.suggestion:
            print(f"  Suggestion: {exc.suggestion}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
