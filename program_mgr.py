#!/usr/bin/env python3
"""
Program Status — CLI Entry Point

Shows the status of a multi-issue program (a parent issue and the sub-issues
the pipeline split it into): progress, phase, dependency chain, blockers,
active agents, ETA and next steps.

Author: Ahmed Adel Bakr Alderai
"""
from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

from config import (
    LOG_BACKUP_COUNT,
    LOG_FILE,
    LOG_MAX_BYTES,
    QUERY_TIMEOUT,
    get_repos,
    max_concurrent_work,
)
from github_connector import GitHubConnector
from local_state import MetricsLog, StateStore
from program_discovery import ProgramDiscovery
from program_format import (
    format_github,
    format_json,
    format_plain_text,
    format_slack,
    status_sentinel,
)
from session_controller import SessionController

logger = logging.getLogger("program_mgr")

# ── ANSI colour helpers ──────────────────────────────────────────────────────

_USE_COLOR: bool = sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    """Wrap *text* in an ANSI escape sequence when stdout is a TTY."""
    if not _USE_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def green(text: str) -> str:
    return _c("32", text)


def red(text: str) -> str:
    return _c("31", text)


def yellow(text: str) -> str:
    return _c("33", text)


# ── Setup helpers ────────────────────────────────────────────────────────────

def setup_file_logging() -> None:
    """Attach a rotating file handler for LOG_FILE to the root logger."""
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            LOG_FILE, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
    except OSError as exc:
        logger.warning("File logging disabled (%s): %s", LOG_FILE, exc)
        return
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    logging.getLogger().addHandler(handler)


class UsageError(Exception):
    """Raised for invalid command-line input that argparse cannot catch."""


def resolve_repo(repo: str | None, project: str | None) -> str:
    """Explicit --repo, else the only configured repo."""
    if repo:
        return repo
    repos = get_repos(project)
    if not repos:
        raise UsageError("No repos configured. Use --repo to specify one.")
    if len(repos) > 1:
        listing = "\n".join(f"  {r['repo']}" for r in repos)
        raise UsageError(f"Multiple repos found. Specify one with --repo:\n{listing}")
    return repos[0]["repo"]


def build_discovery(repo: str) -> ProgramDiscovery:
    # max_retries=1: discovery degrades on failure instead of retrying
    gh = GitHubConnector(repo=repo, timeout=QUERY_TIMEOUT, max_retries=1)
    return ProgramDiscovery(
        gh,
        state_store=StateStore(),
        metrics_log=MetricsLog(),
        sessions=SessionController(),
        max_concurrent=max_concurrent_work(),
    )


# ── Command implementations ──────────────────────────────────────────────────

def post_status_comment(gh: GitHubConnector, issue_number: int, body: str) -> str:
    """Update the parent's existing status comment, or add one.

    Returns ``"updated"`` or ``"posted"``.
    """
    sentinel = status_sentinel(issue_number)
    for comment in gh.get_comments(issue_number):
        if sentinel in comment.body:
            gh.update_comment(comment.id, body)
            return "updated"
    gh.add_comment(issue_number, body)
    return "posted"


def cmd_program(
    discovery: ProgramDiscovery,
    issue_number: int,
    *,
    output: str = "text",
) -> int:
    """Print (or post) the program status of *issue_number*."""
    program = discovery.discover(issue_number)

    if output == "json":
        print(format_json(program))
    elif output == "slack":
        print(format_slack(program))
    elif output == "post":
        if program.error is not None:
            print(red(f"Error: {program.error}"))
            return 1
        action = post_status_comment(discovery.gh, issue_number, format_github(program))
        verb = "Updated" if action == "updated" else "Posted"
        print(green(f"{verb} program status comment on #{issue_number}"))
    else:
        print(format_plain_text(program))

    return 1 if program.error is not None else 0


def cmd_sub_issues(discovery: ProgramDiscovery, issue_number: int) -> int:
    """Print the discovered sub-issue numbers, one per line."""
    numbers = discovery.find_sub_issue_numbers(issue_number)
    if numbers is None:
        print(red(f"Error: Could not fetch issue #{issue_number} from {discovery.gh.repo}"))
        return 1
    if not numbers:
        print(yellow(f"No sub-issues found for #{issue_number}"), file=sys.stderr)
    for number in numbers:
        print(number)
    return 0


# ── Argument parser ──────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="program_mgr",
        description="Program Status — status of a parent issue and its sub-issues",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python3 program_mgr.py program 100\n"
            "  python3 program_mgr.py --repo acme/widgets program 100 --json\n"
            "  python3 program_mgr.py program 100 --slack\n"
            "  python3 program_mgr.py program 100 --post\n"
            "  python3 program_mgr.py sub-issues 100\n"
        ),
    )
    parser.add_argument(
        "--repo",
        default=None,
        help="GitHub repository (owner/repo); auto-detected if only one is configured",
    )
    parser.add_argument(
        "-p", "--project",
        default=None,
        help="Project slug used for repo auto-detection",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # program
    program_parser = subparsers.add_parser(
        "program", help="Program-level status for a parent issue"
    )
    program_parser.add_argument("issue", type=int, help="Parent issue number")
    fmt = program_parser.add_mutually_exclusive_group()
    fmt.add_argument("--json", action="store_true", help="Output as JSON")
    fmt.add_argument("--slack", action="store_true", help="Output formatted for Slack")
    fmt.add_argument(
        "--post",
        action="store_true",
        help="Post or update the status comment on the parent issue",
    )

    # sub-issues
    sub_parser = subparsers.add_parser(
        "sub-issues", help="List the discovered sub-issue numbers"
    )
    sub_parser.add_argument("issue", type=int, help="Parent issue number")

    return parser


def _output_mode(args: argparse.Namespace) -> str:
    if args.json:
        return "json"
    if args.slack:
        return "slack"
    if args.post:
        return "post"
    return "text"


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    setup_file_logging()

    try:
        repo = resolve_repo(args.repo, args.project)
        discovery = build_discovery(repo)
        dispatch: dict[str, Any] = {
            "program": lambda: cmd_program(
                discovery, args.issue, output=_output_mode(args)
            ),
            "sub-issues": lambda: cmd_sub_issues(discovery, args.issue),
        }
        sys.exit(dispatch[args.command]())
    except KeyboardInterrupt:
        print()
        print(yellow("Interrupted."))
        sys.exit(130)
    except UsageError as exc:
        print(red(f"Error: {exc}"), file=sys.stderr)
        sys.exit(2)
    except Exception as exc:
        logger.debug("Unhandled error", exc_info=True)
        print(red(f"Error: {exc}"))
        sys.exit(1)


if __name__ == "__main__":
    main()
