"""Entry point for the permission hook and its CLI commands."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import IO, NoReturn

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool = False) -> None:
    from permission_hook.config import get_settings
    from permission_hook.core.logging import configure_logging

    settings = get_settings()
    level = "DEBUG" if verbose else settings.log_level.upper()
    configure_logging(level=level, json_format=settings.log_json)


def run_hook(
    stdin: IO[bytes] | None = None,
    stdout: IO[str] | None = None,
) -> int:
    """Handle one hook event read from stdin.

    Returns:
        Exit code: 0 for every handled or ignored event, 1 when the input
        cannot be parsed as an event.
    """
    from permission_hook.config import get_settings
    from permission_hook.core.errors import InputParseError
    from permission_hook.hooks.dispatcher import REASON_INTERNAL_ERROR, HookRuntime, dispatch
    from permission_hook.hooks.hook_helpers import (
        log_hook_error,
        read_stdin,
        write_stdout_response,
    )
    from permission_hook.hooks.models import Decision

    settings = get_settings()

    try:
        data = read_stdin(stdin)
    except InputParseError as e:
        logger.error(f"Invalid hook input: {e}")
        return 1

    runtime = HookRuntime.from_settings(settings)
    if runtime.hook_config.logging.verbose:
        _configure_logging(verbose=True)

    try:
        response = dispatch(data, runtime)
    except InputParseError as e:
        logger.error(f"Invalid hook input: {e}")
        return 1
    except Exception as exc:
        logger.exception("PreToolUse handling failed")
        log_hook_error(exc, "PreToolUse", settings.config_dir)
        response = Decision.ask(REASON_INTERNAL_ERROR).to_response()

    if response is not None:
        write_stdout_response(response, stdout)
    return 0


def run_check(args: argparse.Namespace) -> int:
    """Classify a command without touching any state.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (always 0; the verdict is in the output).
    """
    from permission_hook.config import get_settings
    from permission_hook.core.patterns import PatternSet
    from permission_hook.hooks.permission import classify

    patterns = PatternSet.from_config(get_settings().load_hook_config())
    decision = classify(args.tool, {"command": args.command_text}, patterns)

    if args.json:
        print(
            json.dumps(
                {
                    "decision": decision.verdict.value,
                    "reason": decision.reason,
                    "matched_pattern": decision.matched_pattern,
                }
            )
        )
    else:
        line = f"{decision.verdict.value.upper()}: {decision.reason}"
        if decision.matched_pattern:
            line += f" [{decision.matched_pattern}]"
        print(line)
    return 0


def run_version() -> None:
    """Print version information."""
    from permission_hook import __version__

    print(f"permission-hook {__version__}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permission-hook",
        description="Permission gatekeeper and session notifier for Claude Code hooks",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug output on stderr",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    subparsers.add_parser(
        "hook",
        help="Handle one hook event from stdin (default if no command given)",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Show the decision for a command (dry run)",
    )
    check_parser.add_argument(
        "command_text",
        metavar="COMMAND",
        help="Shell command to classify",
    )
    check_parser.add_argument(
        "--tool",
        default="Bash",
        help="Tool name the command is passed to (default: Bash)",
    )
    check_parser.add_argument(
        "--json",
        action="store_true",
        help="Output the decision as JSON",
    )

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point with subcommand support."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        run_version()
        sys.exit(0)

    _configure_logging(verbose=args.verbose)

    if args.command == "check":
        sys.exit(run_check(args))
    elif args.command == "hook" or args.command is None:
        sys.exit(run_hook())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
