"""
Stepwise CLI - create cloud resources step by step, tear them down in reverse.

Usage:
    stepwise <command> [args]
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from stepwise import __version__
from stepwise.config import get_settings
from stepwise.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stepwise",
        description="Declarative resource provisioning with guaranteed reverse teardown",
    )
    parser.add_argument("--version", action="version", version=f"stepwise {__version__}")
    parser.add_argument("--config", help="Path to a stepwise config file (drivers)")
    subparsers = parser.add_subparsers(dest="command")

    # plan command (dry-run)
    plan_parser = subparsers.add_parser("plan", help="Preview and validate a plan (dry-run)")
    plan_parser.add_argument("plan_file", help="Path to plan YAML file")
    plan_parser.add_argument("--output", choices=["text", "json"], default="text",
                             help="Output format")

    # run command
    run_parser = subparsers.add_parser("run", help="Run a plan, tearing down on failure")
    run_parser.add_argument("plan_file", help="Path to plan YAML file")
    run_parser.add_argument("--ledger", help="Ledger file to write (default: under the state dir)")
    run_parser.add_argument("--var", action="append", dest="variables", metavar="KEY=VALUE",
                            help="Override a plan variable (repeatable)")
    run_parser.add_argument("--cleanup", choices=["prompt", "always", "never"],
                            help="What to do with resources after a successful run")
    run_parser.add_argument("--no-auto-teardown", action="store_false", dest="auto_teardown",
                            default=None, help="Do not tear down automatically when a step fails")
    run_parser.add_argument("-y", "--yes", action="store_true",
                            help="Answer yes to the cleanup prompt")
    run_parser.add_argument("--log-file", help="Run log path (default: next to the ledger)")
    run_parser.add_argument("--output", choices=["text", "json"], default="text",
                            help="Output format")
    run_parser.add_argument("-v", "--verbose", action="store_true",
                            help="Show detailed progress")

    # teardown command
    teardown_parser = subparsers.add_parser(
        "teardown", help="Tear down the outstanding resources of a ledger file"
    )
    teardown_parser.add_argument("ledger_file", help="Path to ledger file")
    teardown_parser.add_argument("-y", "--yes", action="store_true",
                                 help="Do not ask for confirmation")
    teardown_parser.add_argument("--output", choices=["text", "json"], default="text",
                                 help="Output format")

    # ledger command
    ledger_parser = subparsers.add_parser("ledger", help="Show a ledger file or list ledgers")
    ledger_parser.add_argument("ledger_file", nargs="?", help="Path to ledger file")
    ledger_parser.add_argument("--output", choices=["text", "json"], default="text",
                               help="Output format")

    # drivers command
    drivers_parser = subparsers.add_parser("drivers", help="List available drivers")
    drivers_parser.add_argument("--output", choices=["text", "json"], default="text",
                                help="Output format")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level if getattr(args, "verbose", False) else "WARNING")

    if args.command == "plan":
        from stepwise.cli.plan import plan_command
        sys.exit(plan_command(
            plan_file=args.plan_file,
            output_format=args.output,
            config_path=args.config,
        ))

    if args.command == "run":
        from stepwise.cli.run import run_command
        sys.exit(run_command(
            plan_file=args.plan_file,
            ledger_file=args.ledger,
            variables=args.variables,
            cleanup=args.cleanup,
            auto_teardown=args.auto_teardown,
            yes=args.yes,
            log_file=args.log_file,
            config_path=args.config,
            output_format=args.output,
            verbose=args.verbose,
        ))

    if args.command == "teardown":
        from stepwise.cli.teardown import teardown_command
        sys.exit(teardown_command(
            ledger_file=args.ledger_file,
            yes=args.yes,
            config_path=args.config,
            output_format=args.output,
        ))

    if args.command == "ledger":
        from stepwise.cli.ledger import ledger_command
        sys.exit(ledger_command(ledger_file=args.ledger_file, output_format=args.output))

    if args.command == "drivers":
        from stepwise.cli.drivers import drivers_command
        sys.exit(drivers_command(config_path=args.config, output_format=args.output))

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
