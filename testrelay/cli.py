"""
Main CLI interface for Test Relay.

Provides command-line entry points for triggering a single run, serving
the HTTP surface and inspecting configuration.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, List

from . import __version__
from .core.config import Config
from .core.exceptions import RelayError, ValidationError
from .core.logging_config import setup_logging
from .orchestrator import RunOrchestrator


def load_config(args: argparse.Namespace) -> Config:
    """Load configuration from --config or from the environment."""
    config_file = getattr(args, "config_file", None)
    if config_file:
        config = Config.from_file(Path(config_file))
    else:
        config = Config.from_env()

    if getattr(args, "log_level", None):
        config.log_level = args.log_level.upper()
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Trigger a single test run and print its outcome."""
    try:
        config = load_config(args)
        if args.mirror:
            config.mirror_output = True
        setup_logging(config)
        config.validate()
    except ValidationError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 2

    event = {"url": args.url, "uuid": args.uuid}
    if args.grep:
        event["grep"] = args.grep

    orchestrator = RunOrchestrator.from_config(config)
    outcome = asyncio.run(orchestrator.run(event, deadline=args.timeout))

    print(json.dumps(outcome.to_response(), indent=2))
    return 0 if outcome.is_success else 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP surface."""
    from .server import run_server

    try:
        config = load_config(args)
        setup_logging(config)
        config.validate()
    except ValidationError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 2

    run_server(config, host=args.host, port=args.port)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show or validate the effective configuration."""
    try:
        config = load_config(args)
    except RelayError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 2

    if args.action == "show":
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    try:
        config.validate()
    except ValidationError as e:
        print("❌ Configuration validation failed:")
        for violation in e.violations:
            print(f"   • {violation}")
        return 1

    print("✅ Configuration is valid")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"testrelay {__version__}")
    return 0


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="testrelay",
        description="Test Relay - run a test suite and publish its logs and results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  testrelay run --url https://example.test --uuid 0f8fad5b-d9cb-469f-a165-70867728950e
  testrelay run --url https://example.test --uuid <token> --grep @regression --timeout 600
  testrelay serve --port 8080
  testrelay config validate
        """,
    )

    parser.add_argument(
        "--config",
        dest="config_file",
        help="Path to a YAML configuration file (default: environment variables)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override the configured log level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Trigger a single test run")
    run_parser.add_argument("--url", required=True, help="Target URL for the suite")
    run_parser.add_argument("--uuid", required=True, help="Run token")
    run_parser.add_argument("--grep", help="Test filter (default: configured tag)")
    run_parser.add_argument(
        "--timeout",
        type=float,
        help="Time budget for the whole run in seconds",
    )
    run_parser.add_argument(
        "--mirror",
        action="store_true",
        help="Also print the suite's output to this console",
    )
    run_parser.set_defaults(func=cmd_run)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP surface")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    # Config command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "action",
        choices=["show", "validate"],
        nargs="?",
        default="show",
        help="Show the effective configuration or validate it",
    )
    config_parser.set_defaults(func=cmd_config)

    # Version command
    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
