#!/usr/bin/env python3
"""
Command-line interface for the order pipeline.

Usage:
    python cli.py [command] [options]

Commands:
    demo        Run demo scenarios
    test        Run the test suite
    serve       Start the API server

Examples:
    python cli.py demo happy-path
    python cli.py demo all
    python cli.py serve --workers 4
"""

import argparse
import os
import subprocess
import sys

from shared.config import ENV_PREFIX

SCENARIOS = ["happy-path", "low-value", "failures", "dead-letter", "all"]


def run_demo(scenario: str) -> None:
    """Run a demo scenario."""
    from order_pipeline import demo

    scenarios = {
        "happy-path": demo.run_happy_path_demo,
        "low-value": demo.run_low_value_demo,
        "failures": demo.run_failure_demo,
        "dead-letter": demo.run_dead_letter_demo,
        "all": demo.run_all_demos,
    }
    try:
        runner = scenarios[scenario]
    except KeyError:
        print(f"Unknown scenario: {scenario}")
        sys.exit(1)
    runner()


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    sys.exit(subprocess.run(cmd).returncode)


def run_server(host: str, port: int, reload: bool, workers: int) -> None:
    """Start the API server."""
    cmd = [
        sys.executable, "-m", "uvicorn", "--factory", "api.main:create_app",
        f"--host={host}", f"--port={port}",
    ]
    if reload:
        cmd.append("--reload")

    env = dict(os.environ)
    env[f"{ENV_PREFIX}CONSUMER_WORKERS"] = str(workers)

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd, env=env)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Order Pipeline CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo happy-path
  %(prog)s demo all
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument("scenario", choices=SCENARIOS, help="Which scenario to run")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve_parser.add_argument("--workers", type=int, default=2, help="Queue consumer threads")

    args = parser.parse_args()

    if args.command == "demo":
        run_demo(args.scenario)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload, args.workers)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
