#!/usr/bin/env python3
"""
CBT Exam Backend CLI

Usage:
    python -m cbt.cli <command> [options]

Commands:
    db      Database operations (init)
    exam    Exam operations (validate, publish)
    codes   Access code operations (issue)
    token   Issue a bearer token for a profile

Environment:
    DATABASE_URL    SQLAlchemy async connection string
    JWT_SECRET_KEY  Token signing key
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from cbt import __version__
from cbt.cli.db_commands import DbCommand
from cbt.cli.exam_commands import ExamCommand
from cbt.cli.code_commands import CodesCommand
from cbt.cli.token_commands import TokenCommand


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="cbt",
        description="CBT Exam Backend CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s exam validate --id EXAM_ID
  %(prog)s exam publish --id EXAM_ID --creator-id PROFILE_ID
  %(prog)s codes issue --exam-id EXAM_ID --email a@example.com --email b@example.com
  %(prog)s token --user-id PROFILE_ID --email a@example.com
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create missing tables")

    # Exam commands
    exam_parser = subparsers.add_parser("exam", help="Exam operations")
    exam_subparsers = exam_parser.add_subparsers(dest="exam_action")

    validate_parser = exam_subparsers.add_parser("validate", help="Check publish readiness")
    validate_parser.add_argument("--id", "-i", required=True, help="Exam ID")

    publish_parser = exam_subparsers.add_parser("publish", help="Validate and publish an exam")
    publish_parser.add_argument("--id", "-i", required=True, help="Exam ID")
    publish_parser.add_argument("--creator-id", required=True, help="Owner profile ID")

    # Code commands
    codes_parser = subparsers.add_parser("codes", help="Access code operations")
    codes_subparsers = codes_parser.add_subparsers(dest="codes_action")

    issue_parser = codes_subparsers.add_parser("issue", help="Issue access codes and email them")
    issue_parser.add_argument("--exam-id", required=True, help="Exam ID")
    issue_parser.add_argument("--email", action="append", required=True, help="Recipient (repeatable)")
    issue_parser.add_argument("--expires-at", help="ISO-8601 expiry (UTC when no offset)")
    issue_parser.add_argument("--creator-id", help="Act as this profile (default: exam owner)")

    # Token command
    token_parser = subparsers.add_parser("token", help="Issue a bearer token")
    token_parser.add_argument("--user-id", required=True, help="Profile ID")
    token_parser.add_argument("--email", required=True, help="Profile email")
    token_parser.add_argument("--minutes", type=int, help="Lifetime in minutes")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    command_map = {
        "db": DbCommand,
        "exam": ExamCommand,
        "codes": CodesCommand,
        "token": TokenCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](dry_run=parsed.dry_run)
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
