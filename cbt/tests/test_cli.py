"""
CLI Test Suite

Parser wiring, dry runs, and the exam / codes / token commands against a
throwaway database.
"""
import argparse

import pytest

from cbt.auth import decode_token
from cbt.cli import create_parser, main
from cbt.cli.code_commands import CodesCommand
from cbt.cli.db_commands import DbCommand
from cbt.cli.exam_commands import ExamCommand
from cbt.cli.token_commands import TokenCommand
from cbt.orm.exam import ExamStatus
from cbt.orm.profile import ProfileRole
from cbt.tests import factories
from cbt.tests.factories import RecordingSender


# =============================================================================
# CLI Parser Tests
# =============================================================================

class TestCLIParser:
    """Test CLI argument parsing."""

    def test_exam_validate_parsing(self):
        parser = create_parser()
        args = parser.parse_args(["exam", "validate", "--id", "e1"])

        assert args.command == "exam"
        assert args.exam_action == "validate"
        assert args.id == "e1"

    def test_exam_publish_requires_creator(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["exam", "publish", "--id", "e1"])

    def test_codes_issue_parsing(self):
        """Repeated --email flags accumulate."""
        parser = create_parser()
        args = parser.parse_args([
            "codes", "issue", "--exam-id", "e1",
            "--email", "a@x.com", "--email", "b@x.com",
            "--expires-at", "2030-01-01T00:00:00",
        ])

        assert args.codes_action == "issue"
        assert args.email == ["a@x.com", "b@x.com"]
        assert args.expires_at == "2030-01-01T00:00:00"
        assert args.creator_id is None

    def test_token_parsing(self):
        parser = create_parser()
        args = parser.parse_args(["token", "--user-id", "u1", "--email", "a@x.com", "--minutes", "5"])

        assert args.command == "token"
        assert args.minutes == 5

    def test_dry_run_flag(self):
        parser = create_parser()
        args = parser.parse_args(["--dry-run", "db", "init"])

        assert args.dry_run is True
        assert args.db_action == "init"

    def test_log_level_choices(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["--log-level", "LOUD", "db", "init"])


# =============================================================================
# Entry point and dry runs
# =============================================================================

class TestDryRun:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_db_init_dry_run(self, capsys):
        assert main(["--dry-run", "db", "init"]) == 0
        assert "[DRY RUN]" in capsys.readouterr().out

    def test_codes_issue_dry_run(self, capsys):
        code = main(["--dry-run", "codes", "issue", "--exam-id", "e1", "--email", "a@x.com"])
        assert code == 0
        assert "Would issue 1 code(s) for exam e1" in capsys.readouterr().out

    def test_codes_issue_rejects_bad_expiry(self, capsys):
        args = argparse.Namespace(
            codes_action="issue", exam_id="e1", email=["a@x.com"], expires_at="next tuesday", creator_id=None
        )
        assert CodesCommand(dry_run=True).execute(args) == 1
        assert "Invalid --expires-at" in capsys.readouterr().out

    def test_unknown_action(self, capsys):
        args = argparse.Namespace(db_action=None)
        assert DbCommand().execute(args) == 1


class TestTokenCommand:
    def test_prints_decodable_token(self, capsys):
        args = argparse.Namespace(user_id="u1", email="a@x.com", minutes=5)
        assert TokenCommand().execute(args) == 0

        payload = decode_token(capsys.readouterr().out.strip())
        assert payload["sub"] == "u1"
        assert payload["email"] == "a@x.com"


# =============================================================================
# Commands against a database
# =============================================================================

@pytest.fixture
async def creator(db):
    return await factories.create_profile(db, "author@x.com", ProfileRole.creator, "Author")


async def test_db_init_creates_tables(engine, capsys):
    assert await DbCommand(engine=engine).init() == 0
    assert "Tables are up to date" in capsys.readouterr().out


async def test_exam_validate_ready(db, session_factory, creator, capsys):
    exam = await factories.create_exam(
        db, creator, subjects=factories.math_101_subjects(), status=ExamStatus.draft
    )
    assert await ExamCommand(session_factory=session_factory).validate(exam.id) == 0
    assert "READY: 'Math 101' (1 subjects, 2 questions)" in capsys.readouterr().out


async def test_exam_validate_reports_reason(db, session_factory, creator, capsys):
    exam = await factories.create_exam(db, creator, status=ExamStatus.draft)
    assert await ExamCommand(session_factory=session_factory).validate(exam.id) == 1
    assert "NOT READY (no_subjects)" in capsys.readouterr().out


async def test_exam_validate_missing_exam(session_factory, capsys):
    assert await ExamCommand(session_factory=session_factory).validate("missing") == 1
    assert capsys.readouterr().out.splitlines()[-1].startswith("Error:")


async def test_exam_publish(db, session_factory, creator, capsys):
    exam = await factories.create_exam(
        db, creator, subjects=factories.math_101_subjects(), status=ExamStatus.draft
    )
    assert await ExamCommand(session_factory=session_factory).publish(exam.id, creator.id) == 0
    assert f"Exam {exam.id} is published" in capsys.readouterr().out


async def test_exam_publish_by_non_owner(db, session_factory, creator, capsys):
    exam = await factories.create_exam(
        db, creator, subjects=factories.math_101_subjects(), status=ExamStatus.draft
    )
    other = await factories.create_profile(db, "other@x.com", ProfileRole.creator)
    assert await ExamCommand(session_factory=session_factory).publish(exam.id, other.id) == 1
    assert "does not belong to you" in capsys.readouterr().out


async def test_codes_issue_defaults_to_owner(db, session_factory, creator, capsys):
    exam = await factories.create_exam(db, creator, subjects=factories.math_101_subjects())
    sender = RecordingSender(fail_for={"b@x.com"})

    command = CodesCommand(session_factory=session_factory, sender=sender)
    assert await command.issue(exam.id, ["a@x.com", "b@x.com"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "=== Issued 2 code(s) ==="
    assert lines[1].startswith("a@x.com\t") and lines[1].endswith("\tsent")
    assert lines[2].endswith("\tEMAIL FAILED")
    assert [m["to"] for m in sender.sent] == ["a@x.com", "b@x.com"]


async def test_codes_issue_for_draft_fails(db, session_factory, creator, capsys):
    exam = await factories.create_exam(
        db, creator, subjects=factories.math_101_subjects(), status=ExamStatus.draft
    )
    command = CodesCommand(session_factory=session_factory, sender=RecordingSender())
    assert await command.issue(exam.id, ["a@x.com"]) == 1
    assert "published exams" in capsys.readouterr().out
