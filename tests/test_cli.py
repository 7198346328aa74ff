"""
tests/test_cli.py -- Tests for the admin CLI in main.py.

Covers:
  - create-admin creates an ACTIVE ADMIN member that can sign in
  - create-admin applies the sign-up validation rules
  - set-status suspends a member and revokes their sessions; ACTIVE restores
    sign-in without touching sessions
  - set-status leaves status and sessions untouched when the revoke fails
  - sweep deletes expired refresh tokens and prints the count
  - no command prints help and exits 2
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from auth.errors import StoreUnavailable
from auth.models import MemberRole, MemberStatus
from auth.passwords import CredentialVerifier
from auth.sessions import SessionStore
from auth.store import MemberStore
from core.clock import utcnow
from main import main

PASSWORD = "Adm1n!pass"


@pytest.fixture
def cli_db(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _create_admin(db_url: str, username: str = "admin01", password: str = PASSWORD) -> int:
    return main(
        [
            "--db-url",
            db_url,
            "create-admin",
            username,
            "--name",
            "Admin",
            "--phone",
            "010-0000-0000",
            "--password",
            password,
        ]
    )


def test_create_admin(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    """create-admin stores an ACTIVE ADMIN whose password verifies."""
    assert _create_admin(cli_db) == 0
    assert "Created admin 'admin01'" in capsys.readouterr().out

    store = MemberStore(cli_db)
    try:
        member = store.get_by_username("admin01")
        assert member.role is MemberRole.ADMIN
        assert member.status is MemberStatus.ACTIVE
        assert CredentialVerifier(rounds=4).verify(PASSWORD, member.password_hash)
    finally:
        store.close()


def test_create_admin_rejects_weak_password(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    """Admins are held to the sign-up password rules."""
    assert _create_admin(cli_db, password="weakpass") == 1
    assert "password" in capsys.readouterr().out


def test_create_admin_rejects_duplicate(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert _create_admin(cli_db) == 0
    assert _create_admin(cli_db) == 1
    assert "already taken" in capsys.readouterr().out


def test_create_admin_prompts_for_password(cli_db: str, monkeypatch: pytest.MonkeyPatch) -> None:
    """Without --password the CLI asks twice via getpass."""
    answers = iter([PASSWORD, PASSWORD])
    monkeypatch.setattr("getpass.getpass", lambda prompt="": next(answers))
    code = main(["--db-url", cli_db, "create-admin", "admin02", "--name", "Admin", "--phone", "010-0000-0000"])
    assert code == 0


def test_create_admin_prompt_mismatch(
    cli_db: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    answers = iter([PASSWORD, "Other!pass1"])
    monkeypatch.setattr("getpass.getpass", lambda prompt="": next(answers))
    code = main(["--db-url", cli_db, "create-admin", "admin02", "--name", "Admin", "--phone", "010-0000-0000"])
    assert code == 1
    assert "do not match" in capsys.readouterr().out


def test_set_status_suspends_and_revokes_sessions(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    """Leaving ACTIVE revokes every session; going back to ACTIVE restores the status only."""
    _create_admin(cli_db, "stud01")
    members = MemberStore(cli_db)
    sessions = SessionStore(engine=members.engine)
    try:
        member_id = members.get_by_username("stud01").id
        sessions.create(member_id, "tok-a", utcnow() + timedelta(days=1))
        sessions.create(member_id, "tok-b", utcnow() + timedelta(days=1))

        assert main(["--db-url", cli_db, "set-status", "stud01", "SUSPENDED"]) == 0
        assert "ACTIVE -> SUSPENDED (2 session(s) revoked)" in capsys.readouterr().out
        assert members.get_by_username("stud01").status is MemberStatus.SUSPENDED
        assert sessions.count_valid_for_member(member_id, utcnow()) == 0

        assert main(["--db-url", cli_db, "set-status", "stud01", "ACTIVE"]) == 0
        assert members.get_by_username("stud01").status is MemberStatus.ACTIVE
    finally:
        members.close()


def test_set_status_is_all_or_nothing(
    cli_db: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """If revoking sessions fails, the status change is rolled back too."""
    _create_admin(cli_db, "stud01")
    members = MemberStore(cli_db)
    sessions = SessionStore(engine=members.engine)
    try:
        member_id = members.get_by_username("stud01").id
        sessions.create(member_id, "tok-a", utcnow() + timedelta(days=1))

        def broken_revoke(self, member_id, conn=None):
            raise StoreUnavailable("Store operation revoke_all_for_member failed.")

        monkeypatch.setattr(SessionStore, "revoke_all_for_member", broken_revoke)
        assert main(["--db-url", cli_db, "set-status", "stud01", "SUSPENDED"]) == 1
        assert "revoke_all_for_member failed" in capsys.readouterr().out
        monkeypatch.undo()

        assert members.get_by_username("stud01").status is MemberStatus.ACTIVE
        assert sessions.count_valid_for_member(member_id, utcnow()) == 1
    finally:
        members.close()


def test_set_status_unknown_member(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--db-url", cli_db, "set-status", "ghost", "DELETED"]) == 1
    assert "No member named 'ghost'" in capsys.readouterr().out


def test_set_status_rejects_unknown_status(cli_db: str) -> None:
    """argparse refuses a status outside the enum."""
    with pytest.raises(SystemExit):
        main(["--db-url", cli_db, "set-status", "stud01", "BANNED"])


def test_sweep(cli_db: str, capsys: pytest.CaptureFixture[str]) -> None:
    """sweep deletes only the expired row and reports the count."""
    sessions = SessionStore(cli_db)
    try:
        sessions.create(1, "old", utcnow() - timedelta(seconds=5))
        sessions.create(1, "current", utcnow() + timedelta(days=1))
    finally:
        sessions.close()

    assert main(["--db-url", cli_db, "sweep"]) == 0
    assert "Deleted 1 expired refresh token(s)." in capsys.readouterr().out


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 2
    assert "usage:" in capsys.readouterr().out
