"""Tests for the set_user_status command against a file-backed SQLite database."""

import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from app.models import Base
from app.scripts import set_user_status
from app.services.users import UserDirectory
from tests.support import make_settings


class TestSetUserStatusCommand(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.path = tempfile.mkstemp(suffix=".db")
        os.close(fd)
        self.addCleanup(os.remove, self.path)
        self.url = f"sqlite:///{self.path}"

        engine = create_engine(self.url)
        Base.metadata.create_all(engine)
        with Session(engine) as session:
            UserDirectory(session).upsert_pending("S1", "a@example.com", "Alice")
        engine.dispose()

        patcher = patch.object(
            set_user_status, "get_settings", return_value=make_settings(DATABASE_URL=self.url)
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_command(self, *argv: str) -> tuple[int, str, str]:
        out, err = StringIO(), StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = set_user_status.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def stored(self) -> tuple[str, list[tuple[str, str | None]]]:
        engine = create_engine(self.url)
        try:
            with Session(engine) as session:
                directory = UserDirectory(session)
                user = directory.get_by_subject("S1")
                trail = [(a.action, a.actor) for a in directory.audit_trail("S1")]
                return user.status, trail
        finally:
            engine.dispose()

    def test_approve(self) -> None:
        code, out, _ = self.run_command("S1", "approved", "--actor", "ops@example.com")
        self.assertEqual(code, 0)
        self.assertIn("is now approved", out)
        status, trail = self.stored()
        self.assertEqual(status, "approved")
        self.assertEqual(trail[-1], ("approved", "ops@example.com"))

    def test_default_actor(self) -> None:
        self.run_command("S1", "rejected")
        status, trail = self.stored()
        self.assertEqual(status, "rejected")
        self.assertEqual(trail[-1], ("rejected", "cli"))

    def test_unknown_subject(self) -> None:
        code, _, err = self.run_command("NOPE", "approved")
        self.assertEqual(code, 1)
        self.assertIn("NOPE", err)
        self.assertEqual(self.stored()[1], [("created", None)])

    def test_blank_subject(self) -> None:
        code, _, err = self.run_command("  ", "approved")
        self.assertEqual(code, 1)
        self.assertIn("non-empty", err)

    def test_pending_is_not_a_choice(self) -> None:
        with self.assertRaises(SystemExit), redirect_stderr(StringIO()):
            set_user_status.main(["S1", "pending"])


if __name__ == "__main__":
    unittest.main()
