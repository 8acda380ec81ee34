"""Tests for UserDirectory against SQLite (in-memory, or file-backed for concurrency)."""

import os
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.models import AUDIT_ACTIONS, AppUser, AppUserAudit, Base
from app.services.users import UserDirectory, UserNotFoundError
from tests.support import make_session_factory

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _naive(value: datetime) -> datetime:
    # SQLite drops the offset on round trip
    return value.replace(tzinfo=None)


class StoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session = make_session_factory()()
        self.directory = UserDirectory(self.session)

    def tearDown(self) -> None:
        self.session.close()

    def at(self, when: datetime):
        return patch("app.services.users._utcnow", return_value=when)


class TestUpsertPending(StoreTestCase):
    def test_new_subject_is_pending_with_created_audit(self) -> None:
        user = self.directory.upsert_pending("S1", "a@example.com", "Alice")
        self.assertEqual(user.subject, "S1")
        self.assertEqual(user.email, "a@example.com")
        self.assertEqual(user.display_name, "Alice")
        self.assertEqual(user.status, "pending")
        self.assertIsNotNone(user.id)

        trail = self.directory.audit_trail("S1")
        self.assertEqual([a.action for a in trail], ["created"])
        self.assertIsNone(trail[0].actor)
        self.assertEqual(trail[0].details, {"email": "a@example.com", "name": "Alice"})

    def test_existing_subject_refreshes_profile_and_keeps_status(self) -> None:
        with self.at(T0):
            first = self.directory.upsert_pending("S1", "a@example.com", "Alice")
        self.directory.set_status("S1", "approved", actor="admin@example.com")

        with self.at(T0 + timedelta(hours=1)):
            second = self.directory.upsert_pending("S1", "alice@example.com", "Alice E")

        self.assertEqual(second.id, first.id)
        self.assertEqual(second.status, "approved")
        self.assertEqual(second.email, "alice@example.com")
        self.assertEqual(second.display_name, "Alice E")
        self.assertEqual(_naive(second.created_at), _naive(T0))
        self.assertEqual(_naive(second.updated_at), _naive(T0 + timedelta(hours=1)))
        self.assertEqual(
            [a.action for a in self.directory.audit_trail("S1")],
            ["created", "approved", "updated"],
        )

    def test_one_row_per_subject(self) -> None:
        for _ in range(3):
            self.directory.upsert_pending("S1", "a@example.com", None)
        self.assertEqual(len(self.directory.list_users()), 1)

    def test_commit_failure_rolls_back_everything(self) -> None:
        error = OperationalError("COMMIT", {}, Exception("connection lost"))
        with patch.object(self.session, "commit", side_effect=error):
            with self.assertRaises(OperationalError):
                self.directory.upsert_pending("S1", "a@example.com", None)
        self.assertIsNone(self.directory.get_by_subject("S1"))
        self.assertEqual(self.directory.audit_trail("S1"), [])


class TestConcurrentUpsert(unittest.TestCase):
    """Simultaneous self-registration of one subject yields one row and one created event."""

    THREADS = 16

    def setUp(self) -> None:
        fd, path = tempfile.mkstemp(suffix=".db")
        os.close(fd)
        self.addCleanup(os.remove, path)
        # Each thread gets its own connection; writers wait on the SQLite file lock.
        self.engine = create_engine(
            f"sqlite:///{path}", connect_args={"timeout": 30}, poolclass=NullPool
        )
        self.addCleanup(self.engine.dispose)
        Base.metadata.create_all(self.engine)

    def test_same_subject_from_many_threads(self) -> None:
        barrier = threading.Barrier(self.THREADS)
        errors: list[Exception] = []

        def register(i: int) -> None:
            with Session(self.engine) as session:
                barrier.wait()
                try:
                    UserDirectory(session).upsert_pending("S1", f"a{i}@example.com", None)
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=register, args=(i,)) for i in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        with Session(self.engine) as session:
            self.assertEqual(session.scalar(select(func.count()).select_from(AppUser)), 1)
            actions = session.scalars(select(AppUserAudit.action)).all()
        self.assertEqual(len(actions), self.THREADS)
        self.assertEqual(actions.count("created"), 1)
        self.assertEqual(actions.count("updated"), self.THREADS - 1)


class TestSetStatus(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.directory.upsert_pending("S1", "a@example.com", "Alice")

    def test_approve(self) -> None:
        user = self.directory.set_status("S1", "approved", actor="admin@example.com")
        self.assertEqual(user.status, "approved")
        self.assertEqual(self.directory.get_by_subject("S1").status, "approved")
        last = self.directory.audit_trail("S1")[-1]
        self.assertEqual(last.action, "approved")
        self.assertEqual(last.actor, "admin@example.com")
        self.assertEqual(last.details, {"status": "approved"})

    def test_reapplying_status_appends_another_audit_row(self) -> None:
        self.directory.set_status("S1", "approved", actor="admin@example.com")
        self.directory.set_status("S1", "approved", actor="admin@example.com")
        actions = [a.action for a in self.directory.audit_trail("S1")]
        self.assertEqual(actions, ["created", "approved", "approved"])

    def test_audit_actions_are_known(self) -> None:
        self.directory.set_status("S1", "rejected", actor="admin@example.com")
        self.directory.upsert_pending("S1", "a@example.com", "Alice")
        for entry in self.directory.audit_trail("S1"):
            self.assertIn(entry.action, AUDIT_ACTIONS)

    def test_reject_after_approve(self) -> None:
        self.directory.set_status("S1", "approved", actor="admin@example.com")
        user = self.directory.set_status("S1", "rejected", actor="admin@example.com")
        self.assertEqual(user.status, "rejected")

    def test_unknown_subject_writes_nothing(self) -> None:
        with self.assertRaises(UserNotFoundError) as ctx:
            self.directory.set_status("NOPE", "approved", actor="admin@example.com")
        self.assertEqual(ctx.exception.subject, "NOPE")
        self.assertEqual(self.directory.audit_trail("NOPE"), [])
        self.assertIsNone(self.directory.get_by_subject("NOPE"))

    def test_unknown_status(self) -> None:
        with self.assertRaises(ValueError):
            self.directory.set_status("S1", "banned", actor="admin@example.com")
        self.assertEqual(self.directory.get_by_subject("S1").status, "pending")


class TestQueries(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        for i, subject in enumerate(["S1", "S2", "S3"]):
            with self.at(T0 + timedelta(minutes=i)):
                self.directory.upsert_pending(subject, f"{subject.lower()}@example.com", None)
        self.directory.set_status("S2", "approved", actor="admin@example.com")

    def test_newest_first(self) -> None:
        self.assertEqual([u.subject for u in self.directory.list_users()], ["S3", "S2", "S1"])

    def test_status_filter(self) -> None:
        self.assertEqual([u.subject for u in self.directory.list_users("pending")], ["S3", "S1"])
        self.assertEqual([u.subject for u in self.directory.list_users("approved")], ["S2"])
        self.assertEqual(self.directory.list_users("rejected"), [])

    def test_limit(self) -> None:
        directory = UserDirectory(self.session, list_limit=2)
        self.assertEqual([u.subject for u in directory.list_users()], ["S3", "S2"])

    def test_get_by_subject(self) -> None:
        self.assertEqual(self.directory.get_by_subject("S2").email, "s2@example.com")
        self.assertIsNone(self.directory.get_by_subject("S9"))

    def test_email_for_subject(self) -> None:
        self.assertEqual(self.directory.email_for_subject("S3"), "s3@example.com")
        self.assertEqual(self.directory.email_for_subject("S9"), "")


if __name__ == "__main__":
    unittest.main()
