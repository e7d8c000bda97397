# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import sqlite3
import tempfile
import unittest
from pathlib import Path
from uuid import uuid4

from macrotrack.app_db import db_conn, init_app_db
from macrotrack.estimation.models import EstimationFailure, FailureKind
from macrotrack.estimation.quota import QuotaDecision, QuotaGate, SqliteQuotaStore
from tests.fakes import InMemoryQuotaStore


class TestQuotaGate(unittest.TestCase):
    def test_under_limit_allowed(self) -> None:
        gate = QuotaGate(InMemoryQuotaStore(count=19), limit=20)
        decision = gate.check_and_reserve("u1")
        self.assertIsInstance(decision, QuotaDecision)

    def test_at_limit_exceeded(self) -> None:
        gate = QuotaGate(InMemoryQuotaStore(count=20), limit=20)
        decision = gate.check_and_reserve("u1")
        assert isinstance(decision, EstimationFailure)
        self.assertEqual(decision.kind, FailureKind.quota_exceeded)

    def test_unlimited_always_allowed_and_never_counted(self) -> None:
        store = InMemoryQuotaStore(count=500, is_unlimited=True)
        gate = QuotaGate(store, limit=20)
        decision = gate.check_and_reserve("u1")
        assert isinstance(decision, QuotaDecision)
        self.assertIsNone(decision.limit)
        gate.commit("u1")
        self.assertEqual(store.increments, 0)
        self.assertEqual(store.count, 500)

    def test_commit_increments_by_one(self) -> None:
        store = InMemoryQuotaStore(count=3)
        QuotaGate(store, limit=20).commit("u1")
        self.assertEqual(store.count, 4)
        self.assertEqual(store.increments, 1)

    def test_status(self) -> None:
        status = QuotaGate(InMemoryQuotaStore(count=20), limit=20).status("u1")
        self.assertFalse(status.can_perform)
        self.assertEqual((status.usage, status.limit), (20, 20))
        unlimited = QuotaGate(InMemoryQuotaStore(count=7, is_unlimited=True), limit=20).status("u1")
        self.assertTrue(unlimited.can_perform)
        self.assertEqual((unlimited.usage, unlimited.limit), (0, None))

    def test_store_errors_become_failures(self) -> None:
        class BrokenStore:
            def get_usage(self, user_id: str):
                raise sqlite3.OperationalError("database is locked")

            def increment(self, user_id: str) -> None:
                raise AssertionError("not reached")

        gate = QuotaGate(BrokenStore(), limit=20)
        decision = gate.check_and_reserve("u1")
        assert isinstance(decision, EstimationFailure)
        self.assertEqual(decision.kind, FailureKind.configuration_error)
        self.assertIn("locked", decision.detail or "")
        failure = gate.commit("u1")
        assert failure is not None
        self.assertEqual(failure.kind, FailureKind.configuration_error)

    def test_commit_returns_none_on_success(self) -> None:
        self.assertIsNone(QuotaGate(InMemoryQuotaStore(count=1), limit=20).commit("u1"))


class TestSqliteQuotaStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="macrotrack-quota-"))
        self.db_path = self._tmp / "test.db"
        init_app_db(self.db_path)
        self.store = SqliteQuotaStore(self.db_path)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    def _user(self, *, usage: int = 0, unlimited: bool = False, status: str | None = None) -> str:
        user_id = str(uuid4())
        with db_conn(self.db_path) as conn:
            conn.execute(
                "INSERT INTO users (id, email, subscription_status, is_unlimited, monthly_ai_usage, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, f"{user_id}@example.com", status, int(unlimited), usage, "2026-01-01T00:00:00Z"),
            )
        return user_id

    def test_reads_and_increments(self) -> None:
        user_id = self._user(usage=4)
        self.assertEqual(self.store.get_usage(user_id).count, 4)
        self.store.increment(user_id)
        self.store.increment(user_id)
        usage = self.store.get_usage(user_id)
        self.assertEqual(usage.count, 6)
        self.assertFalse(usage.is_unlimited)

    def test_active_subscription_is_unlimited(self) -> None:
        self.assertTrue(self.store.get_usage(self._user(status="active")).is_unlimited)
        self.assertTrue(self.store.get_usage(self._user(unlimited=True)).is_unlimited)
        self.assertFalse(self.store.get_usage(self._user(status="canceled")).is_unlimited)

    def test_unknown_user(self) -> None:
        with self.assertRaises(LookupError):
            self.store.get_usage("missing")
        with self.assertRaises(LookupError):
            self.store.increment("missing")


if __name__ == "__main__":
    unittest.main()
