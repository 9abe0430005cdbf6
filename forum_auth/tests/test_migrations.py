from __future__ import annotations

import importlib.util
import unittest
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from forum_auth.models import Account, OneTimeChallenge, SecurityEvent

VERSIONS_DIR = Path(__file__).resolve().parent.parent / "migrations" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(f"migration_{filename[:-3]}", VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class MigrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.migration = _load_revision("000_init.py")
        self.totp_step = _load_revision("001_add_totp_last_step.py")
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _run(self, step) -> None:
        with self.engine.begin() as connection:
            context = MigrationContext.configure(connection)
            with Operations.context(context):
                step()

    def test_revision_is_the_root(self) -> None:
        self.assertEqual(self.migration.revision, "0001")
        self.assertIsNone(self.migration.down_revision)

    def test_revisions_form_a_chain(self) -> None:
        self.assertEqual(self.totp_step.revision, "0002")
        self.assertEqual(self.totp_step.down_revision, self.migration.revision)

    def test_upgrade_matches_models(self) -> None:
        self._run(self.migration.upgrade)
        self._run(self.totp_step.upgrade)
        inspector = inspect(self.engine)
        for model in (Account, OneTimeChallenge, SecurityEvent):
            columns = {column["name"] for column in inspector.get_columns(model.__tablename__)}
            self.assertEqual(columns, set(model.__table__.columns.keys()), model.__tablename__)
        indexes = {index["name"] for index in inspector.get_indexes("accounts")}
        self.assertIn("ix_accounts_reset_token_hash", indexes)

    def test_totp_step_downgrade_drops_the_column(self) -> None:
        self._run(self.migration.upgrade)
        self._run(self.totp_step.upgrade)
        self._run(self.totp_step.downgrade)
        columns = {column["name"] for column in inspect(self.engine).get_columns("accounts")}
        self.assertNotIn("mfa_totp_last_step", columns)
        self.assertIn("mfa_secret", columns)

    def test_downgrade_removes_tables(self) -> None:
        self._run(self.migration.upgrade)
        self._run(self.migration.downgrade)
        self.assertEqual(inspect(self.engine).get_table_names(), [])


if __name__ == "__main__":
    unittest.main()
