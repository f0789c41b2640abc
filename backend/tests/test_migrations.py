"""
Tests for the Alembic migrations.

Applies the initial revision to an empty sqlite database and checks the
result against the ORM metadata.
"""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from tradepilot.db.models import Base

VERSIONS_DIR = Path(__file__).resolve().parent.parent / "alembic" / "versions"


def _load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename.removesuffix(".py"), VERSIONS_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


def _apply(engine, step: str) -> None:
    revision = _load_revision("001_initial_schema.py")
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            getattr(revision, step)()


class TestInitialSchema:

    def test_revision_is_root(self):
        revision = _load_revision("001_initial_schema.py")
        assert revision.revision == "001"
        assert revision.down_revision is None

    def test_upgrade_creates_model_tables(self, engine):
        _apply(engine, "upgrade")

        assert set(inspect(engine).get_table_names()) == set(Base.metadata.tables)

    def test_upgrade_columns_match_models(self, engine):
        _apply(engine, "upgrade")
        inspector = inspect(engine)

        for name, table in Base.metadata.tables.items():
            migrated = {c["name"] for c in inspector.get_columns(name)}
            assert migrated == set(table.columns.keys()), name

    def test_position_symbol_unique_per_agent(self, engine):
        _apply(engine, "upgrade")

        constraints = inspect(engine).get_unique_constraints("agent_positions")

        assert [c["column_names"] for c in constraints] == [["agent_id", "symbol"]]

    def test_downgrade_drops_tables(self, engine):
        _apply(engine, "upgrade")
        _apply(engine, "downgrade")

        assert inspect(engine).get_table_names() == []
