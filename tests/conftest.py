import pytest
import sqlite3
from dupefiles.config import DupeConfig
from dupefiles.database.schema import init_schema
from dupefiles.database.ops import DBOperations
from dupefiles.index import FileIndex

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keeps DF_* variables from the developer's shell out of the tests."""
    for name in ("DF_DEBUG", "DF_MINSIZE", "DF_DBFILE", "DF_BINARY_COMPARE_SIZE", "DF_SAMPLE_MODE", "DF_WORKERS"):
        monkeypatch.delenv(name, raising=False)

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    c.execute("PRAGMA foreign_keys=ON;")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)

@pytest.fixture
def root(tmp_path):
    """Directory holding the files under test (kept apart from the catalog file)."""
    d = tmp_path / "a"
    d.mkdir()
    return d

@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides):
        overrides.setdefault("db_path", tmp_path / "db" / "catalog.db")
        overrides.setdefault("min_file_size", 0)
        overrides.setdefault("max_workers", 4)
        return DupeConfig(**overrides)
    return _make

@pytest.fixture
def cfg(make_config):
    return make_config()

@pytest.fixture
def index(cfg):
    """An opened FileIndex backed by a catalog file in tmp_path."""
    idx = FileIndex(cfg).open()
    try:
        yield idx
    finally:
        idx.close()
